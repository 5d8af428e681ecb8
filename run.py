# run.py
import logging
import os

import uvicorn

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("automation").setLevel(logging.DEBUG)
logging.getLogger("automation.senders").setLevel(logging.INFO)

uvicorn.run(
    "app.main:app",
    host=os.getenv("HOST", "0.0.0.0"),
    port=int(os.getenv("PORT", "8080")),
    reload=False,
)
