# app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Response

from app.core.config import settings
from app.api.routes.automations import install_error_handlers, router as automations_router
from app.automations.runtime import ensure_automation_started, install_runtime


# ─────────────────────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    app = FastAPI(title="Automations")
    install_error_handlers(app)
    app.include_router(automations_router)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    @app.get("/.well-known/appspecific/com.chrome.devtools.json")
    def _chrome_devtools_probe():
        # keep Chrome DevTools probes out of the access log
        return Response(status_code=204)

    return app


app = create_app()


# ─────────────────────────────────────────────────────────────────────────────
# Startup / shutdown
# ─────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def _startup():
    # 1) YAML config (raises ValueError on a broken file)
    settings.load_yaml_config()

    # 2) store, senders, engine, seed rules
    ensure_automation_started(settings)

    logging.getLogger("web").info("automations api ready")


@app.on_event("shutdown")
def _shutdown():
    install_runtime(None)
