# app/db/session.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.models import Base  # models must be imported before create_all


def _ensure_sqlite_dir(db_url: str) -> None:
    # sqlite:///./data/automations.db  → ./data
    prefix = "sqlite:///"
    if db_url.startswith(prefix):
        fs_path = db_url[len(prefix):]
        if fs_path in ("", ":memory:"):
            return
        d = Path(fs_path).resolve().parent
        d.mkdir(parents=True, exist_ok=True)


def make_engine(db_url: str) -> Engine:
    kwargs: Dict[str, Any] = {"future": True}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a thread pool
        kwargs["connect_args"] = {"check_same_thread": False}
    _ensure_sqlite_dir(db_url)
    return create_engine(db_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


# created on first use, after the YAML config (db.url) has been loaded
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(settings.db_url)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the tables if they do not exist yet."""
    Base.metadata.create_all(bind=bind or get_engine())
