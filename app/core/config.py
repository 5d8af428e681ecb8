# app/core/config.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings

from app.core.validate_cfg import validate_cfg

DEFAULT_DB_URL = "sqlite:///./data/automations.db"


class Settings(BaseSettings):
    # path to the main YAML (override with the CONFIG_FILE env var)
    config_file: str = Field(default="config.yaml", validation_alias="CONFIG_FILE")

    # secrets / deployment values may come from the environment instead of YAML
    app_url_env: str = Field(default="", validation_alias="APP_URL")
    slack_bot_token_env: str = Field(default="", validation_alias="SLACK_BOT_TOKEN")
    smtp_password_env: str = Field(default="", validation_alias="SMTP_PASSWORD")

    # loaded YAML
    _cfg: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _config_path: Path | None = PrivateAttr(default=None)

    # ───────── paths ─────────
    @property
    def config_path(self) -> Path:
        if self._config_path is None:
            p = Path(self.config_file)
            if not p.is_absolute():
                p = Path.cwd() / p
            self._config_path = p
        return self._config_path

    # ───────── YAML cfg ─────────
    @property
    def cfg(self) -> Dict[str, Any]:
        return self._cfg

    def set_cfg(self, data: Dict[str, Any]) -> None:
        validate_cfg(data or {})
        self._cfg = data or {}

    def load_yaml_config(self) -> None:
        p = self.config_path
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            validate_cfg(data)  # raises ValueError with a readable message
            self._cfg = data
        else:
            self._cfg = {}

    # ───────── sections ─────────
    @property
    def db_url(self) -> str:
        return (self._cfg.get("db") or {}).get("url", DEFAULT_DB_URL)

    @property
    def automations(self) -> Dict[str, Any]:
        sec = dict(self._cfg.get("automations") or {})
        if self.app_url_env:
            sec["app_url"] = self.app_url_env
        sec.setdefault("app_url", "")
        sec.setdefault("admins", [])
        sec.setdefault("action_timeout_s", 30)
        sec.setdefault("invocation_deadline_s", 0)
        sec.setdefault("rules_file", None)
        sec.setdefault("store", "sql")
        return sec

    @property
    def admins(self) -> List[str]:
        return [str(a) for a in self.automations["admins"]]

    @property
    def slack(self) -> Dict[str, Any]:
        sec = dict(self._cfg.get("slack") or {})
        if self.slack_bot_token_env:
            sec["bot_token"] = self.slack_bot_token_env
        sec.setdefault("bot_token", "")
        sec.setdefault("timeout_s", 10)
        sec.setdefault("insecure_tls", False)
        return sec

    @property
    def email(self) -> Dict[str, Any]:
        sec = dict(self._cfg.get("email") or {})
        if self.smtp_password_env:
            sec["password"] = self.smtp_password_env
        sec.setdefault("smtp_host", "")
        sec.setdefault("smtp_port", 587)
        sec.setdefault("username", None)
        sec.setdefault("password", None)
        sec.setdefault("from_addr", "automations@localhost")
        sec.setdefault("use_tls", True)
        sec.setdefault("timeout_s", 10)
        return sec

    @property
    def webhook(self) -> Dict[str, Any]:
        sec = dict(self._cfg.get("webhook") or {})
        sec.setdefault("timeout_s", 10)
        return sec


settings = Settings()
