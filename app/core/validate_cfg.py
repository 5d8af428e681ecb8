# app/core/validate_cfg.py
from __future__ import annotations
from typing import Dict, Any, Optional

ALLOWED_STORES = {"memory", "sql"}


def _as_int(v, name, min_: Optional[int] = None, max_: Optional[int] = None) -> int:
    if isinstance(v, bool):
        raise ValueError(f"{name}: expected an integer, got {v!r}")
    try:
        iv = int(v)
    except (TypeError, ValueError):
        raise ValueError(f"{name}: expected an integer, got {v!r}")
    if min_ is not None and iv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {iv})")
    if max_ is not None and iv > max_:
        raise ValueError(f"{name}: must be <= {max_} (got {iv})")
    return iv


def _as_float(v, name, min_: Optional[float] = None) -> float:
    if isinstance(v, bool):
        raise ValueError(f"{name}: expected a number, got {v!r}")
    try:
        fv = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{name}: expected a number, got {v!r}")
    if min_ is not None and fv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {fv})")
    return fv


def _as_bool(v, name) -> bool:
    if isinstance(v, bool):
        return v
    # yaml may carry 'true'/'false'/1/0
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str) and v.lower() in ("true", "false"):
        return v.lower() == "true"
    raise ValueError(f"{name}: must be true/false")


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = cfg.get(name) or {}
    if not isinstance(sec, dict):
        raise ValueError(f"{name}: must be a mapping")
    return sec


def _optional_str(sec: Dict[str, Any], key: str, name: str) -> None:
    if key in sec and not (sec[key] is None or isinstance(sec[key], str)):
        raise ValueError(f"{name}.{key}: must be a string or null")


def validate_cfg(cfg: Dict[str, Any]) -> None:
    """Raises ValueError with a readable message if the config is unusable."""
    if not isinstance(cfg, dict):
        raise ValueError("root YAML must be a mapping")

    # ─── db ───
    db = _section(cfg, "db")
    if "url" in db and not str(db["url"] or "").strip():
        raise ValueError("db.url: must not be empty (e.g. sqlite:///./data/automations.db)")

    # ─── automations ───
    auto = _section(cfg, "automations")
    _optional_str(auto, "app_url", "automations")
    _optional_str(auto, "rules_file", "automations")
    admins = auto.get("admins", [])
    if not isinstance(admins, list) or not all(isinstance(a, str) for a in admins):
        raise ValueError("automations.admins: must be a list of emails")
    if "action_timeout_s" in auto:
        _as_float(auto["action_timeout_s"], "automations.action_timeout_s", 0)
    if "invocation_deadline_s" in auto:
        _as_float(auto["invocation_deadline_s"], "automations.invocation_deadline_s", 0)
    store = str(auto.get("store", "sql"))
    if store not in ALLOWED_STORES:
        raise ValueError(f"automations.store: one of {sorted(ALLOWED_STORES)}, got {store!r}")

    # ─── slack ───
    slack = _section(cfg, "slack")
    _optional_str(slack, "bot_token", "slack")
    if "timeout_s" in slack:
        _as_float(slack["timeout_s"], "slack.timeout_s", 0)
    if "insecure_tls" in slack:
        _as_bool(slack["insecure_tls"], "slack.insecure_tls")

    # ─── email ───
    email = _section(cfg, "email")
    for key in ("smtp_host", "username", "password", "from_addr"):
        _optional_str(email, key, "email")
    if "smtp_port" in email:
        _as_int(email["smtp_port"], "email.smtp_port", 1, 65535)
    if "use_tls" in email:
        _as_bool(email["use_tls"], "email.use_tls")
    if "timeout_s" in email:
        _as_float(email["timeout_s"], "email.timeout_s", 0)

    # ─── webhook ───
    webhook = _section(cfg, "webhook")
    if "timeout_s" in webhook:
        _as_float(webhook["timeout_s"], "webhook.timeout_s", 0)
