# app/automations/runtime.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from app.core.auth import AllowListAuthorizer, Authorizer
from app.core.config import Settings, settings as default_settings

from .dispatcher import ActionDispatcher
from .engine import AutomationEngine
from .executors import Executor, build_executors
from .loader import load_rules_from_yaml
from .repositories import InMemoryActionStorage, InMemoryLogStorage, InMemoryRuleStorage
from .samples import InMemoryRecordSource, RecordSource
from .senders import EmailSender, SlackSender, WebhookSender
from .service import AutomationService
from .sql_repositories import SqlActionStorage, SqlLogStorage, SqlRuleStorage
from .storage import AutomationRepository
from .types import RunSummary

log = logging.getLogger("automation")


@dataclass
class AutomationRuntime:
    repo: AutomationRepository
    dispatcher: ActionDispatcher
    engine: AutomationEngine
    service: AutomationService
    records: Optional[RecordSource]

    def shutdown(self) -> None:
        self.dispatcher.shutdown()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def build_repository(cfg: Settings, session_factory: Optional[sessionmaker] = None) -> AutomationRepository:
    """In-memory or SQL storage according to `automations.store`."""
    if cfg.automations["store"] == "memory":
        return AutomationRepository(InMemoryRuleStorage(), InMemoryActionStorage(), InMemoryLogStorage())

    if session_factory is None:
        from app.db.session import get_session_factory, init_db

        init_db()
        session_factory = get_session_factory()
    return AutomationRepository(
        SqlRuleStorage(session_factory),
        SqlActionStorage(session_factory),
        SqlLogStorage(session_factory),
    )


def build_executors_from_settings(cfg: Settings) -> Dict[str, Executor]:
    slack = cfg.slack
    email = cfg.email
    return build_executors(
        slack=SlackSender(
            slack["bot_token"] or "",
            timeout=float(slack["timeout_s"]),
            insecure_tls=_flag(slack["insecure_tls"]),
        ),
        email=EmailSender(
            email["smtp_host"] or "",
            int(email["smtp_port"]),
            username=email["username"],
            password=email["password"],
            from_addr=email["from_addr"],
            use_tls=_flag(email["use_tls"]),
            timeout=float(email["timeout_s"]),
        ),
        webhook=WebhookSender(timeout=float(cfg.webhook["timeout_s"])),
    )


def build_runtime(
    cfg: Settings,
    *,
    repo: Optional[AutomationRepository] = None,
    executors: Optional[Mapping[str, Executor]] = None,
    authorizer: Optional[Authorizer] = None,
    records: Optional[RecordSource] = None,
) -> AutomationRuntime:
    """
    Wire everything together. Each collaborator can be handed in (tests,
    other deployments); the rest is built from config.
    """
    auto = cfg.automations
    repo = repo or build_repository(cfg)
    dispatcher = ActionDispatcher(
        repo,
        executors if executors is not None else build_executors_from_settings(cfg),
        action_timeout_s=float(auto["action_timeout_s"]),
    )
    engine = AutomationEngine(
        repo=repo,
        dispatcher=dispatcher,
        app_url=auto["app_url"] or None,
        invocation_deadline_s=float(auto["invocation_deadline_s"]),
    )

    if records is None and auto["rules_file"]:
        records = InMemoryRecordSource()
    if auto["rules_file"]:
        seed_records = records if isinstance(records, InMemoryRecordSource) else None
        load_rules_from_yaml(auto["rules_file"], repo, records=seed_records)

    service = AutomationService(
        repo=repo,
        engine=engine,
        authorizer=authorizer or AllowListAuthorizer(cfg.admins),
        records=records,
    )
    return AutomationRuntime(repo=repo, dispatcher=dispatcher, engine=engine, service=service, records=records)


# ---------------------------------------------------------------------------
# process-wide instance
# ---------------------------------------------------------------------------

_RUNTIME: Optional[AutomationRuntime] = None


def ensure_automation_started(cfg: Optional[Settings] = None) -> AutomationRuntime:
    """
    Build the engine once per process. Called from the app startup hook;
    trigger_automation() also calls it so business code never sees an
    unstarted engine.
    """
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime(cfg or default_settings)
        log.info("automation engine started (store=%s)", (cfg or default_settings).automations["store"])
    return _RUNTIME


def install_runtime(runtime: Optional[AutomationRuntime]) -> None:
    """Replace the process-wide instance (None stops the current one)."""
    global _RUNTIME
    if _RUNTIME is not None and _RUNTIME is not runtime:
        _RUNTIME.shutdown()
    _RUNTIME = runtime


def runtime_instance() -> Optional[AutomationRuntime]:
    return _RUNTIME


def trigger_automation(
    trigger_name: str,
    parameters: Optional[Mapping[str, Any]] = None,
    *,
    is_test: bool = False,
    executed_by: Optional[str] = None,
) -> RunSummary:
    """
    Entry point for business code (casting approval, invitation responses,
    signup, status changes). Synchronous: returns after every rule has been
    evaluated and every log entry is written.
    """
    runtime = ensure_automation_started()
    return runtime.engine.trigger(
        trigger_name, parameters, is_test=is_test, executed_by=executed_by
    )
