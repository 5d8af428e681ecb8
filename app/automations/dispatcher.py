# app/automations/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError, DeliveryError
from .executors import ExecutionContext, Executor
from .journal import RunJournal
from .storage import AutomationRepository
from .types import ActionOutcome, AutomationAction, AutomationRule, LogStatus

log = logging.getLogger("automation")


class _ActionTimeout(Exception):
    pass


class ActionDispatcher:
    """
    Runs the actions of one matched rule.

    We do not hard-wire Slack/SMTP/HTTP here: executors come in as a
    registry keyed by action type. Each action:
      - runs on its own daemon thread, bounded by the action timeout,
      - ends in exactly one log entry,
      - can never stop the actions after it.
    Only store failures (writing the log) propagate.
    """

    def __init__(
        self,
        repo: AutomationRepository,
        executors: Mapping[str, Executor],
        *,
        action_timeout_s: Optional[float] = 30.0,
    ) -> None:
        self._repo = repo
        self._executors = dict(executors)
        self._timeout = action_timeout_s if action_timeout_s and action_timeout_s > 0 else None
        # threads of timed-out actions; nothing waits on them anymore
        self._abandoned: List[threading.Thread] = []
        self._lock = threading.Lock()

    # --------------------------------------------------------------------- #
    # public: all actions of a rule
    # --------------------------------------------------------------------- #
    def run_actions(
        self,
        rule: AutomationRule,
        ctx: ExecutionContext,
        journal: RunJournal,
    ) -> List[ActionOutcome]:
        """Enabled actions in execution order; one log entry per attempt."""
        outcomes: List[ActionOutcome] = []
        for action in self._repo.actions_for(rule.id):
            outcome = self.run_action(action, ctx)
            journal.write(
                outcome.status,
                rule_id=rule.id,
                action_id=action.id,
                details=self._log_details(outcome),
            )
            outcomes.append(outcome)
        return outcomes

    # --------------------------------------------------------------------- #
    # public: one action
    # --------------------------------------------------------------------- #
    def run_action(self, action: AutomationAction, ctx: ExecutionContext) -> ActionOutcome:
        executor = self._executors.get(action.type)
        if executor is None:
            return self._failed(action, f"Unknown action type: {action.type}", kind="configuration")

        try:
            details = self._call(action, executor.execute, action.configuration, ctx)
        except _ActionTimeout:
            log.warning("action %s (%s) timed out after %ss", action.id, action.name, self._timeout)
            return self._failed(action, f"Action timed out after {self._timeout}s", kind="timeout")
        except ConfigurationError as exc:
            return self._failed(action, str(exc), kind="configuration")
        except DeliveryError as exc:
            return self._failed(action, str(exc), kind="delivery")
        except Exception as exc:  # noqa: BLE001
            # executor bug: contained to this action
            log.exception("action %s (%s) crashed", action.id, action.name)
            return self._failed(action, f"{type(exc).__name__}: {exc}", kind="internal")

        message = str(details.pop("message", ""))
        log.info("action %s (%s) ok: %s", action.id, action.name, message)
        return ActionOutcome(
            action_id=action.id,
            action_name=action.name,
            action_type=action.type,
            status=LogStatus.SUCCESS,
            message=message,
            details=details,
        )

    def shutdown(self) -> None:
        with self._lock:
            alive = [t for t in self._abandoned if t.is_alive()]
            self._abandoned = []
        if alive:
            log.warning("%d timed-out action(s) still running at shutdown", len(alive))

    def abandoned_count(self) -> int:
        with self._lock:
            self._abandoned = [t for t in self._abandoned if t.is_alive()]
            return len(self._abandoned)

    # --------------------------------------------------------------------- #
    # internal
    # --------------------------------------------------------------------- #
    def _call(self, action: AutomationAction, fn: Callable[..., Dict[str, Any]], *args: Any) -> Dict[str, Any]:
        """
        Run fn on a fresh daemon thread and wait at most the action timeout.
        Every action gets its own thread, so a call that never returns
        cannot delay the actions and rules after it.
        """
        box: Dict[str, Any] = {}

        def _target() -> None:
            try:
                box["result"] = fn(*args)
            except BaseException as exc:  # noqa: BLE001  re-raised in the caller thread
                box["error"] = exc

        t = threading.Thread(target=_target, name=f"automation-action-{action.id}", daemon=True)
        t.start()
        t.join(self._timeout)
        if t.is_alive():
            with self._lock:
                self._abandoned.append(t)
            raise _ActionTimeout()
        if "error" in box:
            raise box["error"]
        return box["result"]

    @staticmethod
    def _failed(action: AutomationAction, error: str, *, kind: str) -> ActionOutcome:
        log.warning("action %s (%s) failed [%s]: %s", action.id, action.name, kind, error)
        return ActionOutcome(
            action_id=action.id,
            action_name=action.name,
            action_type=action.type,
            status=LogStatus.ERROR,
            error=error,
            details={"error_kind": kind},
        )

    @staticmethod
    def _log_details(outcome: ActionOutcome) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            "action_name": outcome.action_name,
            "action_type": outcome.action_type,
        }
        if outcome.message:
            details["message"] = outcome.message
        if outcome.error:
            details["error"] = outcome.error
        details.update(outcome.details)
        return details
