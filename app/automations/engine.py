# app/automations/engine.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from . import triggers
from .dispatcher import ActionDispatcher
from .errors import CallerError, StoreError, UnknownTriggerError, ValidationError
from .evaluator import ConditionEvaluator
from .executors import ExecutionContext
from .journal import ExecutionLogWriter, RunJournal, json_safe
from .storage import AutomationRepository
from .types import ActionOutcome, AutomationRule, LogStatus, RunSummary

log = logging.getLogger("automation")


class AutomationEngine:
    """
    Entry point for business events:
      - takes a trigger name and its parameter bag
      - loads the ENABLED rules of that trigger in execution order
      - checks each rule's conditions
      - runs the actions of the rules that match
      - writes the execution log (one entry per action, one per rule)

    There is no arbitration between rules: every matching rule runs.
    One rule failing never stops the rules after it; only store failures
    and caller errors abort the invocation.
    """

    def __init__(
        self,
        *,
        repo: AutomationRepository,
        dispatcher: ActionDispatcher,
        evaluator: Optional[ConditionEvaluator] = None,
        app_url: Optional[str] = None,
        invocation_deadline_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repo = repo
        self._dispatcher = dispatcher
        self._evaluator = evaluator or ConditionEvaluator()
        self._journal = ExecutionLogWriter(repo)
        self._app_url = app_url
        self._deadline_s = invocation_deadline_s if invocation_deadline_s and invocation_deadline_s > 0 else None
        self._clock = clock

    @property
    def journal(self) -> ExecutionLogWriter:
        return self._journal

    # ------------------------------------------------------------------ #
    # PUBLIC API
    # ------------------------------------------------------------------ #
    def trigger(
        self,
        trigger_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        is_test: bool = False,
        executed_by: Optional[str] = None,
    ) -> RunSummary:
        """
        Run every enabled rule of `trigger_name` against `parameters`.
        Raises UnknownTriggerError before anything is logged, StoreError
        when rules cannot be loaded or the log cannot be written.
        """
        if not triggers.is_known(trigger_name):
            raise UnknownTriggerError(trigger_name)
        if parameters is not None and not isinstance(parameters, Mapping):
            raise ValidationError("Trigger parameters must be an object")

        params: Dict[str, Any] = dict(parameters or {})
        try:
            json_safe(params)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Trigger parameters must be JSON-serializable: {exc}") from exc
        if self._app_url and "appUrl" not in params:
            params["appUrl"] = self._app_url

        rules = self._repo.rules_for(trigger_name)
        journal = self._journal.start_run(
            trigger_name, params, is_test=is_test, executed_by=executed_by
        )
        ctx = ExecutionContext(
            trigger_name=trigger_name,
            parameters=params,
            is_test=is_test,
            executed_by=executed_by,
            run_id=journal.run_id,
        )
        log.info(
            "trigger %s: %d rule(s), run=%s%s",
            trigger_name, len(rules), journal.run_id, " [test]" if is_test else "",
        )

        deadline = self._clock() + self._deadline_s if self._deadline_s else None
        for idx, rule in enumerate(rules):
            if deadline is not None and self._clock() > deadline:
                self._skip_remaining(rules[idx:], journal)
                break
            self._run_rule(rule, ctx, journal)

        return RunSummary(
            run_id=journal.run_id,
            trigger_name=trigger_name,
            is_test=is_test,
            parameters=params,
            logs=list(journal.entries),
        )

    # ------------------------------------------------------------------ #
    # INTERNAL
    # ------------------------------------------------------------------ #
    def _run_rule(self, rule: AutomationRule, ctx: ExecutionContext, journal: RunJournal) -> None:
        try:
            evaluation = self._evaluator.evaluate_with_warnings(rule.conditions, ctx.parameters)
            base: Dict[str, Any] = {"rule_name": rule.name}
            if evaluation.warnings:
                base["warnings"] = evaluation.warnings
                log.warning("rule %s (%s): malformed conditions: %s", rule.id, rule.name, evaluation.warnings)

            if not evaluation.matched:
                log.debug("rule %s (%s): NO", rule.id, rule.name)
                journal.write(
                    LogStatus.SKIPPED,
                    rule_id=rule.id,
                    details={**base, "reason": "conditions_not_met"},
                )
                return

            log.info("rule %s (%s) matched", rule.id, rule.name)
            outcomes = self._dispatcher.run_actions(rule, ctx, journal)
            journal.write(
                LogStatus.ERROR if any(not o.ok for o in outcomes) else LogStatus.SUCCESS,
                rule_id=rule.id,
                details={**base, **self._summarize(outcomes)},
            )
        except (StoreError, CallerError):
            raise
        except Exception as exc:  # noqa: BLE001
            log.exception("rule %s (%s) crashed", rule.id, rule.name)
            journal.write(
                LogStatus.ERROR,
                rule_id=rule.id,
                details={"rule_name": rule.name, "error": f"{type(exc).__name__}: {exc}"},
            )

    @staticmethod
    def _summarize(outcomes: List[ActionOutcome]) -> Dict[str, Any]:
        failed = [o for o in outcomes if not o.ok]
        out: Dict[str, Any] = {
            "matched": True,
            "actions_run": len(outcomes),
            "actions_failed": len(failed),
        }
        if failed:
            out["errors"] = [f"{o.action_name}: {o.error}" for o in failed]
        return out

    @staticmethod
    def _skip_remaining(rules: List[AutomationRule], journal: RunJournal) -> None:
        log.warning(
            "trigger %s: invocation deadline passed, skipping %d rule(s)",
            journal.trigger_name, len(rules),
        )
        for rule in rules:
            journal.write(
                LogStatus.SKIPPED,
                rule_id=rule.id,
                details={"rule_name": rule.name, "reason": "timeout"},
            )
