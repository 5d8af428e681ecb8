# app/automations/service.py
"""
Management operations behind the admin UI / HTTP API.

Every call takes the caller's identity and checks it with the injected
Authorizer before touching anything. Input is validated strictly here
(malformed conditions or action configuration are rejected with
ValidationError); the engine itself stays lenient with what is stored.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from app.core.auth import Authorizer

from . import triggers
from .engine import AutomationEngine
from .errors import (
    ConfigurationError,
    NotFoundError,
    UnauthorizedError,
    UnknownTriggerError,
    ValidationError,
)
from .evaluator import validate_conditions
from .samples import RecordSource, synthetic_parameters
from .storage import AutomationRepository, RuleOrder
from .templating import unknown_placeholders
from .types import (
    ActionType,
    AutomationAction,
    AutomationLog,
    AutomationRule,
    LogStatus,
    default_conditions,
    parse_configuration,
    utcnow,
)

log = logging.getLogger("automation")


@dataclass
class DryRunResult:
    success: bool
    parameters: Dict[str, Any]
    run_id: str
    logs: List[AutomationLog] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "parameters": self.parameters,
            "run_id": self.run_id,
            "logs": [e.to_dict() for e in self.logs],
        }


# ---------------------------------------------------------------------------
# input checks
# ---------------------------------------------------------------------------

def _clean_name(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{what} name is required")
    return value.strip()


def _clean_order(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("execution_order must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("execution_order must be an integer") from exc


def _clean_enabled(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("enabled must be true or false")
    return value


def _clean_conditions(value: Any) -> Dict[str, Any]:
    if value is None:
        return default_conditions()
    problems = validate_conditions(value)
    if problems:
        raise ValidationError("Invalid conditions", problems)
    return value


def _clean_action(type_value: Any, configuration: Any) -> str:
    try:
        action_type = ActionType(type_value)
    except ValueError as exc:
        raise ValidationError(f"Unknown action type: {type_value}") from exc
    try:
        parse_configuration(action_type, configuration)
    except ConfigurationError as exc:
        raise ValidationError(f"Invalid {action_type.value} configuration: {exc}", [str(exc)]) from exc
    return action_type.value


def _check_placeholders(trigger_name: str, configuration: Mapping[str, Any]) -> None:
    trigger = triggers.get_trigger(trigger_name)
    if trigger is None:
        return
    available = trigger.parameter_names() + list(trigger.example_values)
    unknown = unknown_placeholders(dict(configuration), available)
    if unknown:
        raise ValidationError(
            f"Template uses unknown parameter(s) for {trigger_name}",
            [f"unknown parameter: {name}" for name in unknown],
        )


class AutomationService:
    def __init__(
        self,
        *,
        repo: AutomationRepository,
        engine: AutomationEngine,
        authorizer: Authorizer,
        records: Optional[RecordSource] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._repo = repo
        self._engine = engine
        self._authorizer = authorizer
        self._records = records
        self._new_id = id_factory

    # ------------------------------------------------------------------ #
    # helpers
    # ------------------------------------------------------------------ #
    def _authorize(self, identity: Optional[str]) -> None:
        if not self._authorizer.is_authorized(identity):
            log.warning("automation management denied for %r", identity)
            raise UnauthorizedError("Unauthorized")

    @staticmethod
    def _known_trigger(trigger_name: str) -> triggers.Trigger:
        trigger = triggers.get_trigger(trigger_name)
        if trigger is None:
            raise UnknownTriggerError(trigger_name)
        return trigger

    def _existing_rule(self, rule_id: str) -> AutomationRule:
        rule = self._repo.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        return rule

    def _existing_action(self, action_id: str) -> AutomationAction:
        action = self._repo.get_action(action_id)
        if action is None:
            raise NotFoundError(f"Action {action_id} not found")
        return action

    # ------------------------------------------------------------------ #
    # triggers
    # ------------------------------------------------------------------ #
    def list_triggers(self, identity: Optional[str]) -> List[Dict[str, Any]]:
        self._authorize(identity)
        return triggers.list_triggers()

    def get_trigger(self, identity: Optional[str], trigger_name: str) -> triggers.Trigger:
        self._authorize(identity)
        return self._known_trigger(trigger_name)

    def operators_for_type(self, identity: Optional[str], param_type: str) -> List[str]:
        self._authorize(identity)
        return triggers.operators_for_type(param_type)

    # ------------------------------------------------------------------ #
    # rules
    # ------------------------------------------------------------------ #
    def list_rules(self, identity: Optional[str], trigger_name: str) -> List[AutomationRule]:
        self._authorize(identity)
        self._known_trigger(trigger_name)
        return self._repo.list_rules(trigger_name)

    def create_rule(
        self,
        identity: Optional[str],
        trigger_name: str,
        *,
        name: Any,
        description: Optional[str] = None,
        conditions: Any = None,
        execution_order: Any = None,
        enabled: Any = True,
    ) -> AutomationRule:
        self._authorize(identity)
        self._known_trigger(trigger_name)

        if execution_order is None:
            existing = self._repo.list_rules(trigger_name)
            order = max((r.execution_order for r in existing), default=-1) + 1
        else:
            order = _clean_order(execution_order)

        now = utcnow()
        rule = AutomationRule(
            id=self._new_id(),
            trigger_name=trigger_name,
            name=_clean_name(name, "Rule"),
            description=description,
            conditions=_clean_conditions(conditions),
            execution_order=order,
            enabled=_clean_enabled(enabled),
            created_at=now,
            updated_at=now,
        )
        created = self._repo.create_rule(rule)
        log.info("rule %s (%s) created for %s by %s", created.id, created.name, trigger_name, identity)
        return created

    def update_rule(
        self,
        identity: Optional[str],
        rule_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> AutomationRule:
        self._authorize(identity)
        self._existing_rule(rule_id)

        clean: Dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                clean["name"] = _clean_name(value, "Rule")
            elif key == "description":
                clean["description"] = value
            elif key == "conditions":
                clean["conditions"] = _clean_conditions(value)
            elif key == "execution_order":
                clean["execution_order"] = _clean_order(value)
            elif key == "enabled":
                clean["enabled"] = _clean_enabled(value)
            else:
                raise ValidationError(f"Field cannot be updated: {key}")

        updated = self._repo.update_rule(rule_id, clean, expected_version)
        log.info("rule %s updated (v%d) by %s", rule_id, updated.version, identity)
        return updated

    def delete_rule(self, identity: Optional[str], rule_id: str) -> None:
        self._authorize(identity)
        if not self._repo.delete_rule(rule_id):
            raise NotFoundError(f"Rule {rule_id} not found")
        log.info("rule %s deleted by %s", rule_id, identity)

    def reorder_rules(
        self,
        identity: Optional[str],
        trigger_name: str,
        orders: Sequence[Union[RuleOrder, Mapping[str, Any]]],
    ) -> List[AutomationRule]:
        """Apply all new positions at once or none of them."""
        self._authorize(identity)
        self._known_trigger(trigger_name)

        items: List[RuleOrder] = []
        for raw in orders:
            if isinstance(raw, RuleOrder):
                items.append(raw)
                continue
            if not isinstance(raw, Mapping) or "id" not in raw or "order" not in raw:
                raise ValidationError("Each reorder item needs 'id' and 'order'")
            version = raw.get("version")
            items.append(RuleOrder(
                id=str(raw["id"]),
                order=_clean_order(raw["order"]),
                version=None if version is None else _clean_order(version),
            ))
        if len({i.id for i in items}) != len(items):
            raise ValidationError("Duplicate rule id in reorder request")

        result = self._repo.reorder_rules(trigger_name, items)
        log.info("rules of %s reordered by %s", trigger_name, identity)
        return result

    # ------------------------------------------------------------------ #
    # actions
    # ------------------------------------------------------------------ #
    def list_actions(self, identity: Optional[str], rule_id: str) -> List[AutomationAction]:
        self._authorize(identity)
        self._existing_rule(rule_id)
        return self._repo.list_actions(rule_id)

    def create_action(
        self,
        identity: Optional[str],
        rule_id: str,
        *,
        name: Any,
        type: Any,
        configuration: Any,
        execution_order: Any = None,
        enabled: Any = True,
    ) -> AutomationAction:
        self._authorize(identity)
        rule = self._existing_rule(rule_id)

        if execution_order is None:
            existing = self._repo.list_actions(rule_id)
            order = max((a.execution_order for a in existing), default=-1) + 1
        else:
            order = _clean_order(execution_order)

        now = utcnow()
        action = AutomationAction(
            id=self._new_id(),
            rule_id=rule_id,
            name=_clean_name(name, "Action"),
            type=_clean_action(type, configuration),
            configuration=dict(configuration),
            execution_order=order,
            enabled=_clean_enabled(enabled),
            created_at=now,
            updated_at=now,
        )
        _check_placeholders(rule.trigger_name, action.configuration)
        created = self._repo.create_action(action)
        log.info("action %s (%s) added to rule %s by %s", created.id, created.type, rule_id, identity)
        return created

    def update_action(
        self,
        identity: Optional[str],
        action_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> AutomationAction:
        self._authorize(identity)
        current = self._existing_action(action_id)

        clean: Dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                clean["name"] = _clean_name(value, "Action")
            elif key == "execution_order":
                clean["execution_order"] = _clean_order(value)
            elif key == "enabled":
                clean["enabled"] = _clean_enabled(value)
            elif key in ("type", "configuration"):
                clean[key] = value
            else:
                raise ValidationError(f"Field cannot be updated: {key}")

        if "type" in clean or "configuration" in clean:
            new_type = clean.get("type", current.type)
            new_config = clean.get("configuration", current.configuration)
            clean["type"] = _clean_action(new_type, new_config)
            clean["configuration"] = dict(new_config)
            _check_placeholders(self._existing_rule(current.rule_id).trigger_name, clean["configuration"])

        updated = self._repo.update_action(action_id, clean, expected_version)
        log.info("action %s updated (v%d) by %s", action_id, updated.version, identity)
        return updated

    def delete_action(self, identity: Optional[str], action_id: str) -> None:
        self._authorize(identity)
        if not self._repo.delete_action(action_id):
            raise NotFoundError(f"Action {action_id} not found")
        log.info("action %s deleted by %s", action_id, identity)

    # ------------------------------------------------------------------ #
    # log
    # ------------------------------------------------------------------ #
    def query_logs(
        self,
        identity: Optional[str],
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Union[LogStatus, str, None] = None,
        limit: Optional[int] = None,
    ) -> List[AutomationLog]:
        self._authorize(identity)
        if isinstance(status, str):
            try:
                status = LogStatus(status)
            except ValueError as exc:
                raise ValidationError(f"Unknown log status: {status}") from exc
        if limit is not None and _clean_order(limit) < 1:
            raise ValidationError("limit must be at least 1")
        return self._engine.journal.query(
            trigger_name=trigger_name, rule_id=rule_id, status=status, limit=limit
        )

    # ------------------------------------------------------------------ #
    # test runs
    # ------------------------------------------------------------------ #
    def test_trigger(
        self,
        identity: Optional[str],
        trigger_name: str,
        record_id: Optional[str] = None,
    ) -> DryRunResult:
        """
        Run the trigger in test mode: same rules, conditions and templating,
        nothing is delivered. Failing actions show up in the logs; the run
        itself still reports success.
        """
        self._authorize(identity)
        self._known_trigger(trigger_name)

        if record_id:
            if self._records is None:
                raise ValidationError("Test runs with a record id are not available")
            parameters = self._records.parameters_for(trigger_name, record_id)
            if parameters is None:
                raise NotFoundError(f"Record {record_id} not found")
        else:
            parameters = synthetic_parameters(trigger_name, executed_by=identity)

        summary = self._engine.trigger(
            trigger_name, parameters, is_test=True, executed_by=identity
        )
        return DryRunResult(
            success=True,
            parameters=summary.parameters,
            run_id=summary.run_id,
            logs=summary.logs,
        )
