# app/automations/repositories.py
from __future__ import annotations

import copy
import itertools
from collections import deque
from dataclasses import replace
from threading import RLock
from typing import Any, Deque, Dict, List, Optional, Sequence

from .errors import ConcurrencyConflict, NotFoundError, ValidationError
from .storage import (
    ACTION_FIELDS,
    DEFAULT_LOG_LIMIT,
    RULE_FIELDS,
    ActionStorage,
    LogStorage,
    RuleOrder,
    RuleStorage,
)
from .types import AutomationAction, AutomationLog, AutomationRule, LogStatus, utcnow


def _check_fields(changes: Dict[str, Any], allowed: Sequence[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")


def _check_version(kind: str, item_id: str, current: int, expected: Optional[int]) -> None:
    if expected is not None and int(expected) != current:
        raise ConcurrencyConflict(
            f"{kind} {item_id} was modified (version {current}, expected {expected})"
        )


# ======================================================================
# 1. IN-MEMORY RULES
# ======================================================================

class InMemoryRuleStorage(RuleStorage):
    """
    Rules kept in a dict.
    Good for:
      - unit tests,
      - running without a database (automations.store: memory).
    Objects are copied in and out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._rules: Dict[str, AutomationRule] = {}
        # creation sequence: tie-breaker for equal execution_order
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = RLock()

    def _sorted(self, rules: List[AutomationRule]) -> List[AutomationRule]:
        return sorted(rules, key=lambda r: (r.execution_order, self._seq[r.id]))

    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        with self._lock:
            rule = self._rules.get(rule_id)
            return copy.deepcopy(rule) if rule else None

    def list_rules(self, trigger_name: str) -> List[AutomationRule]:
        with self._lock:
            rules = [r for r in self._rules.values() if r.trigger_name == trigger_name]
            return copy.deepcopy(self._sorted(rules))

    def list_enabled_rules(self, trigger_name: str) -> List[AutomationRule]:
        with self._lock:
            rules = [
                r for r in self._rules.values()
                if r.trigger_name == trigger_name and r.enabled
            ]
            return copy.deepcopy(self._sorted(rules))

    def create_rule(self, rule: AutomationRule) -> AutomationRule:
        with self._lock:
            if rule.id in self._rules:
                raise ValidationError(f"Rule {rule.id} already exists")
            self._rules[rule.id] = copy.deepcopy(rule)
            self._seq[rule.id] = next(self._counter)
            return copy.deepcopy(rule)

    def update_rule(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationRule:
        _check_fields(changes, RULE_FIELDS)
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise NotFoundError(f"Rule {rule_id} not found")
            _check_version("rule", rule_id, rule.version, expected_version)
            updated = replace(
                rule,
                **copy.deepcopy(changes),
                version=rule.version + 1,
                updated_at=utcnow(),
            )
            self._rules[rule_id] = updated
            return copy.deepcopy(updated)

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            self._seq.pop(rule_id, None)
            return self._rules.pop(rule_id, None) is not None

    def reorder_rules(self, trigger_name: str, orders: Sequence[RuleOrder]) -> List[AutomationRule]:
        with self._lock:
            # validate everything first, then apply: nothing changes on failure
            for item in orders:
                rule = self._rules.get(item.id)
                if rule is None:
                    raise NotFoundError(f"Rule {item.id} not found")
                if rule.trigger_name != trigger_name:
                    raise ValidationError(
                        f"Rule {item.id} belongs to trigger {rule.trigger_name}, not {trigger_name}"
                    )
                _check_version("rule", item.id, rule.version, item.version)

            now = utcnow()
            for item in orders:
                rule = self._rules[item.id]
                self._rules[item.id] = replace(
                    rule,
                    execution_order=int(item.order),
                    version=rule.version + 1,
                    updated_at=now,
                )
            return self.list_rules(trigger_name)


# ======================================================================
# 2. IN-MEMORY ACTIONS
# ======================================================================

class InMemoryActionStorage(ActionStorage):

    def __init__(self) -> None:
        self._actions: Dict[str, AutomationAction] = {}
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = RLock()

    def _sorted(self, actions: List[AutomationAction]) -> List[AutomationAction]:
        return sorted(actions, key=lambda a: (a.execution_order, self._seq[a.id]))

    def get_action(self, action_id: str) -> Optional[AutomationAction]:
        with self._lock:
            action = self._actions.get(action_id)
            return copy.deepcopy(action) if action else None

    def list_actions(self, rule_id: str) -> List[AutomationAction]:
        with self._lock:
            actions = [a for a in self._actions.values() if a.rule_id == rule_id]
            return copy.deepcopy(self._sorted(actions))

    def list_enabled_actions(self, rule_id: str) -> List[AutomationAction]:
        with self._lock:
            actions = [a for a in self._actions.values() if a.rule_id == rule_id and a.enabled]
            return copy.deepcopy(self._sorted(actions))

    def create_action(self, action: AutomationAction) -> AutomationAction:
        with self._lock:
            if action.id in self._actions:
                raise ValidationError(f"Action {action.id} already exists")
            self._actions[action.id] = copy.deepcopy(action)
            self._seq[action.id] = next(self._counter)
            return copy.deepcopy(action)

    def update_action(
        self,
        action_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationAction:
        _check_fields(changes, ACTION_FIELDS)
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                raise NotFoundError(f"Action {action_id} not found")
            _check_version("action", action_id, action.version, expected_version)
            updated = replace(
                action,
                **copy.deepcopy(changes),
                version=action.version + 1,
                updated_at=utcnow(),
            )
            self._actions[action_id] = updated
            return copy.deepcopy(updated)

    def delete_action(self, action_id: str) -> bool:
        with self._lock:
            self._seq.pop(action_id, None)
            return self._actions.pop(action_id, None) is not None

    def delete_for_rule(self, rule_id: str) -> int:
        with self._lock:
            doomed = [a.id for a in self._actions.values() if a.rule_id == rule_id]
            for action_id in doomed:
                self._actions.pop(action_id, None)
                self._seq.pop(action_id, None)
            return len(doomed)


# ======================================================================
# 3. IN-MEMORY EXECUTION LOG
# ======================================================================

class InMemoryLogStorage(LogStorage):
    """
    Execution log in memory.
    Keeps the last N entries (default 10000) in a deque, newest first.
    """

    def __init__(self, max_entries: int = 10000) -> None:
        self._entries: Deque[AutomationLog] = deque(maxlen=max_entries)
        self._lock = RLock()

    def append(self, entry: AutomationLog) -> None:
        with self._lock:
            self._entries.appendleft(entry)  # newest at the front

    def query(
        self,
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[LogStatus] = None,
        limit: int = DEFAULT_LOG_LIMIT,
    ) -> List[AutomationLog]:
        with self._lock:
            entries = list(self._entries)

        filtered = [
            e for e in entries
            if (trigger_name is None or e.trigger_name == trigger_name)
            and (rule_id is None or e.rule_id == rule_id)
            and (status is None or e.status == status)
        ]
        # stable: equal timestamps keep "newest written first"
        filtered.sort(key=lambda e: e.executed_at, reverse=True)
        return filtered[:limit]
