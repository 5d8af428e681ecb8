# app/automations/storage.py
from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .errors import AutomationError, StoreError
from .types import AutomationAction, AutomationLog, AutomationRule, LogStatus

log = logging.getLogger("automation")

DEFAULT_LOG_LIMIT = 100
MAX_LOG_LIMIT = 1000

# fields a management update may touch; id, owner, version and timestamps are ours
RULE_FIELDS = ("name", "description", "conditions", "execution_order", "enabled")
ACTION_FIELDS = ("name", "type", "configuration", "execution_order", "enabled")


@dataclass(frozen=True)
class RuleOrder:
    """One item of a bulk reorder. `version` enables the optimistic check."""
    id: str
    order: int
    version: Optional[int] = None


# ======================================================================
# 1. RULE STORAGE
# ======================================================================

class RuleStorage(ABC):
    """
    Rules of all triggers. Implementations:
      - in-memory (tests, stand-alone runs)
      - SQLAlchemy (sql_repositories.py)
    Listing order everywhere: execution_order ascending, then creation order.
    """

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        raise NotImplementedError

    @abstractmethod
    def list_rules(self, trigger_name: str) -> List[AutomationRule]:
        """All rules of a trigger, including disabled ones."""
        raise NotImplementedError

    @abstractmethod
    def list_enabled_rules(self, trigger_name: str) -> List[AutomationRule]:
        raise NotImplementedError

    @abstractmethod
    def create_rule(self, rule: AutomationRule) -> AutomationRule:
        raise NotImplementedError

    @abstractmethod
    def update_rule(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationRule:
        """Apply changes, bump version. NotFoundError / ConcurrencyConflict."""
        raise NotImplementedError

    @abstractmethod
    def delete_rule(self, rule_id: str) -> bool:
        """Delete the rule row only (actions go via ActionStorage.delete_for_rule). False if absent."""
        raise NotImplementedError

    @abstractmethod
    def reorder_rules(self, trigger_name: str, orders: Sequence[RuleOrder]) -> List[AutomationRule]:
        """
        All-or-nothing: every id must belong to the trigger and every given
        version must match, otherwise nothing changes.
        """
        raise NotImplementedError


# ======================================================================
# 2. ACTION STORAGE
# ======================================================================

class ActionStorage(ABC):

    @abstractmethod
    def get_action(self, action_id: str) -> Optional[AutomationAction]:
        raise NotImplementedError

    @abstractmethod
    def list_actions(self, rule_id: str) -> List[AutomationAction]:
        raise NotImplementedError

    @abstractmethod
    def list_enabled_actions(self, rule_id: str) -> List[AutomationAction]:
        raise NotImplementedError

    @abstractmethod
    def create_action(self, action: AutomationAction) -> AutomationAction:
        raise NotImplementedError

    @abstractmethod
    def update_action(
        self,
        action_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationAction:
        raise NotImplementedError

    @abstractmethod
    def delete_action(self, action_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete_for_rule(self, rule_id: str) -> int:
        """Remove every action owned by the rule; returns how many went."""
        raise NotImplementedError


# ======================================================================
# 3. EXECUTION LOG STORAGE
# ======================================================================

class LogStorage(ABC):
    """Append-only. The engine writes, UIs read."""

    @abstractmethod
    def append(self, entry: AutomationLog) -> None:
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[LogStatus] = None,
        limit: int = DEFAULT_LOG_LIMIT,
    ) -> List[AutomationLog]:
        """Newest first (executed_at descending)."""
        raise NotImplementedError


# ======================================================================
# 4. COMPOSITE FOR THE ENGINE
# ======================================================================

T = TypeVar("T")


def _store_call(fn: Callable[..., T]) -> Callable[..., T]:
    """Anything a backend raises that is not ours becomes a retryable StoreError."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except AutomationError:
            raise
        except Exception as exc:
            log.error("automation store failure in %s: %s", fn.__name__, exc)
            raise StoreError(f"automation store unavailable: {exc}") from exc

    return wrapper


class AutomationRepository:
    """
    One object holding rules, actions and the execution log, so the engine
    and the management service get everything from one place.
    """

    def __init__(self, rules: RuleStorage, actions: ActionStorage, logs: LogStorage) -> None:
        self._rules = rules
        self._actions = actions
        self._logs = logs

    # --- rules (Rule Resolver) ------------------------------------------

    @_store_call
    def rules_for(self, trigger_name: str) -> List[AutomationRule]:
        """Enabled rules of a trigger in execution order."""
        return self._rules.list_enabled_rules(trigger_name)

    @_store_call
    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        return self._rules.get_rule(rule_id)

    @_store_call
    def list_rules(self, trigger_name: str) -> List[AutomationRule]:
        return self._rules.list_rules(trigger_name)

    @_store_call
    def create_rule(self, rule: AutomationRule) -> AutomationRule:
        return self._rules.create_rule(rule)

    @_store_call
    def update_rule(self, rule_id: str, changes: Dict[str, Any], expected_version: Optional[int] = None) -> AutomationRule:
        return self._rules.update_rule(rule_id, changes, expected_version)

    @_store_call
    def delete_rule(self, rule_id: str) -> bool:
        """Rule and its actions go; log entries referring to it stay."""
        self._actions.delete_for_rule(rule_id)
        return self._rules.delete_rule(rule_id)

    @_store_call
    def reorder_rules(self, trigger_name: str, orders: Sequence[RuleOrder]) -> List[AutomationRule]:
        return self._rules.reorder_rules(trigger_name, orders)

    # --- actions --------------------------------------------------------

    @_store_call
    def actions_for(self, rule_id: str) -> List[AutomationAction]:
        """Enabled actions of a rule in execution order."""
        return self._actions.list_enabled_actions(rule_id)

    @_store_call
    def get_action(self, action_id: str) -> Optional[AutomationAction]:
        return self._actions.get_action(action_id)

    @_store_call
    def list_actions(self, rule_id: str) -> List[AutomationAction]:
        return self._actions.list_actions(rule_id)

    @_store_call
    def create_action(self, action: AutomationAction) -> AutomationAction:
        return self._actions.create_action(action)

    @_store_call
    def update_action(self, action_id: str, changes: Dict[str, Any], expected_version: Optional[int] = None) -> AutomationAction:
        return self._actions.update_action(action_id, changes, expected_version)

    @_store_call
    def delete_action(self, action_id: str) -> bool:
        return self._actions.delete_action(action_id)

    # --- log ------------------------------------------------------------

    @_store_call
    def append_log(self, entry: AutomationLog) -> None:
        self._logs.append(entry)

    @_store_call
    def query_logs(
        self,
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[LogStatus] = None,
        limit: Optional[int] = None,
    ) -> List[AutomationLog]:
        lim = DEFAULT_LOG_LIMIT if limit is None else max(1, min(int(limit), MAX_LOG_LIMIT))
        return self._logs.query(trigger_name=trigger_name, rule_id=rule_id, status=status, limit=lim)
