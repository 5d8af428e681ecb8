# app/automations/sql_repositories.py
"""
SQLAlchemy storage for rules, actions and the execution log.

Every public method runs in its own session/transaction. Driver and
connection errors are turned into StoreError (retryable) here; our own
CallerErrors pass through untouched.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import AutomationActionRow, AutomationLogRow, AutomationRuleRow

from .errors import ConcurrencyConflict, NotFoundError, StoreError, ValidationError
from .storage import (
    ACTION_FIELDS,
    DEFAULT_LOG_LIMIT,
    RULE_FIELDS,
    ActionStorage,
    LogStorage,
    RuleOrder,
    RuleStorage,
)
from .types import (
    AutomationAction,
    AutomationLog,
    AutomationRule,
    LogStatus,
    default_conditions,
    utcnow,
)


def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class _SqlStorage:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db: Session = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"database error: {exc}") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def _check_fields(changes: Dict[str, Any], allowed: Sequence[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")


# ======================================================================
# 1. RULES
# ======================================================================

def _rule_from_row(row: AutomationRuleRow) -> AutomationRule:
    return AutomationRule(
        id=row.id,
        trigger_name=row.trigger_name,
        name=row.name,
        description=row.description,
        conditions=row.conditions if row.conditions is not None else default_conditions(),
        execution_order=row.execution_order,
        enabled=bool(row.enabled),
        version=row.version,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlRuleStorage(_SqlStorage, RuleStorage):

    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        with self._session() as db:
            row = db.execute(
                select(AutomationRuleRow).where(AutomationRuleRow.id == rule_id)
            ).scalar_one_or_none()
            return _rule_from_row(row) if row else None

    def _list(self, trigger_name: str, enabled_only: bool) -> List[AutomationRule]:
        stmt = select(AutomationRuleRow).where(AutomationRuleRow.trigger_name == trigger_name)
        if enabled_only:
            stmt = stmt.where(AutomationRuleRow.enabled.is_(True))
        stmt = stmt.order_by(AutomationRuleRow.execution_order, AutomationRuleRow.pk)
        with self._session() as db:
            return [_rule_from_row(r) for r in db.execute(stmt).scalars()]

    def list_rules(self, trigger_name: str) -> List[AutomationRule]:
        return self._list(trigger_name, enabled_only=False)

    def list_enabled_rules(self, trigger_name: str) -> List[AutomationRule]:
        return self._list(trigger_name, enabled_only=True)

    def create_rule(self, rule: AutomationRule) -> AutomationRule:
        with self._session() as db:
            if db.execute(select(AutomationRuleRow.pk).where(AutomationRuleRow.id == rule.id)).first():
                raise ValidationError(f"Rule {rule.id} already exists")
            db.add(AutomationRuleRow(
                id=rule.id,
                trigger_name=rule.trigger_name,
                name=rule.name,
                description=rule.description,
                conditions=rule.conditions,
                execution_order=rule.execution_order,
                enabled=rule.enabled,
                version=rule.version,
                created_at=rule.created_at,
                updated_at=rule.updated_at,
            ))
        return rule

    def update_rule(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationRule:
        _check_fields(changes, RULE_FIELDS)
        with self._session() as db:
            row = db.execute(
                select(AutomationRuleRow).where(AutomationRuleRow.id == rule_id)
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(f"Rule {rule_id} not found")
            current = row.version
            if expected_version is not None and int(expected_version) != current:
                raise ConcurrencyConflict(
                    f"rule {rule_id} was modified (version {current}, expected {expected_version})"
                )
            # compare-and-set on version: a concurrent writer makes rowcount 0
            result = db.execute(
                update(AutomationRuleRow)
                .where(AutomationRuleRow.id == rule_id, AutomationRuleRow.version == current)
                .values(**changes, version=current + 1, updated_at=utcnow())
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise ConcurrencyConflict(f"rule {rule_id} was modified concurrently")
            db.flush()
            db.refresh(row)
            return _rule_from_row(row)

    def delete_rule(self, rule_id: str) -> bool:
        with self._session() as db:
            # explicit: SQLite ignores ON DELETE CASCADE unless foreign keys are on
            db.execute(delete(AutomationActionRow).where(AutomationActionRow.rule_id == rule_id))
            result = db.execute(delete(AutomationRuleRow).where(AutomationRuleRow.id == rule_id))
            return result.rowcount > 0

    def reorder_rules(self, trigger_name: str, orders: Sequence[RuleOrder]) -> List[AutomationRule]:
        ids = [item.id for item in orders]
        with self._session() as db:
            rows = {
                r.id: r for r in db.execute(
                    select(AutomationRuleRow).where(AutomationRuleRow.id.in_(ids))
                ).scalars()
            }
            for item in orders:
                row = rows.get(item.id)
                if row is None:
                    raise NotFoundError(f"Rule {item.id} not found")
                if row.trigger_name != trigger_name:
                    raise ValidationError(
                        f"Rule {item.id} belongs to trigger {row.trigger_name}, not {trigger_name}"
                    )
                if item.version is not None and int(item.version) != row.version:
                    raise ConcurrencyConflict(
                        f"rule {item.id} was modified (version {row.version}, expected {item.version})"
                    )
            now = utcnow()
            for item in orders:
                row = rows[item.id]
                row.execution_order = int(item.order)
                row.version = row.version + 1
                row.updated_at = now
        return self.list_rules(trigger_name)


# ======================================================================
# 2. ACTIONS
# ======================================================================

def _action_from_row(row: AutomationActionRow) -> AutomationAction:
    return AutomationAction(
        id=row.id,
        rule_id=row.rule_id,
        name=row.name,
        type=row.type,
        configuration=row.configuration or {},
        execution_order=row.execution_order,
        enabled=bool(row.enabled),
        version=row.version,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlActionStorage(_SqlStorage, ActionStorage):

    def get_action(self, action_id: str) -> Optional[AutomationAction]:
        with self._session() as db:
            row = db.execute(
                select(AutomationActionRow).where(AutomationActionRow.id == action_id)
            ).scalar_one_or_none()
            return _action_from_row(row) if row else None

    def _list(self, rule_id: str, enabled_only: bool) -> List[AutomationAction]:
        stmt = select(AutomationActionRow).where(AutomationActionRow.rule_id == rule_id)
        if enabled_only:
            stmt = stmt.where(AutomationActionRow.enabled.is_(True))
        stmt = stmt.order_by(AutomationActionRow.execution_order, AutomationActionRow.pk)
        with self._session() as db:
            return [_action_from_row(r) for r in db.execute(stmt).scalars()]

    def list_actions(self, rule_id: str) -> List[AutomationAction]:
        return self._list(rule_id, enabled_only=False)

    def list_enabled_actions(self, rule_id: str) -> List[AutomationAction]:
        return self._list(rule_id, enabled_only=True)

    def create_action(self, action: AutomationAction) -> AutomationAction:
        with self._session() as db:
            if db.execute(select(AutomationActionRow.pk).where(AutomationActionRow.id == action.id)).first():
                raise ValidationError(f"Action {action.id} already exists")
            db.add(AutomationActionRow(
                id=action.id,
                rule_id=action.rule_id,
                name=action.name,
                type=action.type,
                configuration=action.configuration,
                execution_order=action.execution_order,
                enabled=action.enabled,
                version=action.version,
                created_at=action.created_at,
                updated_at=action.updated_at,
            ))
        return action

    def update_action(
        self,
        action_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AutomationAction:
        _check_fields(changes, ACTION_FIELDS)
        with self._session() as db:
            row = db.execute(
                select(AutomationActionRow).where(AutomationActionRow.id == action_id)
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(f"Action {action_id} not found")
            current = row.version
            if expected_version is not None and int(expected_version) != current:
                raise ConcurrencyConflict(
                    f"action {action_id} was modified (version {current}, expected {expected_version})"
                )
            result = db.execute(
                update(AutomationActionRow)
                .where(AutomationActionRow.id == action_id, AutomationActionRow.version == current)
                .values(**changes, version=current + 1, updated_at=utcnow())
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise ConcurrencyConflict(f"action {action_id} was modified concurrently")
            db.flush()
            db.refresh(row)
            return _action_from_row(row)

    def delete_action(self, action_id: str) -> bool:
        with self._session() as db:
            result = db.execute(delete(AutomationActionRow).where(AutomationActionRow.id == action_id))
            return result.rowcount > 0

    def delete_for_rule(self, rule_id: str) -> int:
        with self._session() as db:
            result = db.execute(delete(AutomationActionRow).where(AutomationActionRow.rule_id == rule_id))
            return result.rowcount


# ======================================================================
# 3. EXECUTION LOG
# ======================================================================

def _log_from_row(row: AutomationLogRow) -> AutomationLog:
    return AutomationLog(
        id=row.id,
        run_id=row.run_id,
        sequence=row.sequence,
        trigger_name=row.trigger_name,
        status=LogStatus(row.status),
        executed_at=_aware(row.executed_at),
        is_test=bool(row.is_test),
        rule_id=row.rule_id,
        action_id=row.action_id,
        executed_by=row.executed_by,
        details=row.details or {},
        parameters=row.parameters or {},
    )


class SqlLogStorage(_SqlStorage, LogStorage):

    def append(self, entry: AutomationLog) -> None:
        with self._session() as db:
            db.add(AutomationLogRow(
                id=entry.id,
                run_id=entry.run_id,
                sequence=entry.sequence,
                trigger_name=entry.trigger_name,
                rule_id=entry.rule_id,
                action_id=entry.action_id,
                status=entry.status.value,
                executed_at=entry.executed_at,
                is_test=entry.is_test,
                executed_by=entry.executed_by,
                details=entry.details,
                parameters=entry.parameters,
            ))

    def query(
        self,
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[LogStatus] = None,
        limit: int = DEFAULT_LOG_LIMIT,
    ) -> List[AutomationLog]:
        stmt = select(AutomationLogRow)
        if trigger_name is not None:
            stmt = stmt.where(AutomationLogRow.trigger_name == trigger_name)
        if rule_id is not None:
            stmt = stmt.where(AutomationLogRow.rule_id == rule_id)
        if status is not None:
            stmt = stmt.where(AutomationLogRow.status == status.value)
        stmt = stmt.order_by(AutomationLogRow.executed_at.desc(), AutomationLogRow.pk.desc()).limit(limit)
        with self._session() as db:
            return [_log_from_row(r) for r in db.execute(stmt).scalars()]
