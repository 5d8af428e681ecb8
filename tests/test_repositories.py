"""Storage contract, run against the in-memory and the SQLAlchemy backends."""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.automations.errors import ConcurrencyConflict, NotFoundError, ValidationError
from app.automations.repositories import InMemoryActionStorage, InMemoryLogStorage, InMemoryRuleStorage
from app.automations.sql_repositories import SqlActionStorage, SqlLogStorage, SqlRuleStorage
from app.automations.storage import AutomationRepository, RuleOrder
from app.automations.types import AutomationAction, AutomationLog, AutomationRule, LogStatus, utcnow
from app.db.models import Base
from app.db.session import make_session_factory


def _memory_repo():
    return AutomationRepository(InMemoryRuleStorage(), InMemoryActionStorage(), InMemoryLogStorage())


def _sql_repo():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = make_session_factory(engine)
    return AutomationRepository(SqlRuleStorage(factory), SqlActionStorage(factory), SqlLogStorage(factory))


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return _memory_repo() if request.param == "memory" else _sql_repo()


def _rule(rule_id, order=0, trigger="casting_approved", enabled=True):
    return AutomationRule(
        id=rule_id,
        trigger_name=trigger,
        name=f"rule {rule_id}",
        conditions={"all": [{"field": "casting.status", "operator": "equals", "value": "approved"}]},
        execution_order=order,
        enabled=enabled,
    )


def _action(action_id, rule_id, order=0, enabled=True):
    return AutomationAction(
        id=action_id,
        rule_id=rule_id,
        name=f"action {action_id}",
        type="slack_notification",
        configuration={"channel_id": "C1", "message_template": "hi"},
        execution_order=order,
        enabled=enabled,
    )


def _log(log_id, *, trigger="casting_approved", status=LogStatus.SUCCESS, rule_id=None, at=None, seq=1):
    return AutomationLog(
        id=log_id,
        run_id="run-1",
        sequence=seq,
        trigger_name=trigger,
        status=status,
        executed_at=at or utcnow(),
        rule_id=rule_id,
        details={"n": seq},
        parameters={"castingId": "c-1"},
    )


class TestRules:
    def test_round_trip(self, store):
        store.create_rule(_rule("a"))
        got = store.get_rule("a")
        assert got.name == "rule a"
        assert got.conditions["all"][0]["field"] == "casting.status"
        assert got.version == 1
        assert got.created_at.tzinfo is not None

    def test_duplicate_id(self, store):
        store.create_rule(_rule("a"))
        with pytest.raises(ValidationError):
            store.create_rule(_rule("a"))

    def test_ordering_and_enabled(self, store):
        store.create_rule(_rule("late", order=2))
        store.create_rule(_rule("tie-1", order=1))
        store.create_rule(_rule("tie-2", order=1))
        store.create_rule(_rule("off", order=0, enabled=False))
        store.create_rule(_rule("other", order=0, trigger="creator_signed_up"))

        assert [r.id for r in store.list_rules("casting_approved")] == ["off", "tie-1", "tie-2", "late"]
        assert [r.id for r in store.rules_for("casting_approved")] == ["tie-1", "tie-2", "late"]

    def test_update_bumps_version(self, store):
        store.create_rule(_rule("a"))
        updated = store.update_rule("a", {"name": "renamed", "enabled": False}, expected_version=1)
        assert updated.name == "renamed"
        assert updated.enabled is False
        assert updated.version == 2
        assert store.get_rule("a").version == 2

    def test_stale_version_conflicts(self, store):
        store.create_rule(_rule("a"))
        store.update_rule("a", {"name": "first"})
        with pytest.raises(ConcurrencyConflict):
            store.update_rule("a", {"name": "second"}, expected_version=1)
        assert store.get_rule("a").name == "first"

    def test_update_missing_and_unknown_field(self, store):
        with pytest.raises(NotFoundError):
            store.update_rule("nope", {"name": "x"})
        store.create_rule(_rule("a"))
        with pytest.raises(ValidationError):
            store.update_rule("a", {"trigger_name": "creator_signed_up"})

    def test_delete_cascades_to_actions(self, store):
        store.create_rule(_rule("a"))
        store.create_action(_action("a1", "a"))
        store.create_action(_action("a2", "a"))

        assert store.delete_rule("a") is True
        assert store.get_rule("a") is None
        assert store.list_actions("a") == []
        assert store.get_action("a1") is None
        assert store.delete_rule("a") is False


class TestReorder:
    def test_swaps_positions(self, store):
        store.create_rule(_rule("a", order=1))
        store.create_rule(_rule("b", order=2))

        result = store.reorder_rules("casting_approved", [RuleOrder("a", 2), RuleOrder("b", 1)])

        assert [r.id for r in result] == ["b", "a"]
        assert [r.id for r in store.rules_for("casting_approved")] == ["b", "a"]

    def test_all_or_nothing_on_stale_version(self, store):
        store.create_rule(_rule("a", order=1))
        store.create_rule(_rule("b", order=2))
        store.update_rule("b", {"name": "touched"})

        with pytest.raises(ConcurrencyConflict):
            store.reorder_rules("casting_approved", [RuleOrder("a", 5, version=1), RuleOrder("b", 0, version=1)])

        assert [(r.id, r.execution_order) for r in store.list_rules("casting_approved")] == [("a", 1), ("b", 2)]

    def test_rule_of_another_trigger(self, store):
        store.create_rule(_rule("a", order=1))
        store.create_rule(_rule("x", order=1, trigger="creator_signed_up"))

        with pytest.raises(ValidationError):
            store.reorder_rules("casting_approved", [RuleOrder("a", 3), RuleOrder("x", 0)])
        assert store.get_rule("a").execution_order == 1

    def test_unknown_rule(self, store):
        store.create_rule(_rule("a", order=1))
        with pytest.raises(NotFoundError):
            store.reorder_rules("casting_approved", [RuleOrder("a", 3), RuleOrder("ghost", 0)])
        assert store.get_rule("a").execution_order == 1


class TestActions:
    def test_ordering_and_enabled(self, store):
        store.create_rule(_rule("a"))
        store.create_action(_action("x2", "a", order=2))
        store.create_action(_action("x1", "a", order=1))
        store.create_action(_action("x0", "a", order=0, enabled=False))

        assert [a.id for a in store.list_actions("a")] == ["x0", "x1", "x2"]
        assert [a.id for a in store.actions_for("a")] == ["x1", "x2"]

    def test_update_and_delete(self, store):
        store.create_rule(_rule("a"))
        store.create_action(_action("x", "a"))

        updated = store.update_action("x", {"configuration": {"channel_id": "C9", "message_template": "yo"}})
        assert updated.configuration["channel_id"] == "C9"
        assert updated.version == 2
        with pytest.raises(ConcurrencyConflict):
            store.update_action("x", {"name": "late"}, expected_version=1)

        assert store.delete_action("x") is True
        assert store.delete_action("x") is False


class TestLogs:
    def test_newest_first_with_filters_and_limit(self, store):
        base = utcnow()
        for i in range(8):
            store.append_log(_log(
                f"l{i}",
                status=LogStatus.ERROR if i % 2 else LogStatus.SUCCESS,
                at=base + timedelta(seconds=i),
                seq=i + 1,
            ))
        store.append_log(_log("other", trigger="creator_signed_up", status=LogStatus.ERROR, at=base))

        got = store.query_logs(trigger_name="casting_approved", status=LogStatus.ERROR, limit=3)

        assert [e.id for e in got] == ["l7", "l5", "l3"]
        assert all(e.trigger_name == "casting_approved" and e.status == LogStatus.ERROR for e in got)
        assert got[0].details == {"n": 8}
        assert got[0].parameters == {"castingId": "c-1"}

    def test_limit_is_clamped(self, store):
        for i in range(3):
            store.append_log(_log(f"l{i}"))
        assert len(store.query_logs(limit=0)) == 1
        assert len(store.query_logs(limit=10_000)) == 3

    def test_logs_survive_rule_deletion(self, store):
        store.create_rule(_rule("a"))
        store.append_log(_log("l1", rule_id="a"))
        store.delete_rule("a")
        assert [e.id for e in store.query_logs(rule_id="a")] == ["l1"]
