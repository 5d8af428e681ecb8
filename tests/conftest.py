"""Shared fixtures: in-memory store, fake senders, an engine wired to both."""

import threading
import uuid
from typing import Any, Dict, List, Optional

import pytest

from app.automations.dispatcher import ActionDispatcher
from app.automations.engine import AutomationEngine
from app.automations.errors import DeliveryError
from app.automations.executors import build_executors
from app.automations.repositories import (
    InMemoryActionStorage,
    InMemoryLogStorage,
    InMemoryRuleStorage,
)
from app.automations.storage import AutomationRepository
from app.automations.types import AutomationAction, AutomationRule


class FakeSender:
    """Records every delivery; can be told to fail or to hang."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[str] = None
        self.block: Optional[threading.Event] = None

    def _record(self, **kwargs: Any) -> Dict[str, Any]:
        if self.block is not None:
            self.block.wait(5)
        if self.fail_with:
            raise DeliveryError(self.fail_with)
        self.calls.append(kwargs)
        return {"ok": True}


class FakeSlack(FakeSender):
    def send(self, payload):
        return self._record(payload=payload)


class FakeEmail(FakeSender):
    def send(self, to, subject, body, cc=None):
        return self._record(to=to, subject=subject, body=body, cc=cc)


class FakeWebhook(FakeSender):
    def send(self, method, url, *, headers=None, body=None):
        return self._record(method=method, url=url, headers=headers, body=body)


class Senders:
    def __init__(self) -> None:
        self.slack = FakeSlack()
        self.email = FakeEmail()
        self.webhook = FakeWebhook()

    @property
    def total_calls(self) -> int:
        return len(self.slack.calls) + len(self.email.calls) + len(self.webhook.calls)


@pytest.fixture
def senders():
    return Senders()


@pytest.fixture
def repo():
    return AutomationRepository(InMemoryRuleStorage(), InMemoryActionStorage(), InMemoryLogStorage())


@pytest.fixture
def executors(senders):
    return build_executors(slack=senders.slack, email=senders.email, webhook=senders.webhook)


@pytest.fixture
def dispatcher(repo, executors):
    d = ActionDispatcher(repo, executors, action_timeout_s=2)
    yield d
    d.shutdown()


@pytest.fixture
def engine(repo, dispatcher):
    return AutomationEngine(repo=repo, dispatcher=dispatcher, app_url="https://app.test")


@pytest.fixture
def add_rule(repo):
    """Create a rule directly in the store."""

    def _add(trigger_name="casting_approved", name="rule", conditions=None, order=0, enabled=True):
        rule = AutomationRule(
            id=str(uuid.uuid4()),
            trigger_name=trigger_name,
            name=name,
            conditions=conditions if conditions is not None else {"all": []},
            execution_order=order,
            enabled=enabled,
        )
        return repo.create_rule(rule)

    return _add


@pytest.fixture
def add_action(repo):
    """Create an action directly in the store (no validation, any type string)."""

    def _add(rule, type="slack_notification", configuration=None, name=None, order=0, enabled=True):
        if configuration is None:
            configuration = {"channel_id": "C1", "message_template": "{{castingTitle}} approved"}
        action = AutomationAction(
            id=str(uuid.uuid4()),
            rule_id=rule.id,
            name=name or type,
            type=type,
            configuration=configuration,
            execution_order=order,
            enabled=enabled,
        )
        return repo.create_action(action)

    return _add


@pytest.fixture
def approved_params():
    return {
        "castingId": "c-1",
        "castingTitle": "Summer",
        "clientName": "Brand",
        "chosenCreatorsCount": 3,
        "briefingStatus": "ready",
        "briefingCount": 1,
        "approvedBy": "client@example.com",
    }
