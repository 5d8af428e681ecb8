"""HTTP surface: routing, identity header, error mapping."""

import pytest
from fastapi.testclient import TestClient

from app.api.routes.automations import get_service
from app.automations.errors import StoreError
from app.automations.service import AutomationService
from app.core.auth import AllowListAuthorizer
from app.main import create_app

ADMIN = {"X-User-Email": "admin@example.com"}
SLACK = {"channel_id": "C1", "message_template": "{{castingTitle}} approved"}


@pytest.fixture
def service(repo, engine):
    return AutomationService(repo=repo, engine=engine, authorizer=AllowListAuthorizer(["admin@example.com"]))


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


def _create_rule(client, **body):
    body.setdefault("name", "Notify sales")
    r = client.post("/api/automations/triggers/casting_approved/rules", json=body, headers=ADMIN)
    assert r.status_code == 201, r.text
    return r.json()


class TestTriggersApi:
    def test_list(self, client):
        r = client.get("/api/automations/triggers", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()[0] == {
            "name": "casting_approved",
            "description": "Triggered when a client approves a casting and selects final creators",
        }

    def test_detail_has_operators(self, client):
        r = client.get("/api/automations/triggers/creator_signed_up", headers=ADMIN)
        params = {p["name"]: p for p in r.json()["parameters"]}
        assert params["hasProfilePicture"]["operators"] == ["equals", "not_equals"]

    def test_unknown_trigger_is_400(self, client):
        r = client.get("/api/automations/triggers/casting_deleted", headers=ADMIN)
        assert r.status_code == 400
        assert r.json()["detail"] == "Unknown trigger: casting_deleted"

    def test_operators(self, client):
        r = client.get("/api/automations/operators", params={"type": "number"}, headers=ADMIN)
        assert "greater_than" in r.json()["operators"]


class TestAuthorizationApi:
    def test_missing_header(self, client):
        assert client.get("/api/automations/triggers").status_code == 403

    def test_not_an_admin(self, client):
        r = client.post(
            "/api/automations/triggers/casting_approved/rules",
            json={"name": "x"},
            headers={"X-User-Email": "intern@example.com"},
        )
        assert r.status_code == 403


class TestRulesApi:
    def test_crud(self, client):
        rule = _create_rule(client)
        assert rule["conditions"] == {"all": []}

        r = client.patch(
            f"/api/automations/rules/{rule['id']}",
            json={"enabled": False, "expected_version": rule["version"]},
            headers=ADMIN,
        )
        assert r.status_code == 200
        assert r.json()["enabled"] is False
        assert r.json()["name"] == "Notify sales"

        listed = client.get("/api/automations/triggers/casting_approved/rules", headers=ADMIN).json()
        assert [x["id"] for x in listed] == [rule["id"]]

        assert client.delete(f"/api/automations/rules/{rule['id']}", headers=ADMIN).json() == {"ok": True}
        assert client.delete(f"/api/automations/rules/{rule['id']}", headers=ADMIN).status_code == 404

    def test_stale_version_is_409(self, client):
        rule = _create_rule(client)
        client.patch(f"/api/automations/rules/{rule['id']}", json={"name": "b"}, headers=ADMIN)
        r = client.patch(
            f"/api/automations/rules/{rule['id']}",
            json={"name": "c", "expected_version": rule["version"]},
            headers=ADMIN,
        )
        assert r.status_code == 409

    def test_invalid_conditions(self, client):
        r = client.post(
            "/api/automations/triggers/casting_approved/rules",
            json={"name": "x", "conditions": {"all": [{"field": "n", "operator": "bogus", "value": 1}]}},
            headers=ADMIN,
        )
        assert r.status_code == 400
        assert r.json()["problems"]

    def test_reorder(self, client):
        a = _create_rule(client, name="a")
        b = _create_rule(client, name="b")
        r = client.put(
            "/api/automations/triggers/casting_approved/rules/order",
            json=[{"id": a["id"], "order": 2}, {"id": b["id"], "order": 1}],
            headers=ADMIN,
        )
        assert r.status_code == 200
        assert [x["id"] for x in r.json()] == [b["id"], a["id"]]


class TestActionsApi:
    def test_crud(self, client):
        rule = _create_rule(client)
        r = client.post(
            f"/api/automations/rules/{rule['id']}/actions",
            json={"name": "ping", "type": "slack_notification", "configuration": SLACK},
            headers=ADMIN,
        )
        assert r.status_code == 201
        action = r.json()

        r = client.patch(f"/api/automations/actions/{action['id']}", json={"name": "pong"}, headers=ADMIN)
        assert r.json()["name"] == "pong"

        listed = client.get(f"/api/automations/rules/{rule['id']}/actions", headers=ADMIN).json()
        assert [x["name"] for x in listed] == ["pong"]

        assert client.delete(f"/api/automations/actions/{action['id']}", headers=ADMIN).status_code == 200

    def test_unknown_type(self, client):
        rule = _create_rule(client)
        r = client.post(
            f"/api/automations/rules/{rule['id']}/actions",
            json={"name": "x", "type": "sms", "configuration": {}},
            headers=ADMIN,
        )
        assert r.status_code == 400


class TestRunsApi:
    def test_dry_run_then_logs(self, client, senders):
        rule = _create_rule(client)
        client.post(
            f"/api/automations/rules/{rule['id']}/actions",
            json={"name": "ping", "type": "slack_notification", "configuration": SLACK},
            headers=ADMIN,
        )

        r = client.post("/api/automations/triggers/casting_approved/test", headers=ADMIN)
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["parameters"]["approvedBy"] == "admin@example.com"
        assert len(body["logs"]) == 2
        assert senders.total_calls == 0

        logs = client.get(
            "/api/automations/logs",
            params={"trigger_name": "casting_approved", "status": "success", "limit": 1},
            headers=ADMIN,
        ).json()
        assert len(logs) == 1
        assert logs[0]["run_id"] == body["run_id"]

    def test_dry_run_with_unknown_record_source(self, client):
        r = client.post(
            "/api/automations/triggers/casting_approved/test",
            json={"record_id": "casting-42"},
            headers=ADMIN,
        )
        assert r.status_code == 400

    def test_limit_must_be_positive(self, client):
        assert client.get("/api/automations/logs", params={"limit": 0}, headers=ADMIN).status_code == 422


class TestStoreFailure:
    def test_store_error_is_503(self):
        class Down:
            def list_triggers(self, identity):
                raise StoreError("automation store unavailable: connection refused")

        app = create_app()
        app.dependency_overrides[get_service] = lambda: Down()
        r = TestClient(app).get("/api/automations/triggers", headers=ADMIN)
        assert r.status_code == 503
        assert r.json()["retryable"] is True


def test_healthz():
    assert TestClient(create_app()).get("/healthz").json() == {"ok": True}
