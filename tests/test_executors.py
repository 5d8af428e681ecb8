"""Tests for executors and the outbound senders."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.automations.errors import ConfigurationError, DeliveryError
from app.automations.executors import ExecutionContext
from app.automations.senders import EmailSender, SlackSender, WebhookSender


def _response(status=200, data=None, text=""):
    r = MagicMock()
    r.status_code = status
    r.text = text
    r.json.return_value = data if data is not None else {}
    return r


PARAMS = {"castingTitle": "Summer", "clientName": "Brand", "creatorEmail": "jane@example.com"}


class TestSlackExecutor:
    def test_live_send(self, executors, senders):
        ctx = ExecutionContext("casting_approved", PARAMS)
        out = executors["slack_notification"].execute(
            {"channel_id": "C1", "message_template": "{{castingTitle}} approved"}, ctx
        )
        assert out["message"].startswith("sent Slack message to C1")
        assert senders.slack.calls[0]["payload"]["text"] == "Summer approved"
        assert senders.slack.calls[0]["payload"]["channel"] == "C1"

    def test_test_mode_does_not_send(self, executors, senders):
        ctx = ExecutionContext("casting_approved", PARAMS, is_test=True)
        out = executors["slack_notification"].execute(
            {"channelId": "C1", "messageTemplate": "{{castingTitle}} approved"}, ctx
        )
        assert out["message"].startswith("would have sent")
        assert out["request"]["text"] == "[TEST] Summer approved"
        assert senders.slack.calls == []

    def test_blocks(self, executors, senders):
        ctx = ExecutionContext("casting_approved", PARAMS)
        executors["slack_notification"].execute(
            {
                "channel_id": "C1",
                "use_blocks": True,
                "blocks_template": [{"type": "section", "text": {"type": "mrkdwn", "text": "*{{castingTitle}}*"}}],
            },
            ctx,
        )
        payload = senders.slack.calls[0]["payload"]
        assert payload["blocks"][0]["text"]["text"] == "*Summer*"
        assert payload["text"]

    def test_missing_template(self, executors):
        with pytest.raises(ConfigurationError):
            executors["slack_notification"].execute({"channel_id": "C1"}, ExecutionContext("x", PARAMS))

    def test_missing_placeholder(self, executors, senders):
        with pytest.raises(ConfigurationError):
            executors["slack_notification"].execute(
                {"channel_id": "C1", "message_template": "{{nope}}"}, ExecutionContext("x", PARAMS)
            )
        assert senders.slack.calls == []


class TestEmailExecutor:
    def test_renders_all_fields(self, executors, senders):
        executors["email"].execute(
            {"to": "{{creatorEmail}}", "subject": "Hi {{clientName}}", "body": "About {{castingTitle}}", "cc": "a@x.nl, b@x.nl"},
            ExecutionContext("x", PARAMS),
        )
        call = senders.email.calls[0]
        assert call == {
            "to": "jane@example.com",
            "subject": "Hi Brand",
            "body": "About Summer",
            "cc": ["a@x.nl", "b@x.nl"],
        }

    def test_test_mode_prefixes_subject(self, executors, senders):
        out = executors["email"].execute(
            {"to": "ops@x.nl", "subject": "Hi", "body": "b"},
            ExecutionContext("x", PARAMS, is_test=True),
        )
        assert out["request"]["subject"] == "[TEST] Hi"
        assert senders.email.calls == []


class TestWebhookExecutor:
    def test_json_body(self, executors, senders):
        executors["webhook"].execute(
            {"url": "https://hooks.test/{{clientName}}", "method": "put", "body_template": {"title": "{{castingTitle}}"}},
            ExecutionContext("x", PARAMS),
        )
        call = senders.webhook.calls[0]
        assert call["method"] == "PUT"
        assert call["url"] == "https://hooks.test/Brand"
        assert call["body"] == {"title": "Summer"}

    def test_bad_method(self, executors):
        with pytest.raises(ConfigurationError):
            executors["webhook"].execute({"url": "https://x", "method": "PATCH"}, ExecutionContext("x", PARAMS))


class TestSlackSender:
    def test_no_token(self):
        with pytest.raises(DeliveryError):
            SlackSender("").send({"channel": "C1", "text": "hi"})

    def test_joins_channel_and_retries(self):
        session = MagicMock()
        session.post.side_effect = [
            _response(data={"ok": False, "error": "not_in_channel"}),
            _response(data={"ok": True}),
            _response(data={"ok": True, "channel": "C1", "ts": "1.2"}),
        ]
        sender = SlackSender("xoxb-1", session=session)
        assert sender.send({"channel": "C1", "text": "hi"}) == {"channel": "C1", "ts": "1.2"}
        urls = [c.args[0] for c in session.post.call_args_list]
        assert urls == [
            "https://slack.com/api/chat.postMessage",
            "https://slack.com/api/conversations.join",
            "https://slack.com/api/chat.postMessage",
        ]
        assert session.post.call_args_list[0].kwargs["headers"]["Authorization"] == "Bearer xoxb-1"

    def test_join_failure(self):
        session = MagicMock()
        session.post.side_effect = [
            _response(data={"ok": False, "error": "not_in_channel"}),
            _response(data={"ok": False, "error": "is_archived"}),
        ]
        with pytest.raises(DeliveryError, match="is_archived"):
            SlackSender("xoxb-1", session=session).send({"channel": "C1", "text": "hi"})

    def test_api_error(self):
        session = MagicMock()
        session.post.return_value = _response(data={"ok": False, "error": "channel_not_found"})
        with pytest.raises(DeliveryError, match="channel_not_found"):
            SlackSender("xoxb-1", session=session).send({"channel": "C1", "text": "hi"})

    def test_timeout(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.Timeout()
        with pytest.raises(DeliveryError, match="timed out"):
            SlackSender("xoxb-1", timeout=1, session=session).send({"channel": "C1", "text": "hi"})


class TestWebhookSender:
    def test_http_error(self):
        session = MagicMock()
        session.request.return_value = _response(status=500, text="boom")
        with pytest.raises(DeliveryError, match="500"):
            WebhookSender(session=session).send("POST", "https://x", body={"a": 1})

    def test_json_and_text_bodies(self):
        session = MagicMock()
        session.request.return_value = _response(status=204)
        sender = WebhookSender(timeout=3, session=session)

        assert sender.send("POST", "https://x", body={"a": 1}) == {"status_code": 204}
        assert session.request.call_args.kwargs["json"] == {"a": 1}
        assert session.request.call_args.kwargs["timeout"] == 3

        sender.send("POST", "https://x", body="plain")
        assert session.request.call_args.kwargs["data"] == b"plain"

        sender.send("GET", "https://x", body={"ignored": True})
        assert "json" not in session.request.call_args.kwargs


class TestEmailSender:
    def test_no_host(self):
        with pytest.raises(DeliveryError):
            EmailSender("").send("a@x.nl", "s", "b")

    def test_sends_with_starttls_and_login(self):
        with patch("app.automations.senders.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            sender = EmailSender("smtp.test", 2525, username="u", password="p", from_addr="bot@x.nl")
            assert sender.send("a@x.nl", "Subject", "Body", cc=["c@x.nl"]) == {"to": "a@x.nl"}

        smtp_cls.assert_called_once_with("smtp.test", 2525, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        msg = server.send_message.call_args.args[0]
        assert msg["Cc"] == "c@x.nl"
        assert msg["From"] == "bot@x.nl"

    def test_smtp_failure(self):
        with patch("app.automations.senders.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
            with pytest.raises(DeliveryError):
                EmailSender("smtp.test").send("a@x.nl", "s", "b")
