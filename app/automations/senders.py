# app/automations/senders.py
"""
Outbound delivery: Slack Web API, SMTP, plain HTTP webhooks.

Executors never talk to the network themselves; they render a message and
hand it to one of these senders. Every sender carries its own timeout and
raises DeliveryError on any failure (no retries here).
"""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import certifi
import requests

from .errors import DeliveryError

log = logging.getLogger("automation.senders")

SLACK_API_URL = "https://slack.com/api"


# ─────────────────────────────────────────────────────────────────────────────
# Slack
# ─────────────────────────────────────────────────────────────────────────────

class SlackSender:
    def __init__(
        self,
        bot_token: str = "",
        *,
        timeout: float = 10,
        insecure_tls: bool = False,
        api_url: str = SLACK_API_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.bot_token = (bot_token or "").strip()
        self.timeout = timeout
        self.insecure_tls = insecure_tls
        self.api_url = api_url.rstrip("/")
        self._session = session or requests.Session()

    def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        verify_arg = False if self.insecure_tls else certifi.where()
        try:
            r = self._session.post(
                f"{self.api_url}/{method}",
                json=payload,
                headers={"Authorization": f"Bearer {self.bot_token}"},
                timeout=self.timeout,
                verify=verify_arg,
            )
        except requests.exceptions.Timeout as e:
            raise DeliveryError(f"slack {method} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"slack {method} failed: {e}") from e

        if r.status_code != 200:
            raise DeliveryError(f"slack HTTP {r.status_code}: {r.text[:300]}")
        try:
            data = r.json()
        except ValueError as e:
            raise DeliveryError("slack returned a non-JSON response") from e
        return data

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        chat.postMessage. If the bot is not a member of the channel yet,
        join it once and retry.
        """
        if not self.bot_token:
            raise DeliveryError("slack bot token is not configured")

        data = self._call("chat.postMessage", payload)
        if not data.get("ok") and data.get("error") == "not_in_channel":
            channel = payload.get("channel")
            log.info("slack: bot not in channel %s, joining", channel)
            joined = self._call("conversations.join", {"channel": channel})
            if not joined.get("ok"):
                raise DeliveryError(f"Failed to join channel {channel}: {joined.get('error')}")
            data = self._call("chat.postMessage", payload)

        if not data.get("ok"):
            raise DeliveryError(f"slack API error: {data.get('error', 'unknown')}")
        return {"channel": data.get("channel"), "ts": data.get("ts")}


# ─────────────────────────────────────────────────────────────────────────────
# Email (SMTP)
# ─────────────────────────────────────────────────────────────────────────────

class EmailSender:
    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 587,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_addr: str = "automations@localhost",
        use_tls: bool = True,
        timeout: float = 10,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, to: str, subject: str, body: str, cc: Optional[List[str]] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        if cc:
            msg["Cc"] = ", ".join(cc)
        msg.set_content(body)
        return msg

    def send(self, to: str, subject: str, body: str, cc: Optional[List[str]] = None) -> Dict[str, Any]:
        if not self.smtp_host:
            raise DeliveryError("smtp host is not configured")

        msg = self.build_message(to, subject, body, cc)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"email to {to} failed: {e}") from e
        return {"to": to}


# ─────────────────────────────────────────────────────────────────────────────
# Webhook
# ─────────────────────────────────────────────────────────────────────────────

class WebhookSender:
    def __init__(self, *, timeout: float = 10, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": headers or {}, "timeout": self.timeout}
        if body is not None and method != "GET":
            if isinstance(body, (dict, list)):
                kwargs["json"] = body
            else:
                kwargs["data"] = str(body).encode("utf-8")

        try:
            r = self._session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise DeliveryError(f"webhook {method} {url} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"webhook {method} {url} failed: {e}") from e

        if r.status_code >= 400:
            raise DeliveryError(f"webhook HTTP {r.status_code}: {r.text[:300]}")
        return {"status_code": r.status_code}
