# app/automations/executors.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .senders import EmailSender, SlackSender, WebhookSender
from .templating import TEST_PREFIX, render, render_json
from .types import (
    ActionConfiguration,
    ActionType,
    EmailConfig,
    SlackConfig,
    WebhookConfig,
    parse_configuration,
)


@dataclass
class ExecutionContext:
    """What an executor knows about the run it is part of."""
    trigger_name: str
    parameters: Mapping[str, Any]
    is_test: bool = False
    executed_by: Optional[str] = None
    run_id: Optional[str] = None


@dataclass
class PreparedDelivery:
    """A fully rendered message, ready to be handed to a sender."""
    preview: str
    request: Dict[str, Any] = field(default_factory=dict)


class Executor(ABC):
    """
    Performs one action type. Rendering (prepare) is identical in test and
    live mode; only deliver() touches the network and is skipped in tests.
    """

    action_type: ActionType

    def execute(self, raw_configuration: Any, ctx: ExecutionContext) -> Dict[str, Any]:
        """
        Returns outcome details. Raises ConfigurationError for unusable
        configuration/templates and DeliveryError for failed delivery.
        """
        config = parse_configuration(self.action_type, raw_configuration)
        prepared = self.prepare(config, ctx)
        if ctx.is_test:
            return {"message": f"would have sent {prepared.preview}", "request": prepared.request}
        result = self.deliver(prepared) or {}
        return {"message": f"sent {prepared.preview}", "result": result}

    @abstractmethod
    def prepare(self, config: ActionConfiguration, ctx: ExecutionContext) -> PreparedDelivery:
        raise NotImplementedError

    @abstractmethod
    def deliver(self, prepared: PreparedDelivery) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


# --------------------------------------------------------------------- #
# Slack
# --------------------------------------------------------------------- #
class SlackNotificationExecutor(Executor):
    action_type = ActionType.SLACK_NOTIFICATION

    def __init__(self, sender: SlackSender) -> None:
        self._sender = sender

    def prepare(self, config: SlackConfig, ctx: ExecutionContext) -> PreparedDelivery:
        payload: Dict[str, Any] = {
            "channel": config.channel_id,
            "unfurl_links": False,
            "unfurl_media": False,
        }
        if config.use_blocks and config.blocks_template:
            payload["blocks"] = render_json(config.blocks_template, ctx.parameters)
            # fallback text for notifications / clients without blocks
            text = f"Automation notification from {ctx.trigger_name}"
            payload["text"] = TEST_PREFIX + text if ctx.is_test else text
        else:
            payload["text"] = render(config.message_template or "", ctx.parameters, is_test=ctx.is_test)

        return PreparedDelivery(
            preview=f"Slack message to {config.channel_id}: {payload['text'][:200]}",
            request=payload,
        )

    def deliver(self, prepared: PreparedDelivery) -> Optional[Dict[str, Any]]:
        return self._sender.send(prepared.request)


# --------------------------------------------------------------------- #
# Email
# --------------------------------------------------------------------- #
class EmailExecutor(Executor):
    action_type = ActionType.EMAIL

    def __init__(self, sender: EmailSender) -> None:
        self._sender = sender

    def prepare(self, config: EmailConfig, ctx: ExecutionContext) -> PreparedDelivery:
        to = render(config.to, ctx.parameters)
        request = {
            "to": to,
            "subject": render(config.subject, ctx.parameters, is_test=ctx.is_test),
            "body": render(config.body, ctx.parameters),
            "cc": [render(addr, ctx.parameters) for addr in config.cc],
        }
        return PreparedDelivery(preview=f"email to {to}: {request['subject']}", request=request)

    def deliver(self, prepared: PreparedDelivery) -> Optional[Dict[str, Any]]:
        req = prepared.request
        return self._sender.send(req["to"], req["subject"], req["body"], cc=req["cc"])


# --------------------------------------------------------------------- #
# Webhook
# --------------------------------------------------------------------- #
class WebhookExecutor(Executor):
    action_type = ActionType.WEBHOOK

    def __init__(self, sender: WebhookSender) -> None:
        self._sender = sender

    def prepare(self, config: WebhookConfig, ctx: ExecutionContext) -> PreparedDelivery:
        url = render(config.url, ctx.parameters)
        headers = {k: render(v, ctx.parameters) for k, v in config.headers.items()}
        body = render_json(config.body_template, ctx.parameters)
        if ctx.is_test:
            headers.setdefault("X-Automation-Test", "true")
        return PreparedDelivery(
            preview=f"{config.method} {url}",
            request={"method": config.method, "url": url, "headers": headers, "body": body},
        )

    def deliver(self, prepared: PreparedDelivery) -> Optional[Dict[str, Any]]:
        req = prepared.request
        return self._sender.send(req["method"], req["url"], headers=req["headers"], body=req["body"])


# --------------------------------------------------------------------- #
# registry
# --------------------------------------------------------------------- #
def build_executors(
    *,
    slack: SlackSender,
    email: EmailSender,
    webhook: WebhookSender,
) -> Dict[str, Executor]:
    """Executor per action type value ("slack_notification", "email", "webhook")."""
    executors = [
        SlackNotificationExecutor(slack),
        EmailExecutor(email),
        WebhookExecutor(webhook),
    ]
    return {e.action_type.value: e for e in executors}
