# app/automations/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigurationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === 1. ENUMS ================================================================

class ConditionOperator(Enum):
    """Operators a leaf condition can use."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"
    IS_SET = "is_set"
    IS_EMPTY = "is_empty"

    @classmethod
    def parse(cls, raw: Any) -> Optional["ConditionOperator"]:
        """Operator by name, also accepting the older long spellings. None if unknown."""
        name = str(raw or "").strip().lower()
        name = _OPERATOR_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


_OPERATOR_ALIASES = {
    "greater_than_or_equal": "greater_or_equal",
    "less_than_or_equal": "less_or_equal",
    "is_not_empty": "is_set",
}

UNARY_OPERATORS = frozenset({ConditionOperator.IS_SET, ConditionOperator.IS_EMPTY})
NUMERIC_OPERATORS = frozenset({
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_OR_EQUAL,
    ConditionOperator.LESS_OR_EQUAL,
})


class ActionType(Enum):
    SLACK_NOTIFICATION = "slack_notification"
    EMAIL = "email"
    WEBHOOK = "webhook"


class LogStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


# === 2. CONDITIONS ===========================================================

@dataclass(frozen=True)
class Condition:
    """
    Leaf condition.
    Examples:
      - field="casting.status", operator=equals, value="approved"
      - field="briefingCount", operator=greater_than, value=0
      - field="creatorPhone", operator=is_empty
    """
    field: str
    operator: ConditionOperator
    value: Any = None


@dataclass(frozen=True)
class ConditionGroup:
    """
    Either a conjunction (mode="all") or a disjunction (mode="any").
    Children are nested groups, leaf conditions or malformed nodes.
    """
    mode: str
    children: tuple = ()


@dataclass(frozen=True)
class MalformedNode:
    """A node that could not be understood. Always evaluates to False."""
    reason: str
    raw: Any = None


Node = Union[ConditionGroup, Condition, MalformedNode]


def default_conditions() -> Dict[str, Any]:
    return {"all": []}


def parse_node(raw: Any, path: str = "conditions") -> Node:
    """
    Turn a stored (nested dict) condition node into the typed tree.
    Never raises: anything unexpected becomes a MalformedNode.
    """
    if not isinstance(raw, dict):
        return MalformedNode(f"{path}: node must be an object", raw)

    has_all = "all" in raw
    has_any = "any" in raw
    if has_all or has_any:
        if has_all and has_any:
            return MalformedNode(f"{path}: node has both 'all' and 'any'", raw)
        mode = "all" if has_all else "any"
        items = raw.get(mode)
        if items is None:
            items = []
        if not isinstance(items, list):
            return MalformedNode(f"{path}.{mode}: must be a list", raw)
        children = tuple(
            parse_node(item, f"{path}.{mode}[{i}]") for i, item in enumerate(items)
        )
        return ConditionGroup(mode=mode, children=children)

    if "field" in raw or "operator" in raw:
        fld = raw.get("field")
        if not isinstance(fld, str) or not fld.strip():
            return MalformedNode(f"{path}: condition has no 'field'", raw)
        op = ConditionOperator.parse(raw.get("operator"))
        if op is None:
            return MalformedNode(
                f"{path}: unknown operator {raw.get('operator')!r}", raw
            )
        return Condition(field=fld.strip(), operator=op, value=raw.get("value"))

    return MalformedNode(f"{path}: node is neither a group ('all'/'any') nor a condition", raw)


def parse_conditions(raw: Any) -> Node:
    """Root of a rule's conditions. None/{} means the vacuously true group."""
    if raw is None or raw == {}:
        return ConditionGroup(mode="all")
    return parse_node(raw)


def node_to_dict(node: Node) -> Any:
    if isinstance(node, ConditionGroup):
        return {node.mode: [node_to_dict(c) for c in node.children]}
    if isinstance(node, Condition):
        out: Dict[str, Any] = {"field": node.field, "operator": node.operator.value}
        if node.operator not in UNARY_OPERATORS:
            out["value"] = node.value
        return out
    return node.raw


# === 3. ACTION CONFIGURATION =================================================

def _pick(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key; accepts both snake_case and the older camelCase."""
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{what} is required")
    return value


@dataclass
class SlackConfig:
    channel_id: str
    message_template: Optional[str] = None
    use_blocks: bool = False
    blocks_template: Any = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SlackConfig":
        cfg = cls(
            channel_id=_require_text(_pick(raw, "channel_id", "channelId"), "Channel ID"),
            message_template=_pick(raw, "message_template", "messageTemplate"),
            use_blocks=bool(_pick(raw, "use_blocks", "useBlocks", default=False)),
            blocks_template=_pick(raw, "blocks_template", "blocksTemplate"),
        )
        if cfg.use_blocks and cfg.blocks_template:
            return cfg
        if not cfg.message_template:
            raise ConfigurationError("No message template provided")
        return cfg


@dataclass
class EmailConfig:
    to: str
    subject: str
    body: str
    cc: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EmailConfig":
        cc = _pick(raw, "cc", default=[])
        if isinstance(cc, str):
            cc = [p.strip() for p in cc.split(",") if p.strip()]
        return cls(
            to=_require_text(_pick(raw, "to", "recipient"), "Recipient"),
            subject=_require_text(_pick(raw, "subject", "subject_template"), "Subject"),
            body=_require_text(_pick(raw, "body", "body_template", "bodyTemplate"), "Body"),
            cc=list(cc or []),
        )


WEBHOOK_METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass
class WebhookConfig:
    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    body_template: Any = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WebhookConfig":
        method = str(_pick(raw, "method", default="POST")).upper()
        if method not in WEBHOOK_METHODS:
            raise ConfigurationError(f"Unsupported webhook method: {method}")
        headers = _pick(raw, "headers", default={})
        if not isinstance(headers, dict):
            raise ConfigurationError("Webhook headers must be an object")
        return cls(
            url=_require_text(_pick(raw, "url"), "Webhook URL"),
            method=method,
            headers={str(k): str(v) for k, v in headers.items()},
            body_template=_pick(raw, "body_template", "bodyTemplate", "payload_template"),
        )


ActionConfiguration = Union[SlackConfig, EmailConfig, WebhookConfig]

_CONFIG_TYPES = {
    ActionType.SLACK_NOTIFICATION: SlackConfig,
    ActionType.EMAIL: EmailConfig,
    ActionType.WEBHOOK: WebhookConfig,
}


def parse_configuration(action_type: ActionType, raw: Any) -> ActionConfiguration:
    """Typed configuration for an action; ConfigurationError if it is unusable."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Action configuration must be an object")
    return _CONFIG_TYPES[action_type].from_dict(raw)


# === 4. RULES, ACTIONS, LOG ==================================================

@dataclass
class AutomationRule:
    id: str
    trigger_name: str
    name: str
    description: Optional[str] = None
    # stored as the nested dict form; see parse_conditions()
    conditions: Dict[str, Any] = field(default_factory=default_conditions)
    execution_order: int = 0
    enabled: bool = True
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trigger_name": self.trigger_name,
            "name": self.name,
            "description": self.description,
            "conditions": self.conditions,
            "execution_order": self.execution_order,
            "enabled": self.enabled,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class AutomationAction:
    id: str
    rule_id: str
    name: str
    # raw string: rows written by older code may carry a type we do not know
    type: str
    configuration: Dict[str, Any] = field(default_factory=dict)
    execution_order: int = 0
    enabled: bool = True
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def action_type(self) -> Optional[ActionType]:
        try:
            return ActionType(self.type)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "name": self.name,
            "type": self.type,
            "configuration": self.configuration,
            "execution_order": self.execution_order,
            "enabled": self.enabled,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class AutomationLog:
    """One immutable record: a rule evaluation or an action attempt."""
    id: str
    run_id: str
    sequence: int
    trigger_name: str
    status: LogStatus
    executed_at: datetime
    is_test: bool = False
    rule_id: Optional[str] = None
    action_id: Optional[str] = None
    executed_by: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "run_id": self.run_id,
            "sequence": self.sequence,
            "trigger_name": self.trigger_name,
            "rule_id": self.rule_id,
            "action_id": self.action_id,
            "status": self.status.value,
            "executed_at": self.executed_at.isoformat(),
            "is_test": self.is_test,
            "executed_by": self.executed_by,
            "details": self.details,
            "parameters": self.parameters,
        }


@dataclass
class ActionOutcome:
    """Result of one action attempt; becomes one log entry."""
    action_id: str
    action_name: str
    action_type: str
    status: LogStatus
    message: str = ""
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == LogStatus.SUCCESS


@dataclass
class RunSummary:
    """What a trigger invocation produced. Outcomes live in the log."""
    run_id: str
    trigger_name: str
    is_test: bool
    parameters: Dict[str, Any]
    logs: List[AutomationLog] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(e.status != LogStatus.ERROR for e in self.logs)

    @property
    def matched_rule_ids(self) -> List[str]:
        return [
            e.rule_id for e in self.logs
            if e.rule_id and e.action_id is None and e.status != LogStatus.SKIPPED
        ]
