# app/automations/triggers.py
"""
Trigger catalog: the business events the engine can react to.

Defined in code, never persisted. Declaration order is the listing order.
Callers (casting lifecycle, creator signup, invitation responses) own the
contract of which parameters each trigger carries; the lists below are what
the management UI offers for conditions and templates.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .types import ConditionOperator


@dataclass(frozen=True)
class TriggerParameter:
    name: str
    type: str  # "string" | "number" | "boolean"
    description: str
    possible_values: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
        }
        if self.possible_values:
            out["possible_values"] = list(self.possible_values)
        return out


@dataclass(frozen=True)
class Trigger:
    name: str
    description: str
    parameters: Tuple[TriggerParameter, ...] = ()
    example_values: Dict[str, Any] = field(default_factory=dict)

    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def to_dict(self, *, full: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "description": self.description}
        if full:
            out["parameters"] = [p.to_dict() for p in self.parameters]
            out["example_values"] = dict(self.example_values)
        return out


# ---------------------------------------------------------------------------
# shared parameter definitions
# ---------------------------------------------------------------------------

CASTING_STATUSES = (
    "draft",
    "inviting",
    "check_intern",
    "selecting",
    "send_client_feedback",
    "approved_by_client",
    "shooting",
    "done",
)

_P = TriggerParameter

_CASTING_ID = _P("castingId", "string", "Unique identifier for the casting")
_CASTING_TITLE = _P("castingTitle", "string", "Title/name of the casting")
_CLIENT_NAME = _P("clientName", "string", "Name of the client company")
_CREATOR_ID = _P("creatorId", "string", "Unique identifier for the creator")
_BRIEFING_STATUS = _P(
    "briefingStatus", "string", "Status of briefing: ready or not_ready",
    ("ready", "not_ready"),
)
_BRIEFING_COUNT = _P("briefingCount", "number", "Number of briefings linked to the casting")
_COMPENSATION = _P("compensation", "number", "Compensation amount for the casting")
_APP_URL = _P("appUrl", "string", "Base URL of the platform for creating links")

_EXAMPLE_APP_URL = "https://platform.example.com"


# ---------------------------------------------------------------------------
# the catalog
# ---------------------------------------------------------------------------

_TRIGGERS: Tuple[Trigger, ...] = (
    Trigger(
        name="casting_approved",
        description="Triggered when a client approves a casting and selects final creators",
        parameters=(
            _CASTING_ID,
            _CASTING_TITLE,
            _CLIENT_NAME,
            _P("chosenCreatorsCount", "number", "Number of creators selected"),
            _BRIEFING_STATUS,
            _BRIEFING_COUNT,
            _P("approvedBy", "string", "Email of the user who approved the casting"),
            _APP_URL,
        ),
        example_values={
            "castingId": "123e4567-e89b-12d3-a456-426614174000",
            "castingTitle": "Summer Fashion Campaign 2024",
            "clientName": "Fashion Brand XYZ",
            "chosenCreatorsCount": 5,
            "briefingStatus": "ready",
            "briefingCount": 2,
            "approvedBy": "client@example.com",
            "appUrl": _EXAMPLE_APP_URL,
        },
    ),
    Trigger(
        name="casting_invitation_accepted",
        description="Triggered when a creator accepts an invitation to a casting",
        parameters=(
            _CASTING_ID,
            _CASTING_TITLE,
            _CLIENT_NAME,
            _CREATOR_ID,
            _P("creatorName", "string", "Name of the creator who accepted"),
            _P("creatorEmail", "string", "Email of the creator who accepted"),
            _P("totalInvited", "number", "Total number of creators invited to this casting"),
            _P("totalAccepted", "number", "Total number of creators who have accepted so far"),
            _COMPENSATION,
            _BRIEFING_STATUS,
            _BRIEFING_COUNT,
            _APP_URL,
        ),
        example_values={
            "castingId": "123e4567-e89b-12d3-a456-426614174000",
            "castingTitle": "Summer Fashion Campaign 2024",
            "clientName": "Fashion Brand XYZ",
            "creatorId": "456e7890-a12b-34c5-d678-901234567890",
            "creatorName": "Jane Doe",
            "creatorEmail": "jane@example.com",
            "totalInvited": 20,
            "totalAccepted": 8,
            "compensation": 500,
            "briefingStatus": "not_ready",
            "briefingCount": 0,
            "appUrl": _EXAMPLE_APP_URL,
        },
    ),
    Trigger(
        name="casting_status_changed",
        description="Triggered when the status of a casting changes",
        parameters=(
            _CASTING_ID,
            _CASTING_TITLE,
            _CLIENT_NAME,
            _P("previousStatus", "string", "Previous status of the casting", CASTING_STATUSES),
            _P("newStatus", "string", "New status of the casting", CASTING_STATUSES),
            _P("chosenCreatorsCount", "number", "Number of creators selected by client"),
            _P("totalInvited", "number", "Total number of creators invited"),
            _P("totalAccepted", "number", "Total number of creators who accepted"),
            _COMPENSATION,
            _BRIEFING_STATUS,
            _BRIEFING_COUNT,
            _P("changedBy", "string", "Email of the user who changed the status"),
            _APP_URL,
        ),
        example_values={
            "castingId": "123e4567-e89b-12d3-a456-426614174000",
            "castingTitle": "Summer Fashion Campaign 2024",
            "clientName": "Fashion Brand XYZ",
            "previousStatus": "send_client_feedback",
            "newStatus": "approved_by_client",
            "chosenCreatorsCount": 5,
            "totalInvited": 20,
            "totalAccepted": 12,
            "compensation": 500,
            "briefingStatus": "ready",
            "briefingCount": 2,
            "changedBy": "admin@example.com",
            "appUrl": _EXAMPLE_APP_URL,
        },
    ),
    Trigger(
        name="creator_signed_up",
        description="Triggered when a new creator signs up and completes their profile",
        parameters=(
            _CREATOR_ID,
            _P("creatorName", "string", "Full name of the creator"),
            _P("creatorEmail", "string", "Email address of the creator"),
            _P("creatorPhone", "string", "Phone number of the creator"),
            _P("primaryLanguage", "string", "Primary language of the creator"),
            _P("hasProfilePicture", "boolean", "Whether the creator uploaded a profile picture"),
            _P("hasIntroductionVideo", "boolean", "Whether the creator uploaded an introduction video"),
            _P(
                "signupSource", "string", "Source of signup: import_invitation or organic",
                ("import_invitation", "organic"),
            ),
            _P("signupDate", "string", "Date and time when the creator signed up"),
            _APP_URL,
        ),
        example_values={
            "creatorId": "456e7890-a12b-34c5-d678-901234567890",
            "creatorName": "Jane Doe",
            "creatorEmail": "jane@example.com",
            "creatorPhone": "+31612345678",
            "primaryLanguage": "en",
            "hasProfilePicture": True,
            "hasIntroductionVideo": False,
            "signupSource": "import_invitation",
            "signupDate": "2024-01-15T14:30:00Z",
            "appUrl": _EXAMPLE_APP_URL,
        },
    ),
)

_BY_NAME: Dict[str, Trigger] = {t.name: t for t in _TRIGGERS}


def list_triggers() -> List[Dict[str, Any]]:
    """[{name, description}] in declaration order."""
    return [t.to_dict() for t in _TRIGGERS]


def all_triggers() -> List[Trigger]:
    return list(_TRIGGERS)


def get_trigger(name: str) -> Optional[Trigger]:
    return _BY_NAME.get(name)


def is_known(name: str) -> bool:
    return name in _BY_NAME


# ---------------------------------------------------------------------------
# operators offered per parameter type
# ---------------------------------------------------------------------------

_O = ConditionOperator

_OPERATORS_BY_TYPE: Dict[str, Tuple[ConditionOperator, ...]] = {
    "number": (
        _O.EQUALS, _O.NOT_EQUALS,
        _O.GREATER_THAN, _O.LESS_THAN, _O.GREATER_OR_EQUAL, _O.LESS_OR_EQUAL,
        _O.IS_EMPTY, _O.IS_SET,
    ),
    "string": (
        _O.EQUALS, _O.NOT_EQUALS,
        _O.CONTAINS, _O.NOT_CONTAINS,
        _O.IS_EMPTY, _O.IS_SET,
        _O.IN, _O.NOT_IN,
    ),
    "boolean": (_O.EQUALS, _O.NOT_EQUALS),
}


def operators_for_type(param_type: str) -> List[str]:
    ops = _OPERATORS_BY_TYPE.get(param_type, (_O.EQUALS, _O.NOT_EQUALS))
    return [o.value for o in ops]
