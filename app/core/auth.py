# app/core/auth.py
"""
Who may manage automations.

Authentication itself belongs to the identity provider in front of this
service; requests reach us with the user's email in `X-User-Email`.
Here we only decide whether that identity is an automation admin.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from fastapi import Header

IDENTITY_HEADER = "X-User-Email"


class Authorizer(ABC):
    @abstractmethod
    def is_authorized(self, identity: Optional[str]) -> bool:
        raise NotImplementedError


class AllowListAuthorizer(Authorizer):
    """Admins listed in config (`automations.admins`), compared case-insensitively."""

    def __init__(self, admins: Iterable[str]) -> None:
        self._admins = frozenset(a.strip().lower() for a in admins if a and a.strip())

    def is_authorized(self, identity: Optional[str]) -> bool:
        if not identity:
            return False
        return identity.strip().lower() in self._admins


def current_identity(x_user_email: Optional[str] = Header(default=None)) -> Optional[str]:
    """FastAPI dependency: the caller's identity, None when the header is absent."""
    if x_user_email is None:
        return None
    return x_user_email.strip() or None
