# app/automations/errors.py
from __future__ import annotations


class AutomationError(Exception):
    """Base class for everything the automation engine raises."""


# ======================================================================
# 1. CALLER ERRORS: rejected before any state change
# ======================================================================

class CallerError(AutomationError):
    """Bad request from the caller (business process or management API)."""


class UnknownTriggerError(CallerError):
    def __init__(self, trigger_name: str) -> None:
        super().__init__(f"Unknown trigger: {trigger_name}")
        self.trigger_name = trigger_name


class ValidationError(CallerError):
    """Malformed management request (bad conditions, bad configuration, ...)."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])


class NotFoundError(CallerError):
    pass


class UnauthorizedError(CallerError):
    pass


class ConcurrencyConflict(CallerError):
    """The row changed since the caller read it (version mismatch)."""


# ======================================================================
# 2. CONTAINED ERRORS: become `error` log entries, never abort a run
# ======================================================================

class ConfigurationError(AutomationError):
    """Unknown action type, malformed condition, template with a missing field."""


class DeliveryError(AutomationError):
    """The outbound call of an executor failed or timed out."""


# ======================================================================
# 3. STORE ERRORS: retryable, abort the whole invocation
# ======================================================================

class StoreError(AutomationError):
    retryable = True
