# app/automations/samples.py
"""
Parameters for test runs.

Without a record id a test run uses the trigger's example values (with a
fresh signup date and the caller as the acting user). With a record id the
parameters come from a RecordSource, i.e. derived from a real casting or
creator the way the business process would build them.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, Mapping, Optional

from . import triggers
from .errors import UnknownTriggerError
from .types import utcnow

# parameters that name the acting user, per trigger
_ACTOR_PARAMETER = {
    "casting_approved": "approvedBy",
    "casting_status_changed": "changedBy",
}


def synthetic_parameters(trigger_name: str, *, executed_by: Optional[str] = None) -> Dict[str, Any]:
    trigger = triggers.get_trigger(trigger_name)
    if trigger is None:
        raise UnknownTriggerError(trigger_name)

    params = copy.deepcopy(trigger.example_values)
    if "signupDate" in params:
        params["signupDate"] = utcnow().isoformat()
    actor = _ACTOR_PARAMETER.get(trigger_name)
    if actor and executed_by:
        params[actor] = executed_by
    return params


class RecordSource(ABC):
    """Looks up a real record and builds the trigger parameters for it."""

    @abstractmethod
    def parameters_for(self, trigger_name: str, record_id: str) -> Optional[Dict[str, Any]]:
        """None when the record does not exist."""
        raise NotImplementedError


class InMemoryRecordSource(RecordSource):
    """
    Records by id, each a ready parameter bag. A record registered for a
    specific trigger wins over one registered for any trigger.
    """

    def __init__(self) -> None:
        self._records: Dict[tuple, Dict[str, Any]] = {}
        self._lock = RLock()

    def add(self, record_id: str, parameters: Mapping[str, Any], *, trigger_name: Optional[str] = None) -> None:
        with self._lock:
            self._records[(trigger_name, str(record_id))] = dict(parameters)

    def parameters_for(self, trigger_name: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            found = self._records.get((trigger_name, record_id))
            if found is None:
                found = self._records.get((None, record_id))
            return copy.deepcopy(found) if found is not None else None
