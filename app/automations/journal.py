# app/automations/journal.py
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from .storage import AutomationRepository
from .types import AutomationLog, LogStatus, utcnow

log = logging.getLogger("automation")


def json_safe(value: Any) -> Any:
    """Parameters come from business code; dates and the like are stored as text."""
    return json.loads(json.dumps(value, default=str))


class RunJournal:
    """
    Log entries of ONE trigger invocation.
    All entries share run_id; sequence counts up from 1 in write order.
    Every write goes to the store before write() returns.
    """

    def __init__(
        self,
        repo: AutomationRepository,
        *,
        trigger_name: str,
        parameters: Mapping[str, Any],
        is_test: bool = False,
        executed_by: Optional[str] = None,
    ) -> None:
        self._repo = repo
        self.run_id = str(uuid.uuid4())
        self.trigger_name = trigger_name
        self.is_test = is_test
        self.executed_by = executed_by
        self._parameters = json_safe(dict(parameters))
        self._sequence = 0
        self.entries: List[AutomationLog] = []

    def write(
        self,
        status: LogStatus,
        *,
        rule_id: Optional[str] = None,
        action_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AutomationLog:
        self._sequence += 1
        entry = AutomationLog(
            id=str(uuid.uuid4()),
            run_id=self.run_id,
            sequence=self._sequence,
            trigger_name=self.trigger_name,
            status=status,
            executed_at=utcnow(),
            is_test=self.is_test,
            rule_id=rule_id,
            action_id=action_id,
            executed_by=self.executed_by,
            details=json_safe(details or {}),
            parameters=self._parameters,
        )
        self._repo.append_log(entry)
        self.entries.append(entry)
        log.debug(
            "log #%d run=%s rule=%s action=%s status=%s",
            entry.sequence, self.run_id, rule_id, action_id, status.value,
        )
        return entry


class ExecutionLogWriter:
    """Append and query side of the execution log."""

    def __init__(self, repo: AutomationRepository) -> None:
        self._repo = repo

    def start_run(
        self,
        trigger_name: str,
        parameters: Mapping[str, Any],
        *,
        is_test: bool = False,
        executed_by: Optional[str] = None,
    ) -> RunJournal:
        return RunJournal(
            self._repo,
            trigger_name=trigger_name,
            parameters=parameters,
            is_test=is_test,
            executed_by=executed_by,
        )

    def append(self, entry: AutomationLog) -> None:
        self._repo.append_log(entry)

    def query(
        self,
        *,
        trigger_name: Optional[str] = None,
        rule_id: Optional[str] = None,
        status: Optional[LogStatus] = None,
        limit: Optional[int] = None,
    ) -> List[AutomationLog]:
        """Newest first; limit defaults to 100 and is capped at 1000."""
        return self._repo.query_logs(
            trigger_name=trigger_name, rule_id=rule_id, status=status, limit=limit
        )
