# app/automations/loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from . import triggers
from .errors import ConfigurationError
from .evaluator import validate_conditions
from .samples import InMemoryRecordSource
from .storage import AutomationRepository
from .templating import unknown_placeholders
from .types import (
    ActionType,
    AutomationAction,
    AutomationRule,
    default_conditions,
    parse_configuration,
    utcnow,
)

log = logging.getLogger("automation")


def _order(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{where}: execution_order must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: execution_order must be an integer, got {value!r}") from exc


def _parse_action(rule: AutomationRule, idx: int, a: Dict[str, Any], where: str) -> AutomationAction:
    if not isinstance(a, dict):
        raise ValueError(f"{where}: action must be a mapping")
    try:
        at = ActionType(str(a.get("type", "")).lower())
    except ValueError as exc:
        raise ValueError(f"{where}: unknown action type {a.get('type')!r}") from exc

    configuration = a.get("configuration") or {}
    try:
        parse_configuration(at, configuration)
    except ConfigurationError as exc:
        raise ValueError(f"{where}: {exc}") from exc

    trigger = triggers.get_trigger(rule.trigger_name)
    unknown = unknown_placeholders(configuration, trigger.parameter_names() + list(trigger.example_values))
    if unknown:
        raise ValueError(f"{where}: unknown template parameter(s): {', '.join(unknown)}")

    now = utcnow()
    return AutomationAction(
        id=str(a.get("id") or f"{rule.id}:a{idx + 1}"),
        rule_id=rule.id,
        name=str(a.get("name") or at.value),
        type=at.value,
        configuration=dict(configuration),
        execution_order=_order(a.get("execution_order", idx), where),
        enabled=bool(a.get("enabled", True)),
        created_at=now,
        updated_at=now,
    )


def _parse_rule(idx: int, rd: Dict[str, Any]) -> AutomationRule:
    where = f"rules[{idx}]"
    if not isinstance(rd, dict):
        raise ValueError(f"{where}: rule must be a mapping")

    trigger_name = str(rd.get("trigger") or rd.get("trigger_name") or "")
    if not triggers.is_known(trigger_name):
        raise ValueError(f"{where}: unknown trigger {trigger_name!r}")

    conditions = rd.get("conditions") or default_conditions()
    problems = validate_conditions(conditions)
    if problems:
        raise ValueError(f"{where}: invalid conditions: {'; '.join(problems)}")

    rid = str(rd.get("id") or f"{trigger_name}:{idx + 1}")
    now = utcnow()
    return AutomationRule(
        id=rid,
        trigger_name=trigger_name,
        name=str(rd.get("name") or rid),
        description=rd.get("description"),
        conditions=conditions,
        execution_order=_order(rd.get("execution_order", idx), where),
        enabled=bool(rd.get("enabled", True)),
        created_at=now,
        updated_at=now,
    )


def load_rules_from_yaml(
    path: str,
    repo: AutomationRepository,
    *,
    records: Optional[InMemoryRecordSource] = None,
) -> List[AutomationRule]:
    """
    Seed rules (and sample records for test runs) from a YAML file:

    rules:
      - id: "approved-slack"
        trigger: "casting_approved"
        name: "Notify #castings on approval"
        conditions:
          all:
            - field: "chosenCreatorsCount"
              operator: "greater_than"
              value: 0
        actions:
          - name: "Slack"
            type: "slack_notification"
            configuration:
              channel_id: "C0123456"
              message_template: "{{castingTitle}} approved by {{approvedBy}}"

    records:
      - id: "casting-42"
        trigger: "casting_approved"     # optional
        parameters: {castingTitle: "Summer", chosenCreatorsCount: 3}

    The whole file is validated before anything is written. Rules whose id
    already exists in the store are left alone, so seeding a persistent
    store on every start is harmless.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"rules file not found: {path}")

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    parsed = []
    for idx, rd in enumerate(data.get("rules") or []):
        rule = _parse_rule(idx, rd)
        actions = [
            _parse_action(rule, j, a, f"rules[{idx}].actions[{j}]")
            for j, a in enumerate(rd.get("actions") or [])
        ]
        parsed.append((rule, actions))

    seed_records = []
    for idx, rec in enumerate(data.get("records") or []):
        if not isinstance(rec, dict) or not rec.get("id"):
            raise ValueError(f"{path}: records[{idx}] needs an id")
        seed_records.append(rec)

    loaded: List[AutomationRule] = []
    for rule, actions in parsed:
        if repo.get_rule(rule.id) is not None:
            log.debug("seed rule %s already present, skipped", rule.id)
            continue
        repo.create_rule(rule)
        for action in actions:
            repo.create_action(action)
        loaded.append(rule)

    if records is not None:
        for rec in seed_records:
            records.add(str(rec["id"]), rec.get("parameters") or {}, trigger_name=rec.get("trigger"))

    log.info("automation seed %s: %d rule(s) added", path, len(loaded))
    return loaded
