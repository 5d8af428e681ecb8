# app/automations/__init__.py
"""
Automation rule engine.

Contents:
  - triggers.py        → catalog of business events and their parameters
  - types.py           → rules, conditions, actions, log entries
  - evaluator.py       → condition checks
  - templating.py      → {{placeholder}} rendering for messages
  - senders.py         → Slack / SMTP / webhook delivery
  - executors.py       → one executor per action type
  - dispatcher.py      → runs the actions of a matched rule
  - storage.py         → storage interfaces + repository
  - repositories.py    → in-memory implementations
  - sql_repositories.py→ SQLAlchemy implementations
  - journal.py         → execution log writer
  - engine.py          → trigger entry point
  - service.py         → management operations
  - samples.py         → parameters for test runs
  - loader.py          → YAML seed file
  - runtime.py         → process-wide wiring
"""
from .engine import AutomationEngine
from .dispatcher import ActionDispatcher
from .evaluator import ConditionEvaluator
from .storage import AutomationRepository

__all__ = [
    "AutomationEngine",
    "ActionDispatcher",
    "ConditionEvaluator",
    "AutomationRepository",
]
