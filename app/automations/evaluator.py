# app/automations/evaluator.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Union

from .types import (
    Condition,
    ConditionGroup,
    ConditionOperator,
    MalformedNode,
    Node,
    NUMERIC_OPERATORS,
    UNARY_OPERATORS,
    parse_conditions,
)

_MISSING = object()


@dataclass
class Evaluation:
    matched: bool
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# value helpers
# ---------------------------------------------------------------------------

def resolve_path(parameters: Mapping[str, Any], path: str) -> Any:
    """
    Walk a dot path ("casting.status", "creators.0.email") through nested
    mappings and lists. Returns _MISSING when any segment is absent.
    A literal key containing dots wins over traversal.
    """
    if not isinstance(parameters, Mapping):
        return _MISSING
    if path in parameters:
        return parameters[path]

    cur: Any = parameters
    for part in path.split("."):
        if isinstance(cur, Mapping):
            if part not in cur:
                return _MISSING
            cur = cur[part]
        elif isinstance(cur, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            if not -len(cur) <= idx < len(cur):
                return _MISSING
            cur = cur[idx]
        else:
            return _MISSING
    return cur


def is_missing(value: Any) -> bool:
    return value is _MISSING


def as_number(value: Any) -> Union[float, None]:
    """int/float or a numeric string → float; everything else → None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            num = float(s)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_real_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """
    Text equality. Two strings are never parsed, so "01234" != "1234";
    numbers compare by value only when one side is an actual int/float.
    """
    if isinstance(actual, (list, tuple, dict)) or isinstance(expected, (list, tuple, dict)):
        return actual == expected
    if _is_real_number(actual) or _is_real_number(expected):
        a_num, e_num = as_number(actual), as_number(expected)
        if a_num is not None and e_num is not None:
            return a_num == e_num
    return as_text(actual) == as_text(expected)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return len(value) == 0
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _as_choices(value: Any) -> List[Any]:
    """`in` operand: a list, or a comma-separated string as the editor stores it."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    return []


# ---------------------------------------------------------------------------
# evaluator
# ---------------------------------------------------------------------------

class ConditionEvaluator:
    """
    Decides whether a rule applies to an event.
    Input:
      - the rule's condition tree (stored dict form or parsed nodes)
      - the event's parameter bag
    Output: bool. Never raises, never does I/O, keeps no state between calls.
    """

    # ------------------------------------------------------------------
    def evaluate_group(self, group: Any, parameters: Mapping[str, Any]) -> bool:
        node = group if isinstance(group, (ConditionGroup, Condition, MalformedNode)) else parse_conditions(group)
        return self._eval_node(node, parameters)

    def evaluate_with_warnings(self, group: Any, parameters: Mapping[str, Any]) -> Evaluation:
        node = group if isinstance(group, (ConditionGroup, Condition, MalformedNode)) else parse_conditions(group)
        return Evaluation(
            matched=self._eval_node(node, parameters),
            warnings=collect_malformed(node),
        )

    # ------------------------------------------------------------------
    def _eval_node(self, node: Node, parameters: Mapping[str, Any]) -> bool:
        if isinstance(node, ConditionGroup):
            if node.mode == "all":
                for child in node.children:
                    if not self._eval_node(child, parameters):
                        return False
                return True
            for child in node.children:
                if self._eval_node(child, parameters):
                    return True
            return False
        if isinstance(node, Condition):
            return self.evaluate(node, parameters)
        return False

    # ------------------------------------------------------------------
    def evaluate(self, cond: Condition, parameters: Mapping[str, Any]) -> bool:
        """One leaf condition."""
        actual = resolve_path(parameters, cond.field)
        op = cond.operator

        if actual is _MISSING:
            # absence is a non-match, except for "is it empty?"
            return op == ConditionOperator.IS_EMPTY

        expected = cond.value
        try:
            if op == ConditionOperator.EQUALS:
                return values_equal(actual, expected)
            if op == ConditionOperator.NOT_EQUALS:
                return not values_equal(actual, expected)
            if op in NUMERIC_OPERATORS:
                return self._compare_numbers(op, actual, expected)
            if op == ConditionOperator.CONTAINS:
                if isinstance(actual, str):
                    return as_text(expected) in actual
                if isinstance(actual, (list, tuple)):
                    return any(values_equal(item, expected) for item in actual)
                return False
            if op == ConditionOperator.NOT_CONTAINS:
                if isinstance(actual, str):
                    return as_text(expected) not in actual
                if isinstance(actual, (list, tuple)):
                    return not any(values_equal(item, expected) for item in actual)
                return True
            if op == ConditionOperator.IN:
                return any(values_equal(actual, c) for c in _as_choices(expected))
            if op == ConditionOperator.NOT_IN:
                return not any(values_equal(actual, c) for c in _as_choices(expected))
            if op == ConditionOperator.IS_SET:
                return not _is_blank(actual)
            if op == ConditionOperator.IS_EMPTY:
                return _is_blank(actual)
        except Exception:
            # odd values must not break a trigger run: treat as non-match
            return False
        return False

    @staticmethod
    def _compare_numbers(op: ConditionOperator, actual: Any, expected: Any) -> bool:
        a, e = as_number(actual), as_number(expected)
        if a is None or e is None:
            return False
        if op == ConditionOperator.GREATER_THAN:
            return a > e
        if op == ConditionOperator.LESS_THAN:
            return a < e
        if op == ConditionOperator.GREATER_OR_EQUAL:
            return a >= e
        return a <= e


# ---------------------------------------------------------------------------
# tree inspection
# ---------------------------------------------------------------------------

def collect_malformed(node: Node) -> List[str]:
    """Reasons of every malformed node in the tree, in document order."""
    if isinstance(node, MalformedNode):
        return [node.reason]
    if isinstance(node, ConditionGroup):
        out: List[str] = []
        for child in node.children:
            out.extend(collect_malformed(child))
        return out
    return []


def validate_conditions(raw: Any) -> List[str]:
    """
    Problems that make a condition tree unacceptable for saving.
    Stricter than evaluation: also checks operands.
    """
    problems: List[str] = []

    def _walk(node: Node, path: str) -> None:
        if isinstance(node, MalformedNode):
            problems.append(node.reason)
            return
        if isinstance(node, ConditionGroup):
            for i, child in enumerate(node.children):
                _walk(child, f"{path}.{node.mode}[{i}]")
            return
        op = node.operator
        if op in UNARY_OPERATORS:
            return
        if node.value is None:
            problems.append(f"{path}: operator '{op.value}' needs a value")
        elif op in NUMERIC_OPERATORS and as_number(node.value) is None:
            problems.append(f"{path}: operator '{op.value}' needs a numeric value")
        elif op in (ConditionOperator.IN, ConditionOperator.NOT_IN) and not _as_choices(node.value):
            problems.append(f"{path}: operator '{op.value}' needs a list of values")

    _walk(parse_conditions(raw), "conditions")
    return problems


_DEFAULT = ConditionEvaluator()


def evaluate(group: Any, parameters: Dict[str, Any]) -> bool:
    return _DEFAULT.evaluate_group(group, parameters)


def evaluate_with_warnings(group: Any, parameters: Dict[str, Any]) -> Evaluation:
    return _DEFAULT.evaluate_with_warnings(group, parameters)
