# app/automations/templating.py
"""
Placeholder substitution for action templates.

    "New casting {{ castingTitle }} for {{client.name}}"

Placeholders are dot paths into the trigger parameters (same lookup as
conditions). A placeholder that does not resolve is a configuration error:
the action is logged as `error` instead of sending a half-filled message.
"""
from __future__ import annotations

import re
from typing import Any, List, Mapping

from .errors import ConfigurationError
from .evaluator import as_text, is_missing, resolve_path

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")
TEST_PREFIX = "[TEST] "


def render(template: str, parameters: Mapping[str, Any], *, is_test: bool = False) -> str:
    missing: List[str] = []

    def _sub(m: "re.Match[str]") -> str:
        value = resolve_path(parameters, m.group(1))
        if is_missing(value):
            missing.append(m.group(1))
            return m.group(0)
        return as_text(value)

    result = PLACEHOLDER_RE.sub(_sub, template or "")
    if missing:
        names = ", ".join(sorted(set(missing)))
        raise ConfigurationError(f"Template references missing field(s): {names}")
    if is_test:
        result = TEST_PREFIX + result
    return result


def render_json(template: Any, parameters: Mapping[str, Any]) -> Any:
    """Recursively render every string inside a JSON-like structure (Slack blocks, webhook bodies)."""
    if isinstance(template, str):
        return render(template, parameters)
    if isinstance(template, list):
        return [render_json(item, parameters) for item in template]
    if isinstance(template, dict):
        return {k: render_json(v, parameters) for k, v in template.items()}
    return template


def placeholders(template: Any) -> List[str]:
    """Placeholder paths used anywhere in a string or JSON-like template, first occurrence first."""
    found: List[str] = []

    def _walk(node: Any) -> None:
        if isinstance(node, str):
            for m in PLACEHOLDER_RE.finditer(node):
                if m.group(1) not in found:
                    found.append(m.group(1))
        elif isinstance(node, list):
            for item in node:
                _walk(item)
        elif isinstance(node, dict):
            for value in node.values():
                _walk(value)

    _walk(template)
    return found


def unknown_placeholders(template: Any, available: List[str]) -> List[str]:
    """Placeholders whose first path segment is not one of `available`."""
    allowed = set(available)
    return [p for p in placeholders(template) if p.split(".", 1)[0] not in allowed]
