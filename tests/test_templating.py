"""Tests for placeholder rendering."""

import pytest

from app.automations.errors import ConfigurationError
from app.automations.templating import TEST_PREFIX, placeholders, render, render_json, unknown_placeholders


class TestRender:
    def test_substitutes_placeholders(self):
        out = render("{{ castingTitle }} for {{clientName}}", {"castingTitle": "Summer", "clientName": "Brand"})
        assert out == "Summer for Brand"

    def test_nested_paths_and_scalars(self):
        params = {"casting": {"id": 7}, "flag": True, "none": None}
        assert render("{{casting.id}}/{{flag}}/{{none}}", params) == "7/true/"

    def test_missing_field_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="missingOne"):
            render("Hi {{missingOne}}", {})

    def test_test_prefix(self):
        assert render("hello", {}, is_test=True) == TEST_PREFIX + "hello"

    def test_text_without_placeholders(self):
        assert render("plain", {"a": 1}) == "plain"


class TestRenderJson:
    def test_renders_every_string(self):
        tpl = {"blocks": [{"type": "section", "text": {"text": "*{{castingTitle}}*"}}], "count": 2}
        out = render_json(tpl, {"castingTitle": "Summer"})
        assert out == {"blocks": [{"type": "section", "text": {"text": "*Summer*"}}], "count": 2}

    def test_does_not_mutate_template(self):
        tpl = {"a": "{{x}}"}
        render_json(tpl, {"x": "1"})
        assert tpl == {"a": "{{x}}"}


class TestPlaceholders:
    def test_collects_from_nested_templates_once(self):
        tpl = {"text": "{{a}} and {{ b.c }}", "blocks": [{"t": "{{a}}"}, 3]}
        assert placeholders(tpl) == ["a", "b.c"]

    def test_unknown_checks_the_first_segment(self):
        assert unknown_placeholders("{{casting.status}} {{castng}}", ["casting"]) == ["castng"]
