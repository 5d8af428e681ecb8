"""Tests for seeding rules from YAML."""

from pathlib import Path

import pytest

from app.automations.loader import load_rules_from_yaml
from app.automations.samples import InMemoryRecordSource

EXAMPLE = Path(__file__).resolve().parent.parent / "rules.example.yaml"

VALID = """
rules:
  - trigger: casting_approved
    name: First
    actions:
      - type: slack_notification
        configuration: {channel_id: C1, message_template: "{{castingTitle}}"}
      - type: webhook
        configuration: {url: "https://hooks.test"}
  - trigger: creator_signed_up
    name: Second
    enabled: false
records:
  - id: r-1
    parameters: {castingTitle: Winter}
"""


def _write(tmp_path, text):
    p = tmp_path / "rules.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


class TestLoader:
    def test_loads_rules_actions_and_records(self, tmp_path, repo):
        records = InMemoryRecordSource()
        loaded = load_rules_from_yaml(_write(tmp_path, VALID), repo, records=records)

        assert [r.id for r in loaded] == ["casting_approved:1", "creator_signed_up:2"]
        actions = repo.list_actions("casting_approved:1")
        assert [a.id for a in actions] == ["casting_approved:1:a1", "casting_approved:1:a2"]
        assert [a.type for a in actions] == ["slack_notification", "webhook"]
        assert repo.get_rule("casting_approved:1").conditions == {"all": []}
        assert repo.rules_for("creator_signed_up") == []
        assert records.parameters_for("casting_approved", "r-1") == {"castingTitle": "Winter"}

    def test_seeding_twice_keeps_existing(self, tmp_path, repo):
        path = _write(tmp_path, VALID)
        load_rules_from_yaml(path, repo)
        repo.update_rule("casting_approved:1", {"name": "Edited in the UI"})

        assert load_rules_from_yaml(path, repo) == []
        assert repo.get_rule("casting_approved:1").name == "Edited in the UI"
        assert len(repo.list_actions("casting_approved:1")) == 2

    def test_example_file(self, repo):
        records = InMemoryRecordSource()
        loaded = load_rules_from_yaml(str(EXAMPLE), repo, records=records)
        assert {r.id for r in loaded} == {"approved-notify-castings", "signup-welcome-organic"}
        assert records.parameters_for("casting_approved", "casting-42")["chosenCreatorsCount"] == 3

    def test_missing_file(self, tmp_path, repo):
        with pytest.raises(FileNotFoundError):
            load_rules_from_yaml(str(tmp_path / "nope.yaml"), repo)

    @pytest.mark.parametrize("text,fragment", [
        ("rules:\n  - trigger: casting_deleted\n", "unknown trigger"),
        ("rules:\n  - trigger: casting_approved\n    conditions: {all: [{field: a, operator: bogus, value: 1}]}\n",
         "invalid conditions"),
        ("rules:\n  - trigger: casting_approved\n    actions: [{type: sms}]\n", "unknown action type"),
        ("rules:\n  - trigger: casting_approved\n    actions: [{type: email, configuration: {to: a@x.nl}}]\n",
         "Subject"),
        ("rules:\n  - trigger: casting_approved\n    execution_order: soon\n",
         r"rules\[0\]: execution_order must be an integer"),
        ("rules:\n  - trigger: casting_approved\n    actions: [{type: webhook, configuration: {url: x}, execution_order: [1]}]\n",
         r"rules\[0\]\.actions\[0\]: execution_order must be an integer"),
        ("rules:\n  - trigger: casting_approved\n    actions: [{type: slack_notification, configuration: {channel_id: C1, message_template: \"{{creatorName}}\"}}]\n",
         r"rules\[0\]\.actions\[0\]: unknown template parameter\(s\): creatorName"),
        ("records:\n  - parameters: {}\n", "needs an id"),
        ("- just a list\n", "top level"),
    ])
    def test_invalid_files(self, tmp_path, repo, text, fragment):
        with pytest.raises(ValueError, match=fragment):
            load_rules_from_yaml(_write(tmp_path, text), repo)

    def test_nothing_written_when_a_later_rule_is_bad(self, tmp_path, repo):
        text = VALID.replace("creator_signed_up", "casting_deleted")
        with pytest.raises(ValueError):
            load_rules_from_yaml(_write(tmp_path, text), repo)
        assert repo.list_rules("casting_approved") == []
