"""Tests for the trigger catalog."""

from app.automations import triggers


class TestCatalog:
    def test_list_in_declaration_order(self):
        names = [t["name"] for t in triggers.list_triggers()]
        assert names == [
            "casting_approved",
            "casting_invitation_accepted",
            "casting_status_changed",
            "creator_signed_up",
        ]
        assert all(set(t) == {"name", "description"} for t in triggers.list_triggers())

    def test_lookup(self):
        assert triggers.is_known("creator_signed_up")
        assert not triggers.is_known("casting_deleted")
        assert triggers.get_trigger("casting_deleted") is None

    def test_example_values_cover_parameters(self):
        """Synthetic test runs rely on every declared parameter having an example."""
        for trigger in triggers.all_triggers():
            assert set(trigger.parameter_names()) <= set(trigger.example_values)

    def test_full_dict(self):
        out = triggers.get_trigger("casting_status_changed").to_dict(full=True)
        statuses = {p["name"]: p for p in out["parameters"]}["newStatus"]["possible_values"]
        assert "approved_by_client" in statuses
        assert out["example_values"]["newStatus"] == "approved_by_client"


class TestOperatorsForType:
    def test_number(self):
        ops = triggers.operators_for_type("number")
        assert "greater_than" in ops
        assert "contains" not in ops

    def test_boolean(self):
        assert triggers.operators_for_type("boolean") == ["equals", "not_equals"]

    def test_string_has_membership(self):
        assert {"in", "not_in", "contains"} <= set(triggers.operators_for_type("string"))
