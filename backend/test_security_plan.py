"""Tests for the security plan checklist."""
import pytest

from security_plan import DEFAULT_SECTIONS, SecurityPlan


@pytest.fixture
def plan():
    return SecurityPlan()


def checked_ids(plan):
    return {c.id for s in plan.sections for c in s.checks if c.checked}


class TestChecklist:

    def test_starts_empty(self, plan):
        assert plan.progress() == 0
        assert len(plan.sections) == 7

    def test_toggle(self, plan):
        assert plan.toggle("perimeter", "sec1").checked
        assert not plan.toggle("perimeter", "sec1").checked

    def test_toggle_unknown(self, plan):
        assert plan.toggle("perimeter", "p1") is None

    def test_note(self, plan):
        plan.set_note("intel", "int1", "Two accounts flagged")
        assert plan.sections[-1].checks[0].notes == "Two accounts flagged"

    def test_instances_do_not_share_state(self, plan):
        plan.toggle("intel", "int1")
        assert not DEFAULT_SECTIONS[-1].checks[0].checked
        assert SecurityPlan().progress() == 0


class TestPresets:
    """Tests for protection level presets."""

    def test_max(self, plan):
        plan.apply_preset("MAX")
        assert plan.progress() == 100

    def test_med(self, plan):
        plan.apply_preset("MED")
        assert checked_ids(plan) == {
            "p1", "p2", "p3", "p4", "sec1", "sec2", "sec3",
            "med1", "med2", "evac1", "evac2", "cs1", "cs4",
        }

    def test_min(self, plan):
        plan.apply_preset("MIN")
        assert checked_ids(plan) == {"sec1", "evac1", "med1"}
        assert plan.progress() == 12

    def test_preset_keeps_existing_notes(self, plan):
        plan.set_note("perimeter", "sec1", "Gate B only")
        plan.apply_preset("MAX")
        notes = {c.id: c.notes for s in plan.sections for c in s.checks}
        assert notes["sec1"] == "Gate B only"
        assert notes["sec2"] == "Level 1 protocol applied."

    def test_clear(self, plan):
        plan.apply_preset("MAX")
        plan.apply_preset("CLEAR")
        assert plan.progress() == 0
        assert all(c.notes == "" for s in plan.sections for c in s.checks)

    def test_unknown_level(self, plan):
        with pytest.raises(ValueError):
            plan.apply_preset("ULTRA")

    def test_to_dict(self, plan):
        data = plan.to_dict()
        assert data["progress"] == 0
        assert data["sections"][0]["checks"][0]["id"] == "p1"
