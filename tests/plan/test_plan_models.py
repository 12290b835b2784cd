"""Tests for plan persistence, staleness checks and refresh."""

import time
import pytest
from converge.plan.differ import compute_plan
from converge.plan.models import Action, Plan
from converge.plan.refresh import refresh_states
from converge.state.models import Freshness, ResourceState
from converge.utils.errors import ConvergeError, PlanStaleError, ProviderError
from conftest import make_config


@pytest.fixture
def sample_plan(registry):
    configuration = make_config({
        "thing": {"a": {"name": "a"}, "b": {"name": "b", "parent": "${thing.a.id}"}}
    })
    return compute_plan(configuration, {}, registry, "lineage-1", 4)


class TestPlanPersistence:
    """Test saving and loading plans."""

    def test_save_and_load(self, sample_plan, tmp_path):
        path = tmp_path / "plan.json"
        sample_plan.save(path)

        loaded = Plan.load(path)

        assert loaded.addresses() == ["thing.a", "thing.b"]
        assert loaded.get("thing.b").desired["parent"] == {"ref": "thing.a.id"}
        assert loaded.get("thing.b").requires == ("thing.a",)
        assert loaded.metadata.state_serial == 4

    def test_load_missing(self, tmp_path):
        with pytest.raises(ConvergeError, match="Plan file not found"):
            Plan.load(tmp_path / "missing.json")

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text('{"changes": []}')

        with pytest.raises(ConvergeError, match="Invalid plan file"):
            Plan.load(path)

    def test_summary(self, sample_plan):
        summary = sample_plan.summary()

        assert summary["create"] == 2
        assert summary["delete"] == 0
        assert sample_plan.has_changes()
        assert sample_plan.addresses(Action.UPDATE) == []


class TestCheckCurrent:
    """A saved plan only applies to the state it was computed against."""

    def test_current(self, sample_plan):
        sample_plan.check_current("lineage-1", 4)

    def test_serial_moved(self, sample_plan):
        with pytest.raises(PlanStaleError, match="serial 4 -> 5"):
            sample_plan.check_current("lineage-1", 5)

    def test_other_lineage(self, sample_plan):
        with pytest.raises(PlanStaleError, match="lineage mismatch"):
            sample_plan.check_current("lineage-2", 4)


class TestRefresh:
    """Test reading resources back before planning."""

    def test_drift_and_vanished(self, registry, provider):
        identifier, actual = provider.create("thing", {"name": "a", "size": 1})
        provider.objects[identifier]["size"] = 7
        states = {
            "thing.a": ResourceState(address="thing.a", kind="thing", identifier=identifier, attributes=actual),
            "thing.gone": ResourceState(address="thing.gone", kind="thing", identifier="thing-404"),
        }

        refreshed, vanished = refresh_states(states, registry)

        assert refreshed["thing.a"].attributes["size"] == 7
        assert states["thing.a"].attributes["size"] == 1
        assert vanished == ["thing.gone"]

    def test_tainted_entries_are_not_read(self, registry):
        states = {
            "thing.a": ResourceState(
                address="thing.a", kind="thing", identifier="thing-404", freshness=Freshness.TAINTED
            ),
        }

        refreshed, vanished = refresh_states(states, registry)

        assert refreshed["thing.a"].freshness == Freshness.TAINTED
        assert vanished == []

    def test_read_error_marks_stale(self, registry, provider, monkeypatch):
        def broken_read(kind, identifier):
            raise ProviderError("throttled")

        monkeypatch.setattr(provider, "read", broken_read)
        states = {"thing.a": ResourceState(address="thing.a", kind="thing", identifier="thing-1")}

        refreshed, _ = refresh_states(states, registry)

        assert refreshed["thing.a"].freshness == Freshness.STALE

    def test_slow_read_times_out_as_stale(self, registry, provider, monkeypatch):
        def slow_read(kind, identifier):
            time.sleep(1.0)
            return {}

        monkeypatch.setattr(provider, "read", slow_read)
        states = {"thing.a": ResourceState(address="thing.a", kind="thing", identifier="thing-1")}

        started = time.monotonic()
        refreshed, _ = refresh_states(states, registry, timeout=0.1)

        assert time.monotonic() - started < 0.9
        assert refreshed["thing.a"].freshness == Freshness.STALE

    def test_vanished_object_with_deposed_stays_tracked(self, registry):
        states = {
            "thing.a": ResourceState(
                address="thing.a", kind="thing", identifier="thing-404", deposed=["thing-1"]
            ),
        }

        refreshed, vanished = refresh_states(states, registry)

        assert vanished == []
        assert refreshed["thing.a"].freshness == Freshness.TAINTED
        assert refreshed["thing.a"].deposed == ["thing-1"]
