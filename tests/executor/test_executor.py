"""Tests for plan execution."""

import threading
import time
import pytest
from converge.executor.executor import Executor
from converge.executor.models import ResourceStatus
from converge.plan.differ import compute_plan
from converge.plan.models import Action
from converge.state.models import Freshness, ResourceState
from converge.utils.errors import ConvergeError
from conftest import make_config

CHAIN = {
    "thing": {
        "a": {"name": "a"},
        "b": {"name": "b", "parent": "${thing.a.id}"},
        "c": {"name": "c", "parent": "${thing.b.id}"},
        "d": {"name": "d"},
    }
}


def plan_for(registry, store, resources=None, destroy=False, **kwargs):
    configuration = None if destroy else make_config(resources)
    return compute_plan(configuration, store.all(), registry, store.lineage, store.serial, destroy=destroy, **kwargs)


def apply(registry, store, resources=None, destroy=False, parallelism=4, **kwargs):
    plan = plan_for(registry, store, resources, destroy=destroy, **kwargs)
    return Executor(store, registry, parallelism=parallelism).apply(plan)


class TestApply:
    """Test successful runs."""

    def test_create_resolves_references(self, registry, store, provider):
        report = apply(registry, store, CHAIN)

        assert report.success
        assert report.exit_code == 0
        assert store.list() == ["thing.a", "thing.b", "thing.c", "thing.d"]
        a = store.read("thing.a")
        b = store.read("thing.b")
        assert b.attributes["parent"] == a.identifier
        assert b.dependencies == ["thing.a"]
        assert provider.objects[b.identifier]["parent"] == a.identifier

    def test_dependencies_created_first(self, registry, store, provider):
        apply(registry, store, CHAIN)

        created = provider.names("create")
        assert created.index("a") < created.index("b") < created.index("c")

    def test_second_apply_is_no_op(self, registry, store, provider):
        apply(registry, store, CHAIN)
        calls = len(provider.calls)

        plan = plan_for(registry, store, CHAIN)

        assert not plan.has_changes()
        report = Executor(store, registry).apply(plan)
        assert report.success
        assert len(provider.calls) == calls

    def test_update_in_place(self, registry, store, provider):
        apply(registry, store, {"thing": {"a": {"name": "a"}}})
        identifier = store.read("thing.a").identifier

        report = apply(registry, store, {"thing": {"a": {"name": "a", "size": 3}}})

        assert report.success
        assert provider.calls[-1] == ("update", "thing", "a")
        assert store.read("thing.a").identifier == identifier
        assert store.read("thing.a").attributes["size"] == 3

    def test_replace_destroy_before_create(self, registry, store, provider):
        apply(registry, store, {"thing": {"a": {"name": "a"}}})
        old = store.read("thing.a").identifier

        report = apply(registry, store, {"thing": {"a": {"name": "a2"}}})

        assert report.success
        assert provider.calls[-2:] == [("delete", "thing", "a"), ("create", "thing", "a2")]
        assert store.read("thing.a").identifier != old
        assert old not in provider.objects

    def test_replace_create_before_destroy(self, registry, store, provider):
        apply(registry, store, {"thing": {"a": {"name": "a"}}})

        report = apply(registry, store, {
            "thing": {"a": {"name": "a2", "lifecycle": {"create_before_destroy": True}}}
        })

        assert report.success
        assert provider.calls[-2:] == [("create", "thing", "a2"), ("delete", "thing", "a")]
        assert store.read("thing.a").attributes["name"] == "a2"

    def test_destroy_in_reverse_dependency_order(self, registry, store, provider):
        apply(registry, store, CHAIN)

        report = apply(registry, store, destroy=True)

        assert report.success
        deleted = provider.names("delete")
        assert deleted.index("c") < deleted.index("b") < deleted.index("a")
        assert store.list() == []
        assert provider.objects == {}

    def test_delete_of_vanished_object_succeeds(self, registry, store):
        store.write("thing.ghost", ResourceState(
            address="thing.ghost", kind="thing", identifier="thing-404", attributes={"name": "ghost"}
        ))

        report = apply(registry, store, {})

        assert report.success
        assert store.read("thing.ghost") is None

    def test_invalid_parallelism(self, registry, store):
        with pytest.raises(ConvergeError, match="parallelism must be at least 1"):
            Executor(store, registry, parallelism=0)


class TestPartialFailure:
    """A failure blocks its dependents but not independent branches."""

    def test_failure_skips_dependents_only(self, registry, store, provider):
        provider.fail_names = {"b"}

        report = apply(registry, store, CHAIN)

        assert report.get("thing.a").status == ResourceStatus.SUCCEEDED
        assert report.get("thing.b").status == ResourceStatus.FAILED
        assert "create of b rejected" in report.get("thing.b").error
        assert report.get("thing.c").status == ResourceStatus.SKIPPED
        assert report.get("thing.c").reason == "skipped due to upstream failure: thing.b"
        assert report.get("thing.d").status == ResourceStatus.SUCCEEDED
        assert report.exit_code == 1
        assert store.list() == ["thing.a", "thing.d"]
        assert "c" not in provider.names("create")

    def test_retry_after_failure_creates_the_rest(self, registry, store, provider):
        provider.fail_names = {"b"}
        apply(registry, store, CHAIN)
        provider.fail_names = set()

        plan = plan_for(registry, store, CHAIN)

        assert plan.addresses(Action.CREATE) == ["thing.b", "thing.c"]
        assert Executor(store, registry).apply(plan).success

    def test_failed_delete_blocks_dependency_delete(self, registry, store, provider):
        apply(registry, store, CHAIN)
        provider.fail_names = {"c"}

        report = apply(registry, store, destroy=True)

        assert report.get("thing.c").status == ResourceStatus.FAILED
        assert report.get("thing.b").status == ResourceStatus.SKIPPED
        assert report.get("thing.a").status == ResourceStatus.SKIPPED
        assert report.get("thing.d").status == ResourceStatus.SUCCEEDED
        assert store.list() == ["thing.a", "thing.b", "thing.c"]


class TestDeposedObjects:
    """A replaced object stays in state until its delete succeeds."""

    CBD = {"thing": {"a": {"name": "a2", "lifecycle": {"create_before_destroy": True}}}}

    def replace_with_failing_delete(self, registry, store, provider):
        apply(registry, store, {"thing": {"a": {"name": "a"}}})
        old = store.read("thing.a").identifier
        provider.fail_names = {"a"}
        report = apply(registry, store, self.CBD)
        return old, report

    def test_failed_delete_keeps_old_object_tracked(self, registry, store, provider):
        old, report = self.replace_with_failing_delete(registry, store, provider)

        result = report.get("thing.a")
        assert result.status == ResourceStatus.FAILED
        assert f"deleting previous object {old} failed" in result.error
        current = store.read("thing.a")
        assert current.identifier != old
        assert current.attributes["name"] == "a2"
        assert current.deposed == [old]
        assert old in provider.objects

    def test_next_plan_deletes_deposed_object(self, registry, store, provider):
        old, _ = self.replace_with_failing_delete(registry, store, provider)

        plan = plan_for(registry, store, self.CBD)

        assert plan.has_changes()
        change = plan.get("thing.a")
        assert change.action == Action.NO_OP
        assert change.deposed == (old,)

    def test_retry_deletes_deposed_object(self, registry, store, provider):
        old, _ = self.replace_with_failing_delete(registry, store, provider)
        new = store.read("thing.a").identifier
        provider.fail_names = set()

        report = apply(registry, store, self.CBD)

        assert report.success
        assert old not in provider.objects
        assert store.read("thing.a").identifier == new
        assert store.read("thing.a").deposed == []
        assert not plan_for(registry, store, self.CBD).has_changes()

    def test_destroy_deletes_deposed_and_current(self, registry, store, provider):
        self.replace_with_failing_delete(registry, store, provider)
        provider.fail_names = set()

        report = apply(registry, store, destroy=True)

        assert report.success
        assert store.list() == []
        assert provider.objects == {}

class TestConcurrency:
    """Test bounded parallelism, timeouts and cancellation."""

    def test_parallelism_is_bounded(self, registry, store, provider):
        resources = {"thing": {f"r{i}": {"name": f"r{i}"} for i in range(6)}}
        provider.delays = {f"r{i}": 0.05 for i in range(6)}

        report = apply(registry, store, resources, parallelism=2)

        assert report.success
        assert provider.max_active <= 2

    def test_independent_resources_run_concurrently(self, registry, store, provider):
        resources = {"thing": {f"r{i}": {"name": f"r{i}"} for i in range(4)}}
        provider.delays = {f"r{i}": 0.2 for i in range(4)}

        apply(registry, store, resources, parallelism=4)

        assert provider.max_active > 1

    def test_timeout_fails_and_records_late_create(self, registry, store, provider):
        provider.delays = {"slow": 0.5}

        report = apply(registry, store, {
            "thing": {
                "slow": {"name": "slow", "lifecycle": {"timeout": 0.1}},
                "after": {"name": "after", "parent": "${thing.slow.id}"},
            }
        })

        slow = report.get("thing.slow")
        assert slow.status == ResourceStatus.FAILED
        assert "timed out after 0.1s" in slow.error
        assert report.get("thing.after").status == ResourceStatus.SKIPPED

        # the late create is recorded before apply returns
        assert store.read("thing.slow").freshness == Freshness.TAINTED
        assert store.read("thing.slow").identifier in provider.objects

    def test_late_result_wait_is_bounded(self, registry, store, provider):
        provider.delays = {"slow": 1.0}
        plan = plan_for(registry, store, {"thing": {"slow": {"name": "slow", "lifecycle": {"timeout": 0.1}}}})

        started = time.monotonic()
        report = Executor(store, registry, late_result_wait=0.1).apply(plan)

        assert time.monotonic() - started < 0.8
        assert report.get("thing.slow").status == ResourceStatus.FAILED
        assert store.read("thing.slow") is None

    def test_late_delete_forgets_entry_before_return(self, registry, store, provider):
        apply(registry, store, {"thing": {"a": {"name": "a"}}})
        provider.delays = {"a": 0.4}

        report = Executor(store, registry, default_timeout=0.1).apply(plan_for(registry, store, destroy=True))

        assert report.get("thing.a").status == ResourceStatus.FAILED
        assert store.list() == []
        assert provider.objects == {}

    def test_cancel_skips_unstarted(self, registry, store, provider):
        provider.delays = {"a": 0.3}
        plan = plan_for(registry, store, {
            "thing": {"a": {"name": "a"}, "b": {"name": "b", "parent": "${thing.a.id}"}}
        })
        executor = Executor(store, registry)
        timer = threading.Timer(0.05, executor.cancel)
        timer.start()

        report = executor.apply(plan)
        timer.join()

        assert report.cancelled
        assert report.get("thing.a").status == ResourceStatus.SUCCEEDED
        assert report.get("thing.b").status == ResourceStatus.SKIPPED
        assert report.get("thing.b").reason == "cancelled before start"
        assert store.list() == ["thing.a"]
        assert report.exit_code == 1
