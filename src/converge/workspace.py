"""Workspace: one configuration, one state, one registry."""

from contextlib import nullcontext
from typing import Any, Dict, Iterable, Optional, Tuple
from .config.manager import Settings, load_settings
from .executor.executor import Executor
from .executor.models import RunReport
from .graph.dependency_graph import DependencyGraph, build_graph
from .ingest.config_loader import load_configuration
from .ingest.models import Configuration
from .plan.differ import compute_plan
from .plan.models import Plan
from .plan.refresh import refresh_states
from .providers.simulated import SimulatedCloud, SimulatedProvider, register_simulated
from .registry.registry import ProviderRegistry
from .state.models import Freshness, ResourceState
from .state.store import StateLock, StateStore
from .utils.errors import ConvergeError
from .utils.logging import get_logger

logger = get_logger("workspace")


def build_registry(settings: Settings, discover: bool = True) -> ProviderRegistry:
    """Registry with the simulated provider plus any entry-point providers."""
    registry = ProviderRegistry()
    cloud = SimulatedCloud(settings.simulated.cloud_path)
    register_simulated(registry, SimulatedProvider(cloud, latency=settings.simulated.latency))
    if discover:
        registry.discover()
    return registry


class Workspace:
    """Plans and applies one configuration against one state document."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        settings: Optional[Settings] = None,
        registry: Optional[ProviderRegistry] = None,
        state_path: Optional[str] = None,
        var_files: Iterable[str] = (),
        variables: Optional[Dict[str, Any]] = None
    ):
        self.config_path = config_path
        self.settings = settings or load_settings()
        self.registry = registry or build_registry(self.settings)
        self.state_path = state_path or self.settings.state_path
        self.var_files = list(var_files)
        self.variables = dict(variables or {})
        self._executor: Optional[Executor] = None
        self._cancel_requested = False

    def load_configuration(self) -> Configuration:
        if not self.config_path:
            raise ConvergeError("No configuration file given")
        return load_configuration(
            self.config_path,
            registry=self.registry,
            var_files=self.var_files,
            overrides=self.variables,
        )

    def open_state(self) -> StateStore:
        return StateStore.load(self.state_path)

    def graph(self) -> DependencyGraph:
        return build_graph(self.load_configuration().resources)

    def plan(self, destroy: bool = False, refresh: Optional[bool] = None) -> Plan:
        """Compute a Plan without mutating state."""
        store = self.open_state()
        return self._plan(store, destroy=destroy, refresh=refresh, commit_refresh=False)

    def apply(self, plan: Optional[Plan] = None, refresh: Optional[bool] = None, destroy: bool = False) -> Tuple[Plan, RunReport]:
        """
        Compute (or take) a Plan and execute it.

        A saved plan is applied only against the exact state it was computed for.

        Returns:
            Tuple of (applied plan, run report)
        """
        lock = StateLock(self.state_path) if self.settings.lock else None
        if lock is not None:
            lock.acquire()
        try:
            store = self.open_state()
            if plan is None:
                plan = self._plan(store, destroy=destroy, refresh=refresh, commit_refresh=True)
            else:
                plan.check_current(store.lineage, store.serial)

            self._executor = Executor(
                store,
                self.registry,
                parallelism=self.settings.parallelism,
                default_timeout=self.settings.timeout,
                late_result_wait=self.settings.timeout,
            )
            if self._cancel_requested:
                self._executor.cancel()
            report = self._executor.apply(plan)
            return plan, report
        finally:
            self._executor = None
            if lock is not None:
                lock.release()

    def destroy(self) -> Tuple[Plan, RunReport]:
        return self.apply(destroy=True)

    def cancel(self) -> None:
        """Request cancellation of the running apply."""
        self._cancel_requested = True
        if self._executor is not None:
            self._executor.cancel()

    def taint(self, address: str, tainted: bool = True) -> ResourceState:
        """Mark a managed resource for replacement (or clear the mark)."""
        with self._locked():
            store = self.open_state()
            freshness = Freshness.TAINTED if tainted else Freshness.SYNCED
            return store.set_freshness(address, freshness)

    def forget(self, address: str) -> bool:
        """Remove a resource from state without deleting it."""
        with self._locked():
            return self.open_state().delete(address)

    def _plan(self, store: StateStore, destroy: bool, refresh: Optional[bool], commit_refresh: bool) -> Plan:
        configuration = None if destroy else self.load_configuration()
        states = store.all()
        do_refresh = self.settings.refresh if refresh is None else refresh
        if do_refresh:
            states, vanished = refresh_states(states, self.registry, timeout=self.settings.timeout)
            if commit_refresh:
                for address in vanished:
                    store.delete(address)
                for address, state in states.items():
                    if store.read(address) != state:
                        store.write(address, state)
                states = store.all()
        return compute_plan(
            configuration,
            states,
            self.registry,
            state_lineage=store.lineage,
            state_serial=store.serial,
            destroy=destroy,
            replace_order=self.settings.replace_order,
            default_timeout=self.settings.timeout,
        )

    def _locked(self):
        if self.settings.lock:
            return StateLock(self.state_path)
        return nullcontext()

