"""Walk a Plan in dependency order, invoking providers and committing state."""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Set
from ..ingest.models import Reference
from ..plan.models import Action, Plan, PlannedChange, ReplaceOrder
from ..plan.references import UNKNOWN, resolve_value, values_equal
from ..registry.registry import ProviderRegistry
from ..state.models import Freshness, ResourceState
from ..state.store import StateStore
from ..utils.errors import ConvergeError, ProviderError, ResourceNotFoundError
from ..utils.logging import get_logger
from ..utils.timeouts import call_with_timeout
from .models import ResourceResult, ResourceStatus, RunReport

logger = get_logger("executor.executor")

DEFAULT_PARALLELISM = 10
DEFAULT_LATE_RESULT_WAIT = 60.0


class Executor:
    """
    Apply a Plan with bounded parallelism and partial-failure semantics.

    A change starts only after every change it requires has succeeded. A
    failed change blocks its transitive dependents, which end up skipped,
    while independent branches run to completion. Every provider result is
    written to the State Store before dependents start.
    """

    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        parallelism: int = DEFAULT_PARALLELISM,
        default_timeout: Optional[float] = None,
        late_result_wait: Optional[float] = DEFAULT_LATE_RESULT_WAIT
    ):
        if parallelism < 1:
            raise ConvergeError("parallelism must be at least 1")
        self.store = store
        self.registry = registry
        self.parallelism = parallelism
        self.default_timeout = default_timeout
        self.late_result_wait = late_result_wait
        self._cancelled = threading.Event()
        self._abandoned: List[threading.Thread] = []
        self._abandoned_lock = threading.Lock()

    def cancel(self) -> None:
        """Stop starting new changes; in-flight operations finish and are recorded."""
        if not self._cancelled.is_set():
            logger.warning("Cancellation requested: waiting for in-flight operations")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def apply(self, plan: Plan) -> RunReport:
        """
        Execute every change of plan.

        Returns:
            RunReport with one result per planned change, in plan order
        """
        changes = {change.address: change for change in plan.changes}
        status: Dict[str, ResourceStatus] = {address: ResourceStatus.PENDING for address in changes}
        results: Dict[str, ResourceResult] = {}
        requires: Dict[str, Set[str]] = {
            address: {r for r in change.requires if r in changes}
            for address, change in changes.items()
        }
        order = [change.address for change in plan.changes]

        logger.info(f"Applying plan with {len(order)} changes (parallelism {self.parallelism})")
        running: Dict[Future, str] = {}
        with ThreadPoolExecutor(max_workers=self.parallelism, thread_name_prefix="converge") as pool:
            while True:
                self._skip_blocked(order, status, requires, results, changes)
                if not self.cancelled:
                    for address in order:
                        if len(running) >= self.parallelism:
                            break
                        if status[address] != ResourceStatus.PENDING:
                            continue
                        if all(status[r] == ResourceStatus.SUCCEEDED for r in requires[address]):
                            status[address] = ResourceStatus.IN_PROGRESS
                            running[pool.submit(self._run_change, changes[address])] = address

                if not running:
                    break

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in done:
                    address = running.pop(future)
                    result = future.result()
                    status[address] = result.status
                    results[address] = result

        self._join_abandoned()

        for address in order:
            if status[address] == ResourceStatus.PENDING:
                reason = "cancelled before start" if self.cancelled else "dependencies did not complete"
                results[address] = ResourceResult(
                    address=address,
                    action=changes[address].action,
                    status=ResourceStatus.SKIPPED,
                    reason=reason,
                )

        report = RunReport(results=[results[address] for address in order], cancelled=self.cancelled)
        logger.info(f"Apply finished: {report.counts()}")
        return report

    def _skip_blocked(
        self,
        order: List[str],
        status: Dict[str, ResourceStatus],
        requires: Dict[str, Set[str]],
        results: Dict[str, ResourceResult],
        changes: Dict[str, PlannedChange]
    ) -> None:
        """Mark pending changes whose requirements failed or were skipped."""
        progressed = True
        while progressed:
            progressed = False
            for address in order:
                if status[address] != ResourceStatus.PENDING:
                    continue
                blocked = sorted(
                    r for r in requires[address]
                    if status[r] in (ResourceStatus.FAILED, ResourceStatus.SKIPPED)
                )
                if not blocked:
                    continue
                status[address] = ResourceStatus.SKIPPED
                results[address] = ResourceResult(
                    address=address,
                    action=changes[address].action,
                    status=ResourceStatus.SKIPPED,
                    reason=f"skipped due to upstream failure: {', '.join(blocked)}",
                )
                logger.info(f"{address}: skipped due to upstream failure ({', '.join(blocked)})")
                progressed = True

    def _run_change(self, change: PlannedChange) -> ResourceResult:
        started = time.monotonic()
        try:
            with self.store.locked(change.address):
                self._execute(change)
        except ConvergeError as e:
            logger.error(f"{change.address}: {change.action.value} failed: {e}")
            return ResourceResult(
                address=change.address,
                action=change.action,
                status=ResourceStatus.FAILED,
                error=str(e),
                duration=time.monotonic() - started,
            )
        except Exception as e:
            logger.error(f"{change.address}: unexpected error during {change.action.value}: {e}", exc_info=True)
            return ResourceResult(
                address=change.address,
                action=change.action,
                status=ResourceStatus.FAILED,
                error=f"unexpected error: {e}",
                duration=time.monotonic() - started,
            )
        if change.action != Action.NO_OP:
            logger.info(f"{change.address}: {change.action.value} succeeded")
        return ResourceResult(
            address=change.address,
            action=change.action,
            status=ResourceStatus.SUCCEEDED,
            duration=time.monotonic() - started,
        )

    def _execute(self, change: PlannedChange) -> None:
        if change.action == Action.NO_OP:
            self._delete_deposed(change)
        elif change.action == Action.CREATE:
            self._create(change)
        elif change.action == Action.UPDATE:
            self._update(change)
            self._delete_deposed(change)
        elif change.action == Action.DELETE:
            self._delete_deposed(change)
            self._delete(change)
        elif change.action == Action.REPLACE:
            if change.replace_order == ReplaceOrder.CREATE_BEFORE_DESTROY:
                old = self.store.read(change.address)
                deposed = list(old.deposed) + [old.identifier] if old is not None else []
                # The old object stays tracked as deposed until its delete succeeds.
                self._create(change, deposed)
                self._delete_deposed(change)
            else:
                self._delete_deposed(change)
                self._delete(change)
                self._create(change)

    def _create(self, change: PlannedChange, deposed: Optional[List[str]] = None) -> None:
        provider = self.registry.provider(change.kind)
        attributes = self._resolve(change)
        deposed = deposed or []

        def record_late(result):
            identifier, actual = result
            logger.warning(f"{change.address}: create finished after timeout; recording {identifier} as tainted")
            self.store.write(change.address, self._state(change, identifier, actual, Freshness.TAINTED, deposed))

        identifier, actual = self._call(change, "create", lambda: provider.create(change.kind, attributes), record_late)
        self.store.write(change.address, self._state(change, identifier, actual, Freshness.SYNCED, deposed))

    def _update(self, change: PlannedChange) -> None:
        provider = self.registry.provider(change.kind)
        current = self.store.read(change.address)
        if current is None:
            raise ProviderError(f"{change.address} is no longer in state; cannot update", change.address)
        attributes = self._resolve(change)
        keys = set(change.changed_fields)
        keys.update(k for k, v in attributes.items() if not values_equal(v, current.attributes.get(k)))
        changed = {k: attributes[k] for k in sorted(keys) if k in attributes}

        def record_late(actual):
            logger.warning(f"{change.address}: update finished after timeout; recording as stale")
            self.store.write(
                change.address,
                self._state(change, current.identifier, actual, Freshness.STALE, current.deposed),
            )

        actual = self._call(
            change,
            "update",
            lambda: provider.update(change.kind, current.identifier, changed, attributes),
            record_late,
        )
        self.store.write(
            change.address,
            self._state(change, current.identifier, actual, Freshness.SYNCED, current.deposed),
        )

    def _delete(self, change: PlannedChange) -> None:
        current = self.store.read(change.address)
        if current is None:
            logger.info(f"{change.address}: already absent from state")
            return
        provider = self.registry.provider(current.kind)

        def record_late(_):
            logger.warning(f"{change.address}: delete finished after timeout; removing from state")
            self.store.delete(change.address)

        try:
            self._call(change, "delete", lambda: provider.delete(current.kind, current.identifier), record_late)
        except ResourceNotFoundError:
            logger.info(f"{change.address}: {current.identifier} was already deleted")
        self.store.delete(change.address)

    def _delete_deposed(self, change: PlannedChange) -> None:
        """Delete replaced objects still recorded under the address, forgetting each one that goes."""
        current = self.store.read(change.address)
        if current is None or not current.deposed:
            return
        provider = self.registry.provider(current.kind)
        for identifier in list(current.deposed):
            try:
                self._call(
                    change,
                    "delete",
                    lambda identifier=identifier: provider.delete(current.kind, identifier),
                    lambda _, identifier=identifier: self._forget_deposed(change.address, identifier),
                )
            except ResourceNotFoundError:
                logger.info(f"{change.address}: deposed {identifier} was already deleted")
            except ProviderError as e:
                raise ProviderError(
                    f"replacement created, but deleting previous object {identifier} failed: {e}",
                    change.address,
                )
            self._forget_deposed(change.address, identifier)
            logger.info(f"{change.address}: deleted deposed object {identifier}")

    def _forget_deposed(self, address: str, identifier: str) -> None:
        with self.store.locked(address):
            current = self.store.read(address)
            if current is None or identifier not in current.deposed:
                return
            current.deposed = [d for d in current.deposed if d != identifier]
            self.store.write(address, current)

    def _resolve(self, change: PlannedChange) -> Dict[str, Any]:
        """Resolve references against committed state of the referenced resources."""
        def lookup(reference: Reference) -> Any:
            target = self.store.read(reference.address)
            if target is None or not target.has_attribute(reference.attribute):
                return UNKNOWN
            return target.attribute(reference.attribute)

        resolved, known = resolve_value(change.desired or {}, lookup)
        if not known:
            raise ProviderError(
                f"{change.address}: references could not be resolved from state", change.address
            )
        return resolved

    def _state(
        self,
        change: PlannedChange,
        identifier: str,
        attributes: Dict[str, Any],
        freshness: Freshness,
        deposed: Optional[List[str]] = None
    ) -> ResourceState:
        return ResourceState(
            address=change.address,
            kind=change.kind,
            identifier=identifier,
            attributes=attributes,
            freshness=freshness,
            dependencies=list(change.dependencies),
            deposed=list(deposed or []),
        )

    def _call(self, change: PlannedChange, operation: str, fn: Callable[[], Any], on_late: Callable[[Any], None]) -> Any:
        """
        Run one provider operation under the change's timeout.

        A timed-out call keeps running in the background; when it completes,
        on_late records its result so the created object is not orphaned.
        """
        timeout = change.timeout or self.default_timeout
        logger.debug(f"{change.address}: calling {operation} (timeout: {timeout})")
        try:
            return call_with_timeout(
                fn,
                timeout,
                f"{operation} of {change.address}",
                on_late=on_late,
                on_abandon=self._track_abandoned,
            )
        except ProviderError as e:
            if e.address is None:
                e.address = change.address
            raise

    def _track_abandoned(self, worker: threading.Thread) -> None:
        with self._abandoned_lock:
            self._abandoned.append(worker)

    def _join_abandoned(self) -> None:
        """Give timed-out calls a bounded chance to finish so their results reach state."""
        with self._abandoned_lock:
            workers, self._abandoned = self._abandoned, []
        if not workers:
            return
        deadline = None if self.late_result_wait is None else time.monotonic() + self.late_result_wait
        logger.info(f"Waiting for {len(workers)} timed-out provider calls to finish")
        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
        still_running = [w.name for w in workers if w.is_alive()]
        if still_running:
            logger.warning(
                f"{len(still_running)} timed-out provider calls are still running and their results "
                f"will not be recorded: {', '.join(still_running)}"
            )
