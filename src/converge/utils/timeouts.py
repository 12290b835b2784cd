"""Run provider calls under a timeout without losing their late results."""

import threading
from typing import Any, Callable, Dict, Optional
from .errors import ProviderTimeoutError
from .logging import get_logger

logger = get_logger("utils.timeouts")


def call_with_timeout(
    fn: Callable[[], Any],
    timeout: Optional[float],
    description: str,
    on_late: Optional[Callable[[Any], None]] = None,
    on_abandon: Optional[Callable[[threading.Thread], None]] = None
) -> Any:
    """
    Call fn, giving up after timeout seconds.

    A timed-out call keeps running on a daemon thread. When it completes,
    on_late receives its result so the caller can still record it.

    Args:
        fn: Provider operation to run
        timeout: Seconds to wait, or None to wait forever
        description: Operation name used in messages (e.g. 'create of network.main')
        on_late: Receives the result of a call that finished after the timeout
        on_abandon: Receives the worker thread when the caller stops waiting

    Raises:
        ProviderTimeoutError: If fn did not finish in time
    """
    if timeout is None:
        return fn()

    outcome: Dict[str, Any] = {}
    finished = threading.Event()
    guard = threading.Lock()
    abandoned = []

    def target():
        try:
            outcome["value"] = fn()
        except BaseException as e:
            outcome["error"] = e
        with guard:
            finished.set()
            late = bool(abandoned)
        if late and "value" in outcome and on_late is not None:
            try:
                on_late(outcome["value"])
            except Exception as e:
                logger.error(f"Failed to record late result of {description}: {e}", exc_info=True)

    worker = threading.Thread(target=target, name=f"converge-{description}", daemon=True)
    worker.start()
    if not finished.wait(timeout):
        with guard:
            if not finished.is_set():
                abandoned.append(True)
                if on_abandon is not None:
                    on_abandon(worker)
                raise ProviderTimeoutError(f"{description} timed out after {timeout}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
