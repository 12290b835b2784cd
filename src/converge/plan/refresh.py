"""Refresh recorded state by reading resources back through their providers."""

from typing import Dict, List, Optional, Tuple
from ..registry.registry import ProviderRegistry
from ..state.models import Freshness, ResourceState
from ..utils.errors import ProviderError, ResourceNotFoundError
from ..utils.logging import get_logger
from ..utils.timeouts import call_with_timeout

logger = get_logger("plan.refresh")


def refresh_states(
    states: Dict[str, ResourceState],
    registry: ProviderRegistry,
    timeout: Optional[float] = None
) -> Tuple[Dict[str, ResourceState], List[str]]:
    """
    Read every managed resource and return refreshed copies.

    Nothing is written to the State Store here; callers decide whether the
    refreshed values are committed.

    Args:
        states: Current states by address
        registry: Kind registry
        timeout: Seconds to wait for each read; a read that takes longer marks the entry stale

    Returns:
        Tuple of (refreshed states, addresses that no longer exist)
    """
    refreshed: Dict[str, ResourceState] = {}
    vanished: List[str] = []

    for address in sorted(states):
        state = states[address]
        registered = registry.find(state.kind)
        if registered is None:
            logger.warning(f"Cannot refresh {address}: no provider for kind {state.kind}")
            refreshed[address] = state
            continue
        if state.freshness == Freshness.TAINTED:
            refreshed[address] = state
            continue

        try:
            attributes = call_with_timeout(
                lambda provider=registered.provider, state=state: provider.read(state.kind, state.identifier),
                timeout,
                f"read of {address}",
            )
        except ResourceNotFoundError:
            logger.info(f"{address} ({state.identifier}) no longer exists")
            if state.deposed:
                # replaced objects are still tracked under this address
                refreshed[address] = state.model_copy(update={"freshness": Freshness.TAINTED})
                continue
            vanished.append(address)
            continue
        except ProviderError as e:
            logger.warning(f"Failed to refresh {address}: {e}; treating recorded state as stale")
            refreshed[address] = state.model_copy(update={"freshness": Freshness.STALE})
            continue

        refreshed[address] = state.model_copy(update={"attributes": attributes}, deep=True)
        if attributes != state.attributes:
            logger.info(f"Drift detected on {address}")

    return refreshed, vanished
