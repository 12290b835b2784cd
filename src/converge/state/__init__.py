"""State Store - persisted record of managed resources."""

from .models import STATE_SCHEMA_VERSION, Freshness, ResourceState, StateDocument
from .store import StateLock, StateStore, parse_state_document

__all__ = [
    "STATE_SCHEMA_VERSION",
    "Freshness",
    "ResourceState",
    "StateDocument",
    "StateLock",
    "StateStore",
    "parse_state_document",
]
