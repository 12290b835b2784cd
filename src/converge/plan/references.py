"""Encode, resolve and compare attribute values holding references."""

from typing import Any, Callable, Optional, Tuple
from ..ingest.models import Reference


class Unknown:
    """Placeholder for a value only known after apply."""

    _instance: Optional["Unknown"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"


UNKNOWN = Unknown()


def as_reference(value: Any) -> Optional[Reference]:
    """Return the Reference a value stands for, in object or encoded form."""
    if isinstance(value, Reference):
        return value
    if isinstance(value, dict) and set(value) == {"ref"} and isinstance(value["ref"], str):
        return Reference.parse(value["ref"])
    return None


def encode_value(value: Any) -> Any:
    """Replace Reference objects with {'ref': 'kind.name.attr'} for JSON."""
    reference = as_reference(value)
    if reference is not None:
        return {"ref": str(reference)}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def resolve_value(value: Any, lookup: Callable[[Reference], Any]) -> Tuple[Any, bool]:
    """
    Resolve every reference in value with lookup.

    lookup returns UNKNOWN for values not yet known.

    Returns:
        Tuple of (resolved value, fully known)
    """
    reference = as_reference(value)
    if reference is not None:
        resolved = lookup(reference)
        if resolved is UNKNOWN:
            return UNKNOWN, False
        return resolved, True
    if isinstance(value, dict):
        result = {}
        known = True
        for key, item in value.items():
            result[key], item_known = resolve_value(item, lookup)
            known = known and item_known
        return result, known
    if isinstance(value, (list, tuple)):
        items = []
        known = True
        for item in value:
            resolved, item_known = resolve_value(item, lookup)
            items.append(resolved)
            known = known and item_known
        return items, known
    return value, True


def normalize(value: Any) -> Any:
    """Canonical form for comparison (tuples as lists, nested recursively)."""
    if isinstance(value, dict):
        return {str(k): normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    return value


def values_equal(desired: Any, actual: Any) -> bool:
    if desired is UNKNOWN:
        return False
    return normalize(desired) == normalize(actual)
