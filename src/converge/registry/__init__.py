"""Resource schema registry - kind schemas and the providers that manage them."""

from .schema import AttributeSchema, Mutability, ResourceSchema
from .registry import ENTRY_POINT_GROUP, ProviderRegistry, RegisteredKind

__all__ = [
    "AttributeSchema",
    "Mutability",
    "ResourceSchema",
    "ENTRY_POINT_GROUP",
    "ProviderRegistry",
    "RegisteredKind",
]
