"""Pydantic models for the persisted state document."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List
from pydantic import BaseModel, Field

STATE_SCHEMA_VERSION = 2


class Freshness(str, Enum):
    """How far the recorded attributes can be trusted."""
    SYNCED = "synced"
    STALE = "stale"
    TAINTED = "tainted"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ResourceState(BaseModel):
    """Last-known real-world attributes of one managed resource."""
    address: str = Field(..., description="Resource address (kind.name)")
    kind: str = Field(..., description="Resource kind")
    identifier: str = Field(..., description="Provider-assigned identifier")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Last applied/read attribute values")
    freshness: Freshness = Field(default=Freshness.SYNCED)
    dependencies: List[str] = Field(default_factory=list, description="Addresses this resource depended on when applied")
    deposed: List[str] = Field(
        default_factory=list,
        description="Identifiers of replaced objects whose deletion has not succeeded yet"
    )
    updated_at: datetime = Field(default_factory=_now)

    def attribute(self, name: str) -> Any:
        """Attribute value, with 'id' falling back to the identifier."""
        if name == "id" and "id" not in self.attributes:
            return self.identifier
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name == "id" or name in self.attributes


class StateDocument(BaseModel):
    """The single versioned document holding every ResourceState."""
    schema_version: int = Field(default=STATE_SCHEMA_VERSION)
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    serial: int = Field(default=0, ge=0)
    resources: Dict[str, ResourceState] = Field(default_factory=dict)
