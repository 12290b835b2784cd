"""Pydantic models for parsed configuration documents."""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class Reference(BaseModel):
    """Typed reference to another resource's attribute."""
    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="Referenced resource address (kind.name)")
    attribute: str = Field(..., description="Referenced attribute name")

    @classmethod
    def parse(cls, expression: str) -> "Reference":
        """Parse 'kind.name.attribute' into a Reference."""
        parts = expression.strip().split(".")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Reference must have the form kind.name.attribute: {expression}")
        return cls(address=f"{parts[0]}.{parts[1]}", attribute=parts[2])

    def __str__(self) -> str:
        return f"{self.address}.{self.attribute}"


class Lifecycle(BaseModel):
    """Per-resource lifecycle customizations."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    create_before_destroy: Optional[bool] = Field(None, description="Replacement ordering override")
    timeout: Optional[float] = Field(None, gt=0, description="Provider operation timeout in seconds")


class ResourceDeclaration(BaseModel):
    """A resource block from configuration. Immutable once parsed."""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="Resource kind")
    name: str = Field(..., description="Local name, unique per kind")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Literal values or Reference objects")
    depends_on: FrozenSet[str] = Field(default_factory=frozenset, description="Addresses this resource depends on")
    lifecycle: Lifecycle = Field(default_factory=Lifecycle)

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"

    def references(self) -> List[Reference]:
        """All references held in attributes, including nested ones."""
        found: List[Reference] = []
        for value in self.attributes.values():
            _collect_references(value, found)
        return found


class VariableDeclaration(BaseModel):
    """Named input variable with an optional default."""
    model_config = ConfigDict(frozen=True)

    name: str
    default: Any = None
    description: str = ""
    has_default: bool = False


class Configuration(BaseModel):
    """Loaded configuration: resolved variables and resource declarations."""
    model_config = ConfigDict(frozen=True)

    source: Optional[str] = Field(None, description="Path the configuration was loaded from")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Resolved variable values")
    resources: Tuple[ResourceDeclaration, ...] = Field(default_factory=tuple)

    def addresses(self) -> List[str]:
        return [resource.address for resource in self.resources]


def _collect_references(value: Any, found: List[Reference]) -> None:
    if isinstance(value, Reference):
        found.append(value)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_references(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_references(item, found)
