"""Pydantic models for resource kind attribute schemas."""

from enum import Enum
from typing import Any, Dict, List
from pydantic import BaseModel, Field


class Mutability(str, Enum):
    """How a change to an attribute can be applied."""
    UPDATABLE = "updatable"
    FORCE_NEW = "force_new"
    COMPUTED = "computed"


class AttributeSchema(BaseModel):
    """Schema of a single resource attribute."""
    mutability: Mutability = Field(default=Mutability.UPDATABLE, description="Change classification")
    required: bool = Field(default=False, description="Must be declared in configuration")
    default: Any = Field(default=None, description="Value assumed when the attribute is not declared")
    description: str = Field(default="", description="Human-readable description")


class ResourceSchema(BaseModel):
    """Attribute schema for one resource kind."""
    kind: str = Field(..., description="Resource kind name")
    attributes: Dict[str, AttributeSchema] = Field(default_factory=dict)

    def is_computed(self, name: str) -> bool:
        attr = self.attributes.get(name)
        return attr is not None and attr.mutability == Mutability.COMPUTED

    def is_force_new(self, name: str) -> bool:
        attr = self.attributes.get(name)
        return attr is not None and attr.mutability == Mutability.FORCE_NEW

    def settable_attributes(self) -> List[str]:
        """Attribute names that may appear in configuration."""
        return [name for name, attr in self.attributes.items() if attr.mutability != Mutability.COMPUTED]

    def apply_defaults(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Return attributes with schema defaults filled in for undeclared settable fields."""
        result = dict(attributes)
        for name, attr in self.attributes.items():
            if attr.mutability == Mutability.COMPUTED or name in result:
                continue
            if attr.default is not None:
                result[name] = attr.default
        return result

    def validate_attributes(self, attributes: Dict[str, Any]) -> List[str]:
        """
        Check declared attributes against the schema.
        
        Returns:
            List of human-readable problems (empty when valid)
        """
        problems = []
        for name in attributes:
            if name not in self.attributes:
                problems.append(f"unsupported attribute '{name}'")
            elif self.is_computed(name):
                problems.append(f"attribute '{name}' is computed by the provider and cannot be set")
        for name, attr in self.attributes.items():
            if attr.required and name not in attributes:
                problems.append(f"missing required attribute '{name}'")
        return problems
