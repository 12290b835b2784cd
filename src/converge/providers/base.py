"""Abstract base class for resource providers."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple


class Provider(ABC):
    """
    Abstract interface for resource providers.
    
    A provider performs the real-world operations for one or more resource
    kinds. Converge never assumes create is idempotent: double creation is
    prevented by State Store bookkeeping, not by the provider.
    
    Errors:
    - raise ResourceNotFoundError from read/delete when the object is gone
    - raise ProviderError for any other rejected operation
    """
    
    name: str = "provider"
    
    def supports_update(self, kind: str) -> bool:
        """Whether the kind can be updated in place (otherwise changes force replacement)."""
        return True
    
    def supports_create_before_destroy(self, kind: str) -> bool:
        """Whether a replacement may create the new object before deleting the old one."""
        return False
    
    @abstractmethod
    def create(self, kind: str, attributes: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """
        Create a resource.
        
        Args:
            kind: Resource kind
            attributes: Fully resolved desired attributes
            
        Returns:
            Tuple of (identifier, actual attributes)
        """
        pass
    
    @abstractmethod
    def read(self, kind: str, identifier: str) -> Dict[str, Any]:
        """Return the actual attributes of an existing resource."""
        pass
    
    @abstractmethod
    def update(
        self,
        kind: str,
        identifier: str,
        changed: Dict[str, Any],
        attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update a resource in place.
        
        Args:
            kind: Resource kind
            identifier: Provider-assigned identifier
            changed: Only the attributes that differ from the last applied values
            attributes: Full resolved desired attributes
            
        Returns:
            Actual attributes after the update
        """
        pass
    
    @abstractmethod
    def delete(self, kind: str, identifier: str) -> None:
        """Delete a resource."""
        pass
