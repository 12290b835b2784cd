"""Resource kind registry: kind name -> schema + provider."""

from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Dict, List, Optional
from ..utils.errors import ConfigurationError
from ..utils.logging import get_logger
from .schema import ResourceSchema

if TYPE_CHECKING:
    from ..providers.base import Provider

logger = get_logger("registry.registry")

ENTRY_POINT_GROUP = "converge.providers"


class RegisteredKind:
    """A resource kind bound to the provider that manages it."""
    
    def __init__(self, schema: ResourceSchema, provider: "Provider"):
        self.schema = schema
        self.provider = provider
    
    @property
    def kind(self) -> str:
        return self.schema.kind
    
    @property
    def supports_update(self) -> bool:
        return self.provider.supports_update(self.schema.kind)
    
    @property
    def supports_create_before_destroy(self) -> bool:
        return self.provider.supports_create_before_destroy(self.schema.kind)
    
    def __repr__(self) -> str:
        return f"RegisteredKind(kind={self.kind}, provider={self.provider.name})"


class ProviderRegistry:
    """Maps resource kind names to attribute schemas and provider implementations."""
    
    def __init__(self):
        self._kinds: Dict[str, RegisteredKind] = {}
    
    def register(self, schema: ResourceSchema, provider: "Provider", replace: bool = False) -> None:
        """Register a resource kind. Re-registering a kind requires replace=True."""
        if schema.kind in self._kinds and not replace:
            raise ConfigurationError(f"Resource kind already registered: {schema.kind}")
        self._kinds[schema.kind] = RegisteredKind(schema, provider)
        logger.debug(f"Registered kind {schema.kind} (provider: {provider.name})")
    
    def get(self, kind: str) -> RegisteredKind:
        """Look up a kind, raising ConfigurationError when it is unknown."""
        registered = self._kinds.get(kind)
        if registered is None:
            available = ", ".join(sorted(self._kinds)) or "none"
            raise ConfigurationError(f"Unknown resource kind '{kind}'. Registered kinds: {available}")
        return registered
    
    def find(self, kind: str) -> Optional[RegisteredKind]:
        return self._kinds.get(kind)
    
    def schema(self, kind: str) -> ResourceSchema:
        return self.get(kind).schema
    
    def provider(self, kind: str) -> "Provider":
        return self.get(kind).provider
    
    def kinds(self) -> List[str]:
        return sorted(self._kinds)
    
    def __contains__(self, kind: str) -> bool:
        return kind in self._kinds
    
    def discover(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Load third-party providers advertised through package entry points.
        
        Each entry point must resolve to a callable taking the registry.
        
        Returns:
            Number of entry points loaded
        """
        loaded = 0
        for entry_point in entry_points(group=group):
            try:
                hook = entry_point.load()
            except Exception as e:
                raise ConfigurationError(f"Failed to load provider plugin '{entry_point.name}': {e}") from e
            hook(self)
            loaded += 1
            logger.info(f"Loaded provider plugin: {entry_point.name}")
        return loaded
