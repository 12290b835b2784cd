"""Custom exception classes for Converge."""

from typing import List, Optional


class ConvergeError(Exception):
    """Base exception for all Converge errors."""
    pass


class ConfigurationError(ConvergeError):
    """Raised when a configuration document is malformed or has unresolved references."""
    pass


class CycleError(ConvergeError):
    """Raised when resource references form a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        chain = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Dependency cycle detected: {chain}")


class ProviderError(ConvergeError):
    """Raised when a provider operation fails for a single resource."""

    def __init__(self, message: str, address: Optional[str] = None):
        self.address = address
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider operation exceeds its timeout."""
    pass


class ResourceNotFoundError(ProviderError):
    """Raised by provider read/delete when the remote object no longer exists."""
    pass


class StateCorruptionError(ConvergeError):
    """Raised when the state document is unreadable or has an unrecognized version."""
    pass


class StateLockError(ConvergeError):
    """Raised when the state lock is held by another run."""
    pass


class PlanStaleError(ConvergeError):
    """Raised when a saved plan no longer matches the current state."""
    pass


class SettingsError(ConvergeError):
    """Raised when tool settings are invalid or cannot be read."""
    pass
