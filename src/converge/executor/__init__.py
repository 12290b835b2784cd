"""Plan/Apply executor - bounded parallel walk of a Plan."""

from .models import ResourceResult, ResourceStatus, RunReport
from .executor import DEFAULT_PARALLELISM, Executor

__all__ = [
    "DEFAULT_PARALLELISM",
    "Executor",
    "ResourceResult",
    "ResourceStatus",
    "RunReport",
]
