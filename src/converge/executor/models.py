"""Pydantic models for apply run results."""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from ..plan.models import Action


class ResourceStatus(str, Enum):
    """Per-resource execution state."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ResourceResult(BaseModel):
    """Outcome of one planned change."""
    address: str
    action: Action
    status: ResourceStatus
    error: Optional[str] = Field(None, description="Provider or execution error for failed resources")
    reason: str = Field("", description="Why a resource was skipped")
    duration: float = Field(0.0, ge=0, description="Seconds spent in provider calls")


class RunReport(BaseModel):
    """Aggregate result of applying one Plan."""
    results: List[ResourceResult] = Field(default_factory=list)
    cancelled: bool = False

    def by_status(self, status: ResourceStatus) -> List[ResourceResult]:
        return [r for r in self.results if r.status == status]

    def get(self, address: str) -> Optional[ResourceResult]:
        for result in self.results:
            if result.address == address:
                return result
        return None

    @property
    def succeeded(self) -> List[str]:
        return [r.address for r in self.by_status(ResourceStatus.SUCCEEDED)]

    @property
    def failed(self) -> List[str]:
        return [r.address for r in self.by_status(ResourceStatus.FAILED)]

    @property
    def skipped(self) -> List[str]:
        return [r.address for r in self.by_status(ResourceStatus.SKIPPED)]

    @property
    def success(self) -> bool:
        return all(r.status == ResourceStatus.SUCCEEDED for r in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in ResourceStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts
