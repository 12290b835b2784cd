"""Pydantic models for computed plans (versioned, immutable, saveable)."""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from ..state.models import ResourceState
from ..utils.errors import ConvergeError, PlanStaleError
from ..utils.files import atomic_write_text

PLAN_FORMAT_VERSION = "1.0"


class Action(str, Enum):
    """Per-resource planned action."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NO_OP = "no-op"


class ReplaceOrder(str, Enum):
    """Ordering of the two halves of a replacement."""
    DESTROY_BEFORE_CREATE = "destroy_before_create"
    CREATE_BEFORE_DESTROY = "create_before_destroy"


class PlannedChange(BaseModel):
    """One (address, action, reason) entry of a Plan."""
    model_config = ConfigDict(frozen=True)

    address: str
    kind: str
    action: Action
    reason: str = ""
    changed_fields: Tuple[str, ...] = Field(default_factory=tuple)
    desired: Optional[Dict[str, Any]] = Field(None, description="Desired attributes, references encoded as {'ref': ...}")
    prior: Optional[ResourceState] = Field(None, description="State the change was planned against")
    requires: Tuple[str, ...] = Field(default_factory=tuple, description="Addresses whose changes must succeed first")
    dependencies: Tuple[str, ...] = Field(default_factory=tuple, description="Dependency addresses to record in state")
    resolved: Dict[str, Any] = Field(default_factory=dict, description="Desired values whose references are known at plan time")
    deposed: Tuple[str, ...] = Field(default_factory=tuple, description="Replaced objects still to delete")
    replace_order: Optional[ReplaceOrder] = None
    timeout: Optional[float] = None

    @property
    def has_effect(self) -> bool:
        return self.action != Action.NO_OP or bool(self.deposed)


class PlanMetadata(BaseModel):
    """Where and against what state a Plan was computed."""
    model_config = ConfigDict(frozen=True)

    format_version: str = PLAN_FORMAT_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state_lineage: str
    state_serial: int
    destroy: bool = False
    config_source: Optional[str] = None


class Plan(BaseModel):
    """Ordered, immutable list of planned changes."""
    model_config = ConfigDict(frozen=True)

    metadata: PlanMetadata
    changes: Tuple[PlannedChange, ...] = Field(default_factory=tuple)

    def summary(self) -> Dict[str, int]:
        counts = {a.value: 0 for a in Action}
        counts["deposed"] = 0
        for change in self.changes:
            counts[change.action.value] += 1
            counts["deposed"] += len(change.deposed)
        return counts

    def has_changes(self) -> bool:
        return any(change.has_effect for change in self.changes)

    def get(self, address: str) -> Optional[PlannedChange]:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def addresses(self, action: Optional[Action] = None) -> List[str]:
        return [c.address for c in self.changes if action is None or c.action == action]

    def check_current(self, lineage: str, serial: int) -> None:
        """
        Refuse a plan computed against a different state.

        Raises:
            PlanStaleError: If lineage or serial differ
        """
        # A state that was never written has no stable lineage yet.
        if self.metadata.state_serial == 0 and serial == 0:
            return
        if self.metadata.state_lineage != lineage:
            raise PlanStaleError(
                "Saved plan was created for a different state (lineage mismatch). Run plan again."
            )
        if self.metadata.state_serial != serial:
            raise PlanStaleError(
                f"State changed since the plan was created (serial {self.metadata.state_serial} "
                f"-> {serial}). Run plan again."
            )

    def save(self, path: Path) -> None:
        atomic_write_text(Path(path), json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n")

    @classmethod
    def load(cls, path: Path) -> "Plan":
        path = Path(path)
        if not path.is_file():
            raise ConvergeError(f"Plan file not found: {path}")
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise ConvergeError(f"Invalid plan file {path}: {e}")
