"""Differ and plan model - per-resource actions in dependency order."""

from .models import Action, Plan, PlanMetadata, PlannedChange, ReplaceOrder
from .differ import compute_plan
from .refresh import refresh_states

__all__ = [
    "Action",
    "Plan",
    "PlanMetadata",
    "PlannedChange",
    "ReplaceOrder",
    "compute_plan",
    "refresh_states",
]
