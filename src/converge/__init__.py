"""Converge - Declarative resource reconciler."""

from typing import Any, Dict, Optional, Tuple
from .config import Settings, load_settings
from .executor.models import RunReport
from .plan.models import Plan
from .workspace import Workspace, build_registry
from .utils.logging import setup_logging, get_logger
from .utils.errors import ConvergeError

__version__ = "0.1.0"

__all__ = ["plan", "apply", "destroy", "Workspace", "build_registry", "ConvergeError", "Settings", "load_settings"]

setup_logging()
logger = get_logger("converge")


def plan(config_path: str, state_path: Optional[str] = None, variables: Optional[Dict[str, Any]] = None) -> Plan:
    """Compute the Plan for a configuration without changing anything."""
    return Workspace(config_path, state_path=state_path, variables=variables).plan()


def apply(config_path: str, state_path: Optional[str] = None, variables: Optional[Dict[str, Any]] = None) -> Tuple[Plan, RunReport]:
    """Plan and execute a configuration; returns the plan and the run report."""
    try:
        return Workspace(config_path, state_path=state_path, variables=variables).apply()
    except ConvergeError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during apply: {e}", exc_info=True)
        raise ConvergeError(f"Apply failed: {e}") from e


def destroy(state_path: Optional[str] = None) -> Tuple[Plan, RunReport]:
    """Delete every resource recorded in state."""
    return Workspace(state_path=state_path).destroy()
