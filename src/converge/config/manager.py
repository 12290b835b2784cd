"""Two-tier settings manager (packaged defaults + user + project override)."""

import os
from pathlib import Path
from typing import Any, Dict, Optional
import yaml
from pydantic import BaseModel, Field, ValidationError
from ..plan.models import ReplaceOrder
from ..utils.errors import SettingsError
from ..utils.logging import get_logger
from .paths import get_defaults_path, get_project_config_path, get_user_config_path

logger = get_logger("config.manager")

ENVIRONMENT_OVERRIDES = {
    "CONVERGE_STATE": ("state_path", str),
    "CONVERGE_PARALLELISM": ("parallelism", int),
    "CONVERGE_TIMEOUT": ("timeout", float),
    "CONVERGE_LOG_LEVEL": ("log_level", str),
}


class SimulatedSettings(BaseModel):
    """Settings of the built-in simulated provider."""
    cloud_path: Optional[str] = Field(".converge/cloud.json", description="File shared by runs; null keeps it in memory")
    latency: float = Field(0.0, ge=0, description="Artificial delay per provider call in seconds")


class Settings(BaseModel):
    """Validated tool settings."""
    state_path: str = Field("converge.state.json", description="State document location")
    parallelism: int = Field(10, ge=1, description="Maximum concurrent provider operations")
    timeout: Optional[float] = Field(300, gt=0, description="Default provider operation timeout in seconds")
    refresh: bool = Field(True, description="Read resources back before planning")
    lock: bool = Field(True, description="Hold the state lock file during mutating runs")
    replace_order: ReplaceOrder = Field(ReplaceOrder.DESTROY_BEFORE_CREATE, description="Default replacement ordering")
    log_level: str = Field("WARNING")
    simulated: SimulatedSettings = Field(default_factory=SimulatedSettings)


def load_settings(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Load settings: defaults < user file < project file (or config_path) < environment.

    Args:
        config_path: Explicit settings file replacing the project file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        SettingsError: If a file is unreadable or a value is invalid
    """
    settings = _read_yaml(get_defaults_path(), required=True)

    user_path = get_user_config_path()
    if user_path.exists():
        _deep_merge(settings, _read_yaml(user_path))
        logger.debug(f"Loaded user settings from {user_path}")

    project_path = Path(config_path) if config_path else get_project_config_path()
    if project_path is not None:
        if config_path and not project_path.exists():
            raise SettingsError(f"Settings file not found: {config_path}")
        _deep_merge(settings, _read_yaml(project_path))
        logger.info(f"Loaded project settings from {project_path}")

    environ = os.environ if environ is None else environ
    for variable, (key, cast) in ENVIRONMENT_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is None or raw == "":
            continue
        try:
            settings[key] = cast(raw)
        except ValueError:
            raise SettingsError(f"Invalid value for {variable}: {raw}")

    try:
        return Settings(**settings)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings: {e}")


def _read_yaml(path: Path, required: bool = False) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        if required:
            raise SettingsError(f"Settings file not found: {path}")
        return {}
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in settings file {path}: {e}")
    except OSError as e:
        raise SettingsError(f"Error reading settings file {path}: {e}")

    if not isinstance(data, dict):
        raise SettingsError(f"Settings file must contain a mapping: {path}")
    return data


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
