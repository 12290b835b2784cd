"""Settings module: load and access tool settings."""

from .manager import Settings, SimulatedSettings, load_settings
from .paths import get_defaults_path, get_project_config_path, get_user_config_path

__all__ = [
    "Settings",
    "SimulatedSettings",
    "load_settings",
    "get_defaults_path",
    "get_project_config_path",
    "get_user_config_path",
]
