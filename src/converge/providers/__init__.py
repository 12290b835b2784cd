"""Providers - real-world operations per resource kind."""

from .base import Provider
from .simulated import SIMULATED_KINDS, SimulatedCloud, SimulatedProvider, register_simulated, simulated_schemas

__all__ = [
    "Provider",
    "SIMULATED_KINDS",
    "SimulatedCloud",
    "SimulatedProvider",
    "register_simulated",
    "simulated_schemas",
]
