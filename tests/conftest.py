"""Shared fixtures: a recording provider and helpers to build declarations."""

import threading
import time
from typing import Any, Dict, List, Optional
import pytest
from converge.config.manager import Settings, SimulatedSettings
from converge.ingest.config_loader import parse_configuration
from converge.providers.base import Provider
from converge.providers.simulated import SimulatedProvider, register_simulated
from converge.registry.registry import ProviderRegistry
from converge.registry.schema import AttributeSchema, Mutability, ResourceSchema
from converge.state.store import StateStore
from converge.utils.errors import ProviderError, ResourceNotFoundError


class RecordingProvider(Provider):
    """In-memory provider recording every call, with per-name failures and delays."""

    name = "recording"

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail_names = set()
        self.delays: Dict[str, float] = {}
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._counter = 0

    def supports_update(self, kind: str) -> bool:
        return kind != "fixed"

    def supports_create_before_destroy(self, kind: str) -> bool:
        return True

    def _enter(self, operation: str, kind: str, name: Optional[str]):
        with self._lock:
            self.calls.append((operation, kind, name))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(name, 0)
            if delay:
                time.sleep(delay)
            if name in self.fail_names:
                raise ProviderError(f"{operation} of {name} rejected")
        finally:
            with self._lock:
                self.active -= 1

    def create(self, kind, attributes):
        self._enter("create", kind, attributes.get("name"))
        with self._lock:
            self._counter += 1
            identifier = f"{kind}-{self._counter}"
            actual = dict(attributes, id=identifier)
            self.objects[identifier] = actual
        return identifier, dict(actual)

    def read(self, kind, identifier):
        if identifier not in self.objects:
            raise ResourceNotFoundError(f"{identifier} not found")
        return dict(self.objects[identifier])

    def update(self, kind, identifier, changed, attributes):
        self._enter("update", kind, attributes.get("name"))
        with self._lock:
            self.objects[identifier].update(changed)
            return dict(self.objects[identifier])

    def delete(self, kind, identifier):
        name = self.objects.get(identifier, {}).get("name")
        self._enter("delete", kind, name)
        with self._lock:
            if self.objects.pop(identifier, None) is None:
                raise ResourceNotFoundError(f"{identifier} not found")

    def names(self, operation: str) -> List[str]:
        return [name for op, _, name in self.calls if op == operation]


def thing_schema(kind: str = "thing") -> ResourceSchema:
    return ResourceSchema(
        kind=kind,
        attributes={
            "name": AttributeSchema(mutability=Mutability.FORCE_NEW, required=True),
            "size": AttributeSchema(mutability=Mutability.UPDATABLE, default=1),
            "parent": AttributeSchema(mutability=Mutability.FORCE_NEW),
            "peer": AttributeSchema(mutability=Mutability.UPDATABLE),
            "id": AttributeSchema(mutability=Mutability.COMPUTED),
        },
    )


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def registry(provider):
    """Registry with 'thing' (updatable) and 'fixed' (no update) kinds."""
    reg = ProviderRegistry()
    reg.register(thing_schema("thing"), provider)
    reg.register(thing_schema("fixed"), provider)
    return reg


@pytest.fixture
def simulated_registry():
    reg = ProviderRegistry()
    register_simulated(reg, SimulatedProvider())
    return reg


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "state.json")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        state_path=str(tmp_path / "state.json"),
        parallelism=4,
        timeout=5,
        simulated=SimulatedSettings(cloud_path=str(tmp_path / "cloud.json")),
    )


def make_config(resources: Dict[str, Dict[str, Dict[str, Any]]], variables: Optional[Dict[str, Any]] = None):
    """Parse an in-memory configuration document."""
    document = {"resources": resources}
    if variables:
        document["variables"] = variables
    return parse_configuration(document)
