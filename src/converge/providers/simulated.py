"""Simulated cloud provider for the network + web server topology."""

import copy
import json
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union
from ..registry.registry import ProviderRegistry
from ..registry.schema import AttributeSchema, Mutability, ResourceSchema
from ..utils.errors import ProviderError, ResourceNotFoundError
from ..utils.files import atomic_write_json
from ..utils.logging import get_logger
from .base import Provider

logger = get_logger("providers.simulated")

UPDATABLE = Mutability.UPDATABLE
FORCE_NEW = Mutability.FORCE_NEW
COMPUTED = Mutability.COMPUTED

# Declarative kind table: kind -> (identifier prefix, updatable?, attributes)
SIMULATED_KINDS: Dict[str, Dict[str, Any]] = {
    "network": {
        "prefix": "net",
        "update": True,
        "attributes": {
            "cidr_block": {"mutability": FORCE_NEW, "required": True},
            "enable_dns_support": {"mutability": UPDATABLE, "default": True},
            "enable_dns_hostnames": {"mutability": UPDATABLE, "default": False},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
        },
    },
    "subnet": {
        "prefix": "subnet",
        "update": True,
        "attributes": {
            "network_id": {"mutability": FORCE_NEW, "required": True},
            "cidr_block": {"mutability": FORCE_NEW, "required": True},
            "availability_zone": {"mutability": FORCE_NEW},
            "map_public_ip_on_launch": {"mutability": UPDATABLE, "default": False},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
        },
    },
    "gateway": {
        "prefix": "gw",
        "update": False,
        "attributes": {
            "network_id": {"mutability": FORCE_NEW, "required": True},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
        },
    },
    "route_table": {
        "prefix": "rtb",
        "update": True,
        "attributes": {
            "network_id": {"mutability": FORCE_NEW, "required": True},
            "routes": {"mutability": UPDATABLE, "default": []},
            "subnet_ids": {"mutability": UPDATABLE, "default": []},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
        },
    },
    "security_group": {
        "prefix": "sg",
        "update": True,
        "attributes": {
            "network_id": {"mutability": FORCE_NEW, "required": True},
            "name": {"mutability": FORCE_NEW, "required": True},
            "description": {"mutability": FORCE_NEW, "default": "Managed by converge"},
            "ingress": {"mutability": UPDATABLE, "default": []},
            "egress": {"mutability": UPDATABLE, "default": []},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
        },
    },
    "instance": {
        "prefix": "i",
        "update": True,
        "attributes": {
            "image": {"mutability": FORCE_NEW, "required": True},
            "instance_type": {"mutability": UPDATABLE, "required": True},
            "subnet_id": {"mutability": FORCE_NEW, "required": True},
            "security_group_ids": {"mutability": UPDATABLE, "default": []},
            "associate_public_ip": {"mutability": FORCE_NEW, "default": False},
            "key_name": {"mutability": FORCE_NEW},
            "user_data": {"mutability": FORCE_NEW},
            "tags": {"mutability": UPDATABLE},
            "id": {"mutability": COMPUTED},
            "private_ip": {"mutability": COMPUTED},
            "public_ip": {"mutability": COMPUTED},
        },
    },
}

# Hook signature: (operation, kind, attributes or identifier) -> error message or None
FailureHook = Callable[[str, str, Any], Optional[str]]


def simulated_schemas() -> Dict[str, ResourceSchema]:
    """Build ResourceSchema objects from the declarative kind table."""
    schemas = {}
    for kind, spec in SIMULATED_KINDS.items():
        schemas[kind] = ResourceSchema(
            kind=kind,
            attributes={name: AttributeSchema(**attr) for name, attr in spec["attributes"].items()},
        )
    return schemas


class SimulatedCloud:
    """
    Thread-safe object store standing in for a cloud API.

    When a path is given, the objects are persisted after every mutation so
    separate processes see the same cloud.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._counter = 0
        if self.path is not None and self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding='utf-8'))
            except (OSError, ValueError) as e:
                raise ProviderError(f"Simulated cloud file {self.path} is unreadable: {e}")
            self._objects = data.get("objects", {})
            self._counter = data.get("counter", 0)

    def put(self, identifier: str, kind: str, attributes: Dict[str, Any]) -> None:
        with self._lock:
            self._objects[identifier] = {"kind": kind, "attributes": copy.deepcopy(attributes)}
            self._save()

    def get(self, identifier: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._objects.get(identifier)
            return copy.deepcopy(entry) if entry is not None else None

    def remove(self, identifier: str) -> bool:
        with self._lock:
            existed = self._objects.pop(identifier, None) is not None
            if existed:
                self._save()
            return existed

    def next_index(self) -> int:
        with self._lock:
            self._counter += 1
            return self._counter

    def objects(self, kind: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                identifier: copy.deepcopy(entry)
                for identifier, entry in self._objects.items()
                if kind is None or entry["kind"] == kind
            }

    def _save(self) -> None:
        if self.path is None:
            return
        atomic_write_json(self.path, {"counter": self._counter, "objects": self._objects})


class SimulatedProvider(Provider):
    """Provider backed by a SimulatedCloud, with optional latency and failure injection."""

    name = "simulated"

    def __init__(
        self,
        cloud: Optional[SimulatedCloud] = None,
        latency: float = 0.0,
        failure_hook: Optional[FailureHook] = None
    ):
        self.cloud = cloud or SimulatedCloud()
        self.latency = latency
        self.failure_hook = failure_hook
        self.calls = []
        self._calls_lock = threading.Lock()

    def supports_update(self, kind: str) -> bool:
        return SIMULATED_KINDS.get(kind, {}).get("update", True)

    def supports_create_before_destroy(self, kind: str) -> bool:
        return True

    def create(self, kind: str, attributes: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        self._enter("create", kind, attributes)
        index = self.cloud.next_index()
        prefix = SIMULATED_KINDS.get(kind, {}).get("prefix", kind)
        identifier = f"{prefix}-{uuid.uuid4().hex[:8]}"
        actual = dict(attributes)
        actual["id"] = identifier
        if kind == "instance":
            actual["private_ip"] = f"10.0.{index // 250}.{index % 250 + 4}"
            actual["public_ip"] = f"203.0.113.{index % 250 + 1}" if attributes.get("associate_public_ip") else None
        self.cloud.put(identifier, kind, actual)
        logger.info(f"Created {kind} {identifier}")
        return identifier, actual

    def read(self, kind: str, identifier: str) -> Dict[str, Any]:
        self._enter("read", kind, identifier)
        entry = self.cloud.get(identifier)
        if entry is None or entry["kind"] != kind:
            raise ResourceNotFoundError(f"{kind} {identifier} not found")
        return entry["attributes"]

    def update(self, kind: str, identifier: str, changed: Dict[str, Any], attributes: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("update", kind, attributes)
        if not self.supports_update(kind):
            raise ProviderError(f"{kind} does not support in-place update")
        entry = self.cloud.get(identifier)
        if entry is None:
            raise ResourceNotFoundError(f"{kind} {identifier} not found")
        actual = entry["attributes"]
        actual.update(changed)
        self.cloud.put(identifier, kind, actual)
        logger.info(f"Updated {kind} {identifier}: {', '.join(sorted(changed))}")
        return actual

    def delete(self, kind: str, identifier: str) -> None:
        self._enter("delete", kind, identifier)
        if not self.cloud.remove(identifier):
            raise ResourceNotFoundError(f"{kind} {identifier} not found")
        logger.info(f"Deleted {kind} {identifier}")

    def _enter(self, operation: str, kind: str, subject: Any) -> None:
        with self._calls_lock:
            self.calls.append((operation, kind, subject))
        if self.latency:
            time.sleep(self.latency)
        if self.failure_hook is not None:
            message = self.failure_hook(operation, kind, subject)
            if message:
                raise ProviderError(message)


def register_simulated(registry: ProviderRegistry, provider: Optional[SimulatedProvider] = None) -> SimulatedProvider:
    """Register every simulated kind against one SimulatedProvider."""
    provider = provider or SimulatedProvider()
    for schema in simulated_schemas().values():
        registry.register(schema, provider, replace=True)
    return provider
