"""Crash-safe persisted State Store with per-address serialization."""

import json
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from pydantic import ValidationError
from ..utils.errors import ConvergeError, StateCorruptionError, StateLockError
from ..utils.files import atomic_write_json
from ..utils.logging import get_logger
from .models import STATE_SCHEMA_VERSION, Freshness, ResourceState, StateDocument

logger = get_logger("state.store")


def _migrate_v1(data: Dict[str, Any]) -> Dict[str, Any]:
    """Version 1 stored a flat address map without lineage, serial or freshness."""
    resources = {}
    for address, entry in (data.get("resources") or {}).items():
        resources[address] = {
            "address": address,
            "kind": entry.get("kind", address.split(".", 1)[0]),
            "identifier": entry.get("id") or entry.get("identifier"),
            "attributes": entry.get("attributes", {}),
            "dependencies": entry.get("depends_on", []),
            "freshness": Freshness.SYNCED.value,
        }
    return {"schema_version": 2, "serial": 0, "resources": resources}


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1,
}


def parse_state_document(data: Any, source: str = "<memory>") -> StateDocument:
    """
    Validate raw state data, migrating older schema versions forward.

    Raises:
        StateCorruptionError: If the data is not a recognizable state document
    """
    if not isinstance(data, dict):
        raise StateCorruptionError(f"State {source} must contain a JSON object")

    version = data.get("schema_version", data.get("version"))
    if not isinstance(version, int):
        raise StateCorruptionError(f"State {source} has no schema version; refusing to guess its layout")
    if version > STATE_SCHEMA_VERSION:
        raise StateCorruptionError(
            f"State {source} has schema version {version}, newer than supported "
            f"version {STATE_SCHEMA_VERSION}. Upgrade converge before using this state."
        )

    while version < STATE_SCHEMA_VERSION:
        migrate = MIGRATIONS.get(version)
        if migrate is None:
            raise StateCorruptionError(f"State {source} has unrecognized schema version {version}")
        data = migrate(data)
        logger.info(f"Migrated state {source} from schema version {version} to {data['schema_version']}")
        version = data["schema_version"]

    try:
        document = StateDocument(**data)
    except ValidationError as e:
        raise StateCorruptionError(f"State {source} is malformed: {e}")

    for address, entry in document.resources.items():
        if entry.address != address:
            raise StateCorruptionError(f"State {source} entry '{address}' is recorded as '{entry.address}'")
    return document


class StateStore:
    """
    Persisted record of every managed resource, keyed by address.

    Every mutation rewrites the whole document atomically before returning.
    Mutations of the same address are serialized; mutations of different
    addresses only contend for the short in-memory update and file flush.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, document: Optional[StateDocument] = None):
        self.path = Path(path) if path is not None else None
        self._document = document or StateDocument()
        self._document_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._address_locks: Dict[str, threading.RLock] = {}
        self._address_locks_guard = threading.Lock()
        self._persisted_serial = self._document.serial

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StateStore":
        """
        Load the state at path; a missing file yields an empty store.

        Raises:
            StateCorruptionError: If the file exists but cannot be used
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No state at {path}, starting empty")
            return cls(path)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StateCorruptionError(f"State {path} is not valid JSON: {e}")
        except OSError as e:
            raise StateCorruptionError(f"State {path} cannot be read: {e}")

        document = parse_state_document(data, str(path))
        logger.info(f"Loaded state from {path} (serial {document.serial}, {len(document.resources)} resources)")
        return cls(path, document)

    @property
    def lineage(self) -> str:
        return self._document.lineage

    @property
    def serial(self) -> int:
        return self._document.serial

    def read(self, address: str) -> Optional[ResourceState]:
        """Return a copy of the state of address, or None when unmanaged."""
        with self._document_lock:
            entry = self._document.resources.get(address)
            return entry.model_copy(deep=True) if entry is not None else None

    def list(self) -> List[str]:
        """All managed addresses, sorted."""
        with self._document_lock:
            return sorted(self._document.resources)

    def all(self) -> Dict[str, ResourceState]:
        """Copies of every entry keyed by address."""
        with self._document_lock:
            return {a: e.model_copy(deep=True) for a, e in self._document.resources.items()}

    @contextmanager
    def locked(self, address: str) -> Iterator[None]:
        """Hold the per-address lock, e.g. around a provider call and its write."""
        with self._address_lock(address):
            yield

    def write(self, address: str, state: ResourceState) -> None:
        """Record state for address and persist durably before returning."""
        if state.address != address:
            raise ConvergeError(f"State for {state.address} cannot be written under {address}")
        state = state.model_copy(update={"updated_at": datetime.now(timezone.utc)}, deep=True)
        with self._address_lock(address):
            self._mutate(address, state)
        logger.debug(f"Wrote state for {address} (freshness: {state.freshness.value})")

    def delete(self, address: str) -> bool:
        """Remove address from state. Returns False when it was not managed."""
        with self._address_lock(address):
            with self._document_lock:
                if address not in self._document.resources:
                    return False
            self._mutate(address, None)
        logger.debug(f"Deleted state for {address}")
        return True

    def set_freshness(self, address: str, freshness: Freshness) -> ResourceState:
        """Change the freshness flag of a managed resource (taint/untaint)."""
        with self._address_lock(address):
            current = self.read(address)
            if current is None:
                raise ConvergeError(f"Resource {address} is not in state")
            current.freshness = freshness
            self.write(address, current)
            return current

    def _address_lock(self, address: str) -> threading.RLock:
        with self._address_locks_guard:
            lock = self._address_locks.get(address)
            if lock is None:
                lock = threading.RLock()
                self._address_locks[address] = lock
            return lock

    def _mutate(self, address: str, state: Optional[ResourceState]) -> None:
        with self._document_lock:
            previous = self._document.resources.get(address)
            if state is None:
                self._document.resources.pop(address, None)
            else:
                self._document.resources[address] = state
            self._document.serial += 1
            serial = self._document.serial
            data = self._document.model_dump(mode="json")

        try:
            self._persist(serial, data)
        except Exception:
            with self._document_lock:
                if previous is None:
                    self._document.resources.pop(address, None)
                else:
                    self._document.resources[address] = previous
            raise

    def _persist(self, serial: int, data: Dict[str, Any]) -> None:
        if self.path is None:
            return
        with self._flush_lock:
            # A newer snapshot already on disk includes this change.
            if serial <= self._persisted_serial:
                return
            try:
                atomic_write_json(self.path, data)
            except OSError as e:
                raise ConvergeError(f"Failed to persist state to {self.path}: {e}") from e
            self._persisted_serial = serial


class StateLock:
    """Exclusive lock file guarding a state file against concurrent runs."""

    def __init__(self, state_path: Union[str, Path]):
        self.path = Path(f"{state_path}.lock")
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            holder = self._describe_holder()
            raise StateLockError(
                f"State is locked by another run ({holder}). "
                f"If no other run is active, remove {self.path}."
            )
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump({"pid": os.getpid(), "created_at": datetime.now(timezone.utc).isoformat()}, f)
        self._held = True
        logger.debug(f"Acquired state lock {self.path}")

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._held = False
        logger.debug(f"Released state lock {self.path}")

    def _describe_holder(self) -> str:
        try:
            info = json.loads(self.path.read_text(encoding='utf-8'))
            return f"pid {info.get('pid')}, since {info.get('created_at')}"
        except (OSError, ValueError):
            return "unknown holder"

    def __enter__(self) -> "StateLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
