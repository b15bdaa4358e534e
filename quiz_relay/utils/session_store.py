"""
Key-value persistence for sessions, pending commands, caches and flags.

The store holds opaque JSON-compatible values. Every value carries a version
stamp that increases on each write, which lets callers replace the classic
read-modify-write of whole records with ``update``: a compare-and-set loop
that retries when another writer got there first.
"""

import asyncio
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..exceptions import StoreConflictError


class SessionStore(ABC):
    """Async key-value contract used by the relay and the workflow."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def pop(self, key: str) -> Optional[Any]:
        """Atomically read and remove a value."""
        pass

    @abstractmethod
    async def keys(self, prefix: str = '') -> List[str]:
        pass

    @abstractmethod
    async def sadd(self, key: str, member: str) -> bool:
        """Add a member to a set, returning True when it was not present."""
        pass

    @abstractmethod
    async def sismember(self, key: str, member: str) -> bool:
        pass

    @abstractmethod
    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        """Return the value and its version (0 when the key is absent)."""
        pass

    @abstractmethod
    async def compare_and_set(self, key: str, expected_version: int, value: Any) -> bool:
        """Write ``value`` only if the stored version still equals ``expected_version``."""
        pass

    async def update(self, key: str, mutator: Callable[[Any], Any],
                     default: Any = None, max_attempts: int = 10) -> Any:
        """
        Apply ``mutator`` to the stored value without losing concurrent writes.

        The mutator receives a private copy of the current value (or of
        ``default`` when the key is absent) and returns the new value. It may be
        called more than once if another writer interleaves.

        Returns:
            The value that was written

        Raises:
            StoreConflictError: If every attempt lost the race
        """
        for _ in range(max_attempts):
            current, version = await self.get_versioned(key)
            if current is None:
                current = copy.deepcopy(default)
            updated = mutator(current)
            if await self.compare_and_set(key, version, updated):
                return updated
        raise StoreConflictError(key, max_attempts)


class MemorySessionStore(SessionStore):
    """In-process store. Values are deep-copied in and out."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._values: Dict[str, Tuple[Any, int]] = {}
        self._sets: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held after each write."""
        pass

    @contextmanager
    def _writing(self) -> Iterator[None]:
        # Lock held. A write that cannot be persisted is undone in memory too.
        values = dict(self._values)
        sets = {k: set(members) for k, members in self._sets.items()}
        try:
            yield
            self._persist()
        except Exception:
            self._values, self._sets = values, sets
            raise

    async def get(self, key: str) -> Optional[Any]:
        value, _ = await self.get_versioned(key)
        return value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            _, version = self._values.get(key, (None, 0))
            with self._writing():
                self._values[key] = (copy.deepcopy(value), version + 1)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key not in self._values and key not in self._sets:
                return False
            with self._writing():
                self._values.pop(key, None)
                self._sets.pop(key, None)
            return True

    async def pop(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            with self._writing():
                del self._values[key]
            return entry[0]

    async def keys(self, prefix: str = '') -> List[str]:
        async with self._lock:
            names = list(self._values.keys()) + list(self._sets.keys())
        return [name for name in names if name.startswith(prefix)]

    async def sadd(self, key: str, member: str) -> bool:
        async with self._lock:
            if str(member) in self._sets.get(key, set()):
                return False
            with self._writing():
                self._sets.setdefault(key, set()).add(str(member))
            return True

    async def sismember(self, key: str, member: str) -> bool:
        async with self._lock:
            return str(member) in self._sets.get(key, set())

    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        async with self._lock:
            value, version = self._values.get(key, (None, 0))
            return copy.deepcopy(value), version

    async def compare_and_set(self, key: str, expected_version: int, value: Any) -> bool:
        async with self._lock:
            _, version = self._values.get(key, (None, 0))
            if version != expected_version:
                self.logger.debug(f"Version conflict on {key}: expected {expected_version}, found {version}")
                return False
            with self._writing():
                self._values[key] = (copy.deepcopy(value), version + 1)
            return True


class JsonFileSessionStore(MemorySessionStore):
    """
    Memory store mirrored to a JSON file so sessions survive restarts.

    The whole file is rewritten after every write; fine for the handful of
    chat sessions this service handles. Values must be JSON-serialisable: a
    write that cannot be saved raises and leaves both memory and file as
    they were.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        """Load existing records from file."""
        if not self.path.exists():
            self.logger.info(f"Session file {self.path} not found, starting empty")
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Error loading session file {self.path}: {e}")
            raise

        for key, entry in data.get('values', {}).items():
            self._values[key] = (entry['value'], entry['version'])
        for key, members in data.get('sets', {}).items():
            self._sets[key] = set(members)
        self.logger.info(f"Loaded {len(self._values)} records from {self.path}")

    def _persist(self) -> None:
        data = {
            'values': {k: {'value': v, 'version': ver} for k, (v, ver) in self._values.items()},
            'sets': {k: sorted(members) for k, members in self._sets.items()}
        }
        # Serialise before touching the file so a bad value leaves it intact
        text = json.dumps(data, ensure_ascii=False, indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp_path, self.path)


def create_store(settings: Dict[str, Any]) -> SessionStore:
    """Build the store backend named in ``settings['store']``."""
    store_settings = settings.get('store', {})
    backend = store_settings.get('backend', 'memory')
    if backend == 'json':
        return JsonFileSessionStore(store_settings['file'])
    if backend == 'memory':
        return MemorySessionStore()
    raise ValueError(f"Unknown session store backend: {backend}")
