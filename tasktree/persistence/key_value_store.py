"""
Durable key-value storage for snapshots and settings.

The tree code only talks to the KeyValueStore interface:
- get(key) -> bytes or None when the key is absent
- set(key, value) raises QuotaExceeded when the value doesn't fit
- remove(key) is a no-op for an absent key

Two implementations:
- InMemoryKeyValueStore, with an optional byte capacity. Used by tests and
  by callers that persist elsewhere.
- DirectoryKeyValueStore, one file per key in a directory.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import logging
import os
import re
from tasktree.hierarchy.errors import PersistenceFailure, QuotaExceeded

logger = logging.getLogger(__name__)

SAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


def _check_key(key: str) -> None:
    if not isinstance(key, str) or not SAFE_KEY_PATTERN.match(key) or key in (".", ".."):
        raise ValueError(f"Invalid key: {key!r}")


def _check_value(value: bytes) -> None:
    if not isinstance(value, bytes):
        raise ValueError(f"value must be bytes, but got {type(value)}")


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and capacity < 0:
            raise ValueError(f"capacity must be non-negative, but got {capacity}")
        self.capacity = capacity
        self._data: dict[str, bytes] = {}

    def used_bytes(self) -> int:
        return sum(len(value) for value in self._data.values())

    def get(self, key: str) -> Optional[bytes]:
        _check_key(key)
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        _check_key(key)
        _check_value(value)
        if self.capacity is not None:
            size_after = self.used_bytes() - len(self._data.get(key, b"")) + len(value)
            if size_after > self.capacity:
                raise QuotaExceeded(key, size_after, self.capacity)
        self._data[key] = value

    def remove(self, key: str) -> None:
        _check_key(key)
        self._data.pop(key, None)


class DirectoryKeyValueStore(KeyValueStore):
    """
    Each key is stored as the file <directory>/<key>. Writes go to a temporary
    file first and are moved in place, so a crash never leaves half a value.
    """
    def __init__(self, directory: Path, capacity: Optional[int] = None):
        self.directory = Path(directory)
        self.capacity = capacity
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Cannot create storage directory {self.directory}: {e}") from e

    def _path(self, key: str) -> Path:
        _check_key(key)
        return self.directory / key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Cannot read {path}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        _check_value(value)
        if self.capacity is not None:
            used = sum(p.stat().st_size for p in self.directory.iterdir() if p.is_file() and p.name != key)
            if used + len(value) > self.capacity:
                raise QuotaExceeded(key, used + len(value), self.capacity)
        tmp_path = path.with_name(f".{key}.tmp")
        try:
            tmp_path.write_bytes(value)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            raise PersistenceFailure(f"Cannot write {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Cannot remove {path}: {e}") from e
