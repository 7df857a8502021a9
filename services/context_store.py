"""
Keyed checkpoint storage for conversation state and thread mappings.

Two implementations of the ``ContextStore`` interface are provided:

- ``InMemoryContextStore``: a dictionary with per-key expiry. Used in tests and
  for single-process demos.
- ``FileContextStore``: one JSON file per key under the configured checkpoints
  directory. File names are derived from a SHA-256 hash of the key, so user
  identifiers never appear on disk, and writes go through a temporary file and
  ``os.replace`` so a crash can never leave half a checkpoint behind.

Values are JSON-compatible Python objects (dicts, lists, strings, numbers). The
thread manager is the only component that knows what the keys mean.
"""

import hashlib
import json
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from config import CONFIG
from shared.exceptions import ContextStoreError

CHECKPOINTS_DIR = CONFIG['paths']['checkpoints_full_path']


def get_key_hash(key: str) -> str:
    """
    Generate a consistent, filesystem-safe hash for a store key.

    Args:
        key (str): Store key, e.g. "thread:+5511999999999:whatsapp"

    Returns:
        str: A 32-character hexadecimal hash string
    """
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


class ContextStore(ABC):
    """Minimal keyed get/set interface with optional time-to-live."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when the key is missing or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryContextStore(ContextStore):
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            # Round-trip through JSON so callers get an independent copy.
            return json.loads(json.dumps(value))

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        try:
            serialized = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise ContextStoreError(f"Value for key '{key}' is not JSON-serializable: {e}") from e
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (serialized, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list:
        with self._lock:
            return [key for key in self._data if key.startswith(prefix)]


class FileContextStore(ContextStore):
    """
    JSON-file-per-key store.

    Each file holds ``{"key": ..., "value": ..., "expiresAt": epoch_seconds|null}``.
    Unreadable or corrupted files are treated as missing, the way the
    conversation history loader treats them.
    """

    def __init__(self, directory: Optional[str] = None, clock: Callable[[], float] = time.time) -> None:
        self.directory = directory or CHECKPOINTS_DIR
        self._clock = clock
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{get_key_hash(key)}.json")

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                record = json.load(f)
        except (json.JSONDecodeError, OSError):
            return None
        if not isinstance(record, dict) or record.get("key") != key:
            return None
        expires_at = record.get("expiresAt")
        if expires_at is not None and self._clock() >= expires_at:
            self.delete(key)
            return None
        return record.get("value")

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        record = {
            "key": key,
            "value": value,
            "expiresAt": self._clock() + ttl_seconds if ttl_seconds else None,
        }
        path = self._path(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record, f, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise ContextStoreError(f"Failed to write key '{key}': {e}") from e

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ContextStoreError(f"Failed to delete key '{key}': {e}") from e


def build_context_store(backend: str) -> ContextStore:
    """Return the store selected by ``context_store.backend`` (``file`` or ``memory``)."""
    if (backend or "file").lower() == "memory":
        return InMemoryContextStore()
    return FileContextStore()
