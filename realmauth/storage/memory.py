from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from realmauth.logging import get_logger
from realmauth.storage.common import StoredValue, as_bytes


class MemoryBackend:
    """Process-local backing store keeping one dict per namespace.

    Single ``has``/``get``/``set``/``destroy`` operations are atomic under
    ``_data_lock``. Namespaces optionally expire ``ttl_seconds`` after their
    last write.
    """

    def __init__(
        self,
        *,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = get_logger(__name__)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # namespace -> (entries, expires_at)
        self._namespaces: Dict[str, Tuple[Dict[str, bytes], Optional[float]]] = {}
        # RLock so replace() can reuse destroy()/set() within the same thread
        self._data_lock = threading.RLock()

    def namespace(self, name: str) -> "MemoryNamespace":
        return MemoryNamespace(self, name)

    def verify_connection(self) -> None:
        return None

    def namespaces(self) -> list[str]:
        with self._data_lock:
            return [name for name in list(self._namespaces) if self._live(name) is not None]

    def _live(self, name: str) -> Optional[Dict[str, bytes]]:
        record = self._namespaces.get(name)
        if record is None:
            return None
        entries, expires_at = record
        if expires_at is not None and expires_at <= self._clock():
            self._namespaces.pop(name, None)
            self.logger.debug("memory_namespace_expired", namespace=name)
            return None
        return entries

    def _has(self, name: str, key: str) -> bool:
        with self._data_lock:
            entries = self._live(name)
            return entries is not None and key in entries

    def _get(self, name: str, key: str) -> Optional[bytes]:
        with self._data_lock:
            entries = self._live(name)
            if entries is None:
                return None
            return entries.get(key)

    def _set(self, name: str, key: str, value: StoredValue) -> None:
        with self._data_lock:
            entries = self._live(name)
            if entries is None:
                entries = {}
            entries[key] = as_bytes(value)
            expires_at = (
                self._clock() + self.ttl_seconds if self.ttl_seconds else None
            )
            self._namespaces[name] = (entries, expires_at)

    def _destroy(self, name: str) -> None:
        with self._data_lock:
            self._namespaces.pop(name, None)

    def _replace(self, name: str, key: str, value: StoredValue) -> None:
        with self._data_lock:
            self._destroy(name)
            self._set(name, key, value)


class MemoryNamespace:
    """Realm-scoped view over a ``MemoryBackend``."""

    def __init__(self, backend: MemoryBackend, name: str) -> None:
        self.backend = backend
        self.name = name

    def has(self, key: str) -> bool:
        return self.backend._has(self.name, key)

    def get(self, key: str) -> Optional[bytes]:
        return self.backend._get(self.name, key)

    def set(self, key: str, value: StoredValue) -> None:
        self.backend._set(self.name, key, value)

    def destroy(self) -> None:
        self.backend._destroy(self.name)

    def replace(self, key: str, value: StoredValue) -> None:
        """Destroy the namespace and write ``key`` in one locked step."""
        self.backend._replace(self.name, key, value)

    def __repr__(self) -> str:
        return f"MemoryNamespace({self.name!r})"
