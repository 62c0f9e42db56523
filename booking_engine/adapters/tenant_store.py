from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class VersionedValue:
    value: Any
    version: int


class TenantStoreProtocol:
    """Key-value operations the engine needs from the tenant store.

    Values are JSON-compatible. Every write bumps a per-key version so
    callers can detect concurrent writers with ``compare_and_set``.
    """

    def get(self, key: str) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    def get_versioned(self, key: str) -> VersionedValue:  # pragma: no cover
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:  # pragma: no cover
        raise NotImplementedError

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:  # pragma: no cover
        raise NotImplementedError

    def expire(self, key: str, seconds: int) -> None:  # pragma: no cover
        raise NotImplementedError


class MemoryTenantStore(TenantStoreProtocol):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # key -> (value, version, expires_at monotonic seconds or None)
        self._entries: Dict[str, Tuple[Any, int, Optional[float]]] = {}

    def get(self, key: str) -> Any:
        return self.get_versioned(key).value

    def get_versioned(self, key: str) -> VersionedValue:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return VersionedValue(None, 0)
            value, version, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                return VersionedValue(None, version)
            return VersionedValue(copy.deepcopy(value), version)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            version = self._entries.get(key, (None, 0, None))[1]
            self._entries[key] = (copy.deepcopy(value), version + 1, expires_at)

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        with self._lock:
            version = self._entries.get(key, (None, 0, None))[1]
            if version != expected_version:
                return False
            self._entries[key] = (copy.deepcopy(value), version + 1, None)
            return True

    def expire(self, key: str, seconds: int) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            value, version, expires_at = entry
            now = time.monotonic()
            if expires_at is not None and expires_at <= now:
                return
            self._entries[key] = (value, version, now + seconds)
