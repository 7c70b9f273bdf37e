"""ResilientCache Memory Adapter - In-Process Distributed Tier.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from resilient_cache.store.backend import DistributedAdapter

logger = logging.getLogger(__name__)


class MemoryAdapter(DistributedAdapter):
    """In-process distributed adapter.

    A thread-safe dictionary that several cache instances in one process
    can share as their remote tier. It can be switched offline to
    simulate connection loss, in which case every call fails with a
    connectivity error.

    Features:
    - O(1) get/set/delete operations
    - Thread-safe with RLock
    - Native TTL with lazy expiry
    - Pattern-based key scanning

    Example:
        shared = MemoryAdapter()
        cache_a = Cache(distributed=shared)
        cache_b = Cache(distributed=shared)
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize memory adapter.

        Args:
            clock: Time source used for TTL bookkeeping
        """
        super().__init__()
        self._clock = clock
        self._data: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}
        self._lock = threading.RLock()
        self._online = True

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Simulate connectivity changes."""
        self._online = online
        logger.info(f"MemoryAdapter is now {'online' if online else 'offline'}")

    def _check_online(self) -> None:
        if not self._online:
            raise ConnectionError("memory adapter offline")

    def _live(self, key: str) -> Optional[Tuple[Dict[str, Any], Optional[float]]]:
        item = self._data.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and self._clock() > expires_at:
            del self._data[key]
            return None
        return item

    def _get(self, key: str) -> Optional[Dict[str, Any]]:
        self._check_online()
        with self._lock:
            item = self._live(key)
            return dict(item[0]) if item else None

    def _set(self, key: str, record: Dict[str, Any], ttl: Optional[float]) -> None:
        self._check_online()
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (dict(record), expires_at)

    def _delete(self, key: str) -> bool:
        self._check_online()
        with self._lock:
            return self._data.pop(key, None) is not None

    def _exists(self, key: str) -> bool:
        self._check_online()
        with self._lock:
            return self._live(key) is not None

    def _clear(self) -> int:
        self._check_online()
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def _keys(self, pattern: Optional[str]) -> List[str]:
        self._check_online()
        with self._lock:
            keys = [k for k in list(self._data) if self._live(k) is not None]
        if pattern is None:
            return keys
        return [k for k in keys if fnmatch.fnmatchcase(k, pattern)]

    def _get_ttl(self, key: str) -> Optional[float]:
        self._check_online()
        with self._lock:
            item = self._live(key)
            if item is None or item[1] is None:
                return None
            return max(0.0, item[1] - self._clock())

    def _set_ttl(self, key: str, ttl: float) -> bool:
        self._check_online()
        with self._lock:
            item = self._live(key)
            if item is None:
                return False
            self._data[key] = (item[0], self._clock() + ttl)
            return True

    def _ping(self) -> bool:
        return self._online

    def size(self) -> int:
        """Get stored key count, ignoring the online flag."""
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"MemoryAdapter(entries={len(self._data)}, online={self._online})"


__all__ = ["MemoryAdapter"]
