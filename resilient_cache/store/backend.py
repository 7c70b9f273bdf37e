"""ResilientCache Distributed Adapter - Abstract Remote Tier Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from resilient_cache.errors import DistributedCacheError

logger = logging.getLogger(__name__)


@dataclass
class AdapterResult:
    """Outcome of a distributed adapter call.

    Attributes:
        ok: Whether the call succeeded
        value: Call result (record, bool, key list, TTL, ...)
        error: Failure description
        connectivity: True if the failure was caused by connection loss
    """

    ok: bool
    value: Any = None
    error: Optional[str] = None
    connectivity: bool = False

    @classmethod
    def success(cls, value: Any = None) -> "AdapterResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, connectivity: bool = False) -> "AdapterResult":
        return cls(ok=False, error=error, connectivity=connectivity)

    def to_exception(self, operation: str) -> DistributedCacheError:
        """Convert a failed outcome into an exception for admin callers."""
        return DistributedCacheError(
            f"distributed {operation} failed: {self.error}",
            connectivity=self.connectivity,
        )


@dataclass
class AdapterStats:
    """Distributed adapter statistics.

    Attributes:
        reads: Number of read operations
        writes: Number of write operations
        deletes: Number of delete operations
        errors: Number of failed operations
        connectivity_errors: Failures caused by connection loss
    """

    reads: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    connectivity_errors: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record_error(self, error: str, connectivity: bool = False) -> None:
        """Record an error."""
        self.errors += 1
        if connectivity:
            self.connectivity_errors += 1
        self.last_error = error
        self.last_error_at = datetime.now()


class DistributedAdapter(ABC):
    """Abstract interface to a shared remote key-value backend.

    The cache consumes this interface as a secondary read-through /
    write-through tier. Every public call returns an ``AdapterResult``;
    exceptions raised by the backend client are caught here and
    classified, so a remote failure never escapes into the caller's
    control flow. Consistency across processes is last-write-wins.

    Subclasses implement the ``_get``/``_set``/... primitives and may
    raise freely; ``_is_connectivity_error`` decides which exceptions
    count as connection loss.

    Implementations:
    - MemoryAdapter: In-process shared dictionary
    - RedisAdapter: Redis backend
    """

    def __init__(self):
        self._stats = AdapterStats()
        self._stats_lock = threading.Lock()

    @abstractmethod
    def _get(self, key: str) -> Optional[Dict[str, Any]]:
        """Fetch a record or None."""
        pass

    @abstractmethod
    def _set(self, key: str, record: Dict[str, Any], ttl: Optional[float]) -> None:
        """Store a record with an optional TTL in seconds."""
        pass

    @abstractmethod
    def _delete(self, key: str) -> bool:
        """Delete a key, returning whether it existed."""
        pass

    @abstractmethod
    def _exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def _clear(self) -> int:
        """Remove every key owned by this adapter."""
        pass

    @abstractmethod
    def _keys(self, pattern: Optional[str]) -> List[str]:
        pass

    @abstractmethod
    def _get_ttl(self, key: str) -> Optional[float]:
        """Remaining TTL in seconds, None if missing or persistent."""
        pass

    @abstractmethod
    def _set_ttl(self, key: str, ttl: float) -> bool:
        pass

    @abstractmethod
    def _ping(self) -> bool:
        pass

    def _is_connectivity_error(self, error: Exception) -> bool:
        """Classify an exception as connection loss.

        Args:
            error: Exception raised by a primitive

        Returns:
            True if the failure is attributable to connectivity
        """
        return isinstance(error, (ConnectionError, TimeoutError))

    def _call(
        self,
        operation: str,
        func: Callable[[], Any],
        key: Optional[str] = None,
    ) -> AdapterResult:
        """Run a primitive and wrap its outcome."""
        try:
            value = func()
        except Exception as e:
            connectivity = self._is_connectivity_error(e)
            with self._stats_lock:
                self._stats.record_error(str(e), connectivity)
            target = f" {key}" if key is not None else ""
            logger.warning(
                f"{type(self).__name__} {operation}{target} failed"
                f"{' (connectivity)' if connectivity else ''}: {e}"
            )
            return AdapterResult.failure(str(e), connectivity=connectivity)

        with self._stats_lock:
            if operation in ("get", "exists", "keys", "get_ttl"):
                self._stats.reads += 1
            elif operation in ("set", "set_ttl"):
                self._stats.writes += 1
            elif operation in ("delete", "clear"):
                self._stats.deletes += 1
        return AdapterResult.success(value)

    def get(self, key: str) -> AdapterResult:
        """Get a record; ``value`` is None on a remote miss."""
        return self._call("get", lambda: self._get(key), key)

    def set(
        self,
        key: str,
        record: Dict[str, Any],
        ttl: Optional[float] = None,
    ) -> AdapterResult:
        """Store a record."""
        return self._call("set", lambda: self._set(key, record, ttl), key)

    def delete(self, key: str) -> AdapterResult:
        """Delete a key; ``value`` tells whether it existed."""
        return self._call("delete", lambda: self._delete(key), key)

    def exists(self, key: str) -> AdapterResult:
        return self._call("exists", lambda: self._exists(key), key)

    def clear(self) -> AdapterResult:
        """Clear all keys; ``value`` is the number removed."""
        return self._call("clear", self._clear)

    def keys(self, pattern: Optional[str] = None) -> AdapterResult:
        """List keys, optionally filtered by a glob pattern."""
        return self._call("keys", lambda: self._keys(pattern))

    def get_ttl(self, key: str) -> AdapterResult:
        return self._call("get_ttl", lambda: self._get_ttl(key), key)

    def set_ttl(self, key: str, ttl: float) -> AdapterResult:
        return self._call("set_ttl", lambda: self._set_ttl(key, ttl), key)

    def ping(self) -> AdapterResult:
        """Check connectivity; ``ok`` and ``value`` are True when reachable."""
        result = self._call("ping", self._ping)
        if result.ok and not result.value:
            return AdapterResult.failure("backend unreachable", connectivity=True)
        return result

    def close(self) -> None:
        """Release backend resources."""

    def get_stats(self) -> AdapterStats:
        """Get adapter statistics."""
        return self._stats

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = AdapterStats()


__all__ = ["DistributedAdapter", "AdapterResult", "AdapterStats"]
