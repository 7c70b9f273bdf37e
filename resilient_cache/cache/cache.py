"""ResilientCache Cache - Tiered Cache Store.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import itertools
import logging
import sys
import threading
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, fields
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from resilient_cache.cache.entry import CacheEntry
from resilient_cache.cache.strategy import CacheStrategy, KeyPattern, StrategyRegistry
from resilient_cache.cache.warmup import CacheWarmer, ListSource, WarmupStats
from resilient_cache.errors import CacheOperationError, PersistenceError, SerializationError
from resilient_cache.events import CacheEvent, CacheEventType, CacheListener, EventBus
from resilient_cache.eviction import EvictionPolicy, create_policy
from resilient_cache.metrics.collector import CacheStatistics, StatisticsCollector, Timer
from resilient_cache.metrics.scheduler import MaintenanceScheduler
from resilient_cache.offline.queue import OfflineQueue, WriteDescriptor, WriteOperation
from resilient_cache.protocol.serializer import CompressionType, SerializedData, get_serializer
from resilient_cache.store.backend import AdapterResult, DistributedAdapter
from resilient_cache.store.file import FileStore

logger = logging.getLogger(__name__)

_MISSING = object()

# Raised by malformed records written by other processes
_RECORD_ERRORS = (SerializationError, KeyError, ValueError, TypeError, AttributeError)


class WriteMode(Enum):
    """Secondary tier write modes."""

    WRITE_THROUGH = auto()    # Secondary writes run in the calling thread
    WRITE_BEHIND = auto()     # Secondary writes run on an executor


@dataclass
class CacheConfig:
    """Cache configuration.

    Attributes:
        name: Cache name
        namespace: Prefix for keys in the distributed tier
        default_ttl: Default TTL in seconds (None never expires)
        max_size_bytes: Maximum memory usage
        max_items: Maximum entries
        eviction_policy: Eviction policy name
        serializer: Serializer format name
        enable_compression: Compress payloads above the threshold
        compression_threshold: Bytes threshold for compression
        compression_type: Compression algorithm name
        cleanup_interval: Seconds between maintenance passes
        sweep_batch_size: Expired entries removed per lock acquisition
        target_utilization: Fraction of each limit to evict down to
        write_mode: Secondary tier write mode
        write_behind_workers: Executor size for WRITE_BEHIND
        enable_metrics: Collect statistics
        event_history: Recent events retained
    """

    name: str = "cache"
    namespace: str = "default"
    default_ttl: Optional[float] = 300.0
    max_size_bytes: int = 100 * 1024 * 1024
    max_items: int = 10000
    eviction_policy: str = "lru"
    serializer: str = "pickle"
    enable_compression: bool = True
    compression_threshold: int = 1024
    compression_type: str = "gzip"
    cleanup_interval: float = 60.0
    sweep_batch_size: int = 100
    target_utilization: float = 0.8
    write_mode: WriteMode = WriteMode.WRITE_THROUGH
    write_behind_workers: int = 4
    enable_metrics: bool = True
    event_history: int = 1000

    @classmethod
    def from_dict(cls, data: Mapping) -> "CacheConfig":
        """Build a config from a mapping.

        Raises:
            ValueError: If the mapping has unknown keys or a bad write mode
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown cache config keys: {sorted(unknown)}")

        values = dict(data)
        mode = values.get("write_mode")
        if isinstance(mode, str):
            try:
                values["write_mode"] = WriteMode[mode.upper()]
            except KeyError:
                raise ValueError(f"Unknown write mode: {mode!r}") from None
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["write_mode"] = self.write_mode.name
        return data


class Cache:
    """Tiered cache with offline write replay.

    Reads are served from memory; on a local miss the distributed
    adapter and then the persistent tier are consulted and a hit there
    repopulates memory. Writes land in memory first and are then written
    through to the secondary tiers outside the lock. A distributed write
    that fails for connectivity reasons is queued and replayed later.

    Features:
    - Pattern-based strategies (TTL rules, tags, conditions, dependencies)
    - Pluggable eviction (LRU, LFU, FIFO, Random) on bytes and item limits
    - Tag invalidation
    - Compression above a size threshold
    - Periodic expiry sweep and limit enforcement
    - Typed events and statistics

    Example:
        cache = Cache(
            CacheConfig(name="api", max_items=5000),
            distributed=RedisAdapter(),
            persistent=FileStore("/var/cache/api"),
        )
        cache.register_strategy("session:*", CacheStrategy("session", ttl=1800))

        with cache:
            cache.set("session:abc", data)
            data = cache.get("session:abc")
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        distributed: Optional[DistributedAdapter] = None,
        persistent: Optional[FileStore] = None,
        offline_queue: Optional[OfflineQueue] = None,
        registry: Optional[StrategyRegistry] = None,
        collector: Optional[StatisticsCollector] = None,
        eviction: Optional[EvictionPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            config: Cache configuration
            distributed: Shared remote tier
            persistent: Durable local tier
            offline_queue: Queue for remote writes made while offline
            registry: Strategy registry
            collector: Statistics collector
            eviction: Eviction policy (defaults to config.eviction_policy)
            clock: Time source for TTL and access bookkeeping
        """
        self.config = config or CacheConfig()
        self._clock = clock
        self._distributed = distributed
        self._persistent = persistent
        self._registry = registry or StrategyRegistry()
        self._collector = collector or StatisticsCollector(clock=clock)
        self._eviction = eviction or create_policy(self.config.eviction_policy)
        self._serializer = get_serializer(self.config.serializer)
        self._compression = CompressionType(self.config.compression_type)

        self.events = EventBus(self.config.event_history, clock=clock)

        if offline_queue is None and distributed is not None:
            offline_queue = OfflineQueue(events=self.events, clock=clock)
        elif offline_queue is not None and offline_queue.events is None:
            offline_queue.events = self.events
        self._offline_queue = offline_queue

        if offline_queue is not None:
            offline_queue.events.subscribe(
                self._count_offline_event,
                {CacheEventType.QUEUED, CacheEventType.REPLAYED, CacheEventType.DROPPED},
            )

        self._entries: Dict[str, CacheEntry] = {}
        self._size_bytes = 0
        self._counter = itertools.count(1)
        self._lock = threading.RLock()
        self._incr_lock = threading.Lock()

        # dependency key -> dependent key -> strategy that linked it
        self._dependents: Dict[str, Dict[str, CacheStrategy]] = {}
        self._depends_on: Dict[str, Set[str]] = {}

        self._scheduler: Optional[MaintenanceScheduler] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # Lifecycle

    def start(self) -> None:
        """Start maintenance and offline replay."""
        if self._scheduler is None:
            self._scheduler = MaintenanceScheduler(self)
        self._scheduler.start()

        if self._offline_queue is not None and self._distributed is not None:
            self._offline_queue.start(self.replay_write, is_online=self._check_remote)

        logger.info(f"Cache {self.config.name} started")

    def stop(self) -> None:
        """Stop background work and flush pending write-behind tasks."""
        if self._scheduler is not None:
            self._scheduler.stop()
        if self._offline_queue is not None:
            self._offline_queue.stop()

        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

        logger.info(f"Cache {self.config.name} stopped")

    def update_config(self, **changes: Any) -> CacheConfig:
        """Change configuration at runtime.

        Limits apply immediately: if they now sit below current usage the
        cache evicts down to the target utilization. A new cleanup interval
        takes effect on the next ``start``.

        Returns:
            The new configuration

        Raises:
            ValueError: If a key is unknown or a value names an unknown
                policy, serializer or compression type
        """
        data = self.config.to_dict()
        data.update(changes)
        config = CacheConfig.from_dict(data)

        try:
            serializer = get_serializer(config.serializer)
        except KeyError as e:
            raise ValueError(str(e)) from None
        compression = CompressionType(config.compression_type)
        eviction = self._eviction
        if config.eviction_policy != self.config.eviction_policy:
            eviction = create_policy(config.eviction_policy)

        with self._lock:
            self.config = config
            self._serializer = serializer
            self._compression = compression
            self._eviction = eviction

        logger.info(f"Updated {config.name} config: {', '.join(sorted(changes))}")
        self.enforce_limits()
        return config

    # Core operations

    def get(
        self,
        key: str,
        default: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Get value from cache.

        Falls back to the distributed tier, then the persistent tier, on a
        local miss.

        Args:
            key: Cache key
            default: Value returned when no tier has the key
            context: Caller context (unused by lookups, kept for symmetry with set)

        Returns:
            Cached value or default
        """
        if not self.config.enable_metrics:
            return self._lookup(key, default)
        with Timer(self._collector):
            return self._lookup(key, default)

    def _lookup(self, key: str, default: Any) -> Any:
        now = self._clock()
        expired = False

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired_at(now):
                self._remove_locked(key)
                entry = None
                expired = True
            if entry is not None:
                entry.touch(now, next(self._counter))
                stored, compressed = entry.value, entry.compressed

        if expired:
            self._count("expirations")
            self.events.emit(CacheEventType.EXPIRE, key, source=self.config.name)

        if entry is not None:
            try:
                value = self._decode(stored, compressed)
            except SerializationError as e:
                logger.error(f"Dropping undecodable entry {key}: {e}")
                with self._lock:
                    if self._entries.get(key) is entry:
                        self._remove_locked(key)
                self._count("errors")
            else:
                if self.config.enable_metrics:
                    self._collector.record_hit()
                self.events.emit(CacheEventType.HIT, key, source=self.config.name)
                return value

        if self.config.enable_metrics:
            self._collector.record_miss()
        self.events.emit(CacheEventType.MISS, key, source=self.config.name)

        value = self._read_secondary(key)
        return default if value is _MISSING else value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
        strategy: Optional[str] = None,
        compress: Optional[bool] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set value in cache.

        TTL precedence is explicit ``ttl``, then the strategy's TTL, then
        ``config.default_ttl``. Tags are the union of ``tags`` and the
        strategy's tags.

        Args:
            key: Cache key
            value: Value to cache
            ttl: TTL in seconds
            tags: Entry tags
            strategy: Strategy name (defaults to the first pattern match)
            compress: Force compression on or off
            metadata: Entry metadata
            context: Passed to strategy TTL functions and conditions

        Returns:
            True if stored locally, False if skipped or rejected

        Raises:
            ValueError: If ``strategy`` names an unknown strategy or ttl is negative
        """
        resolved = self._resolve_strategy(key, strategy)
        if resolved is not None and not resolved.accepts(key, value, context):
            logger.debug(f"Strategy {resolved.name} declined to cache {key}")
            return False

        if ttl is None and resolved is not None:
            ttl = resolved.resolve_ttl(value, context)
        if ttl is None:
            ttl = self.config.default_ttl
        if ttl is not None and ttl < 0:
            raise ValueError(f"ttl must be non-negative, got {ttl}")

        entry_tags = set(tags or ())
        entry_metadata: Dict[str, Any] = {}
        if resolved is not None:
            entry_tags |= resolved.tags
            entry_metadata.update(resolved.metadata)
            entry_metadata["strategy"] = resolved.name
            if compress is None:
                compress = resolved.compress
        entry_metadata.update(metadata or {})

        payload = self._encode(key, value, compress)
        if payload is not None:
            size = payload.size
            compressed = payload.compressed
        else:
            size = sys.getsizeof(value)
            compressed = False

        if size > self.config.max_size_bytes:
            logger.warning(
                f"Rejected {key}: {size} bytes exceeds cache limit of "
                f"{self.config.max_size_bytes} bytes"
            )
            return False

        entry = CacheEntry(
            key=key,
            value=payload if compressed else value,
            ttl_seconds=ttl,
            created_at=self._clock(),
            tags=entry_tags,
            size_bytes=size,
            metadata=entry_metadata,
            compressed=compressed,
        )

        with self._lock:
            victims = self._insert_locked(entry)
            self._link_dependencies_locked(key, resolved)

        if self.config.enable_metrics:
            self._collector.record_set()
        self._emit_evictions(victims)
        self.events.emit(CacheEventType.SET, key, source=self.config.name, size=size)

        self._invalidate_dependents(key)

        if payload is not None:
            self._write_secondary(key, entry.to_record(payload), ttl)
        return True

    def delete(self, key: str) -> bool:
        """Delete key from every tier.

        Args:
            key: Cache key

        Returns:
            True if any tier held the key
        """
        with self._lock:
            existed = self._remove_locked(key) is not None

        if existed:
            if self.config.enable_metrics:
                self._collector.record_delete()
            self.events.emit(CacheEventType.DELETE, key, source=self.config.name)

        existed = self._delete_secondary(key) or existed
        self._invalidate_dependents(key)
        return existed

    def exists(self, key: str) -> bool:
        """Check whether any tier holds a live value for key."""
        if self.contains_local(key):
            return True

        if self._distributed is not None:
            result = self._distributed.exists(self._remote_key(key))
            if result.ok and result.value:
                return True

        if self._persistent is not None:
            return self._persistent.contains(key)
        return False

    def contains_local(self, key: str) -> bool:
        """Check the memory tier only, without touching access bookkeeping."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired_at(self._clock())

    def delete_by_tag(self, tag: str) -> int:
        """Delete every entry carrying a tag.

        Scans memory and the persistent tier, then deletes the affected
        keys from the distributed tier.

        Args:
            tag: Tag to invalidate

        Returns:
            Number of distinct keys removed

        Raises:
            CacheOperationError: If a secondary tier failed (local removal is done)
        """
        with self._lock:
            local_keys = [k for k, e in self._entries.items() if e.has_tag(tag)]
            for key in local_keys:
                self._remove_locked(key)

        removed = set(local_keys)
        failures: List[Exception] = []

        if self._persistent is not None:
            try:
                removed.update(self._persistent.delete_by_tag(tag))
            except PersistenceError as e:
                failures.append(e)

        if self._distributed is not None:
            for key in sorted(removed):
                result = self._remote_delete(key)
                if not result.ok:
                    failures.append(result.to_exception("delete"))

        for key in local_keys:
            self.events.emit(CacheEventType.INVALIDATE, key, source=self.config.name, tag=tag)
        if self.config.enable_metrics:
            self._collector.increment("deletes", len(removed))
        logger.info(f"Invalidated {len(removed)} entries tagged {tag!r}")

        for key in sorted(removed):
            self._invalidate_dependents(key)

        if failures:
            raise CacheOperationError("delete_by_tag", failures)
        return len(removed)

    def clear(self) -> int:
        """Clear every tier and reset statistics.

        Queued offline writes are discarded as well.

        Returns:
            Number of in-memory entries cleared

        Raises:
            CacheOperationError: If a secondary tier failed (local clear is done)
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._size_bytes = 0
            self._dependents.clear()
            self._depends_on.clear()

        failures: List[Exception] = []

        if self._offline_queue is not None:
            self._offline_queue.clear()

        if self._distributed is not None:
            listed = self._distributed.keys(f"{self.config.namespace}:*")
            if not listed.ok:
                failures.append(listed.to_exception("keys"))
            else:
                for remote_key in listed.value:
                    result = self._distributed.delete(remote_key)
                    if not result.ok:
                        failures.append(result.to_exception("delete"))

        if self._persistent is not None:
            try:
                self._persistent.clear()
            except PersistenceError as e:
                failures.append(e)

        self._collector.reset()
        logger.info(f"Cleared {count} entries from {self.config.name}")

        if failures:
            raise CacheOperationError("clear", failures)
        return count

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        context: Optional[Dict[str, Any]] = None,
        **options: Any,
    ) -> Any:
        """Get value or compute and store it.

        Args:
            key: Cache key
            factory: Called on a miss to produce the value
            context: Passed to get and set
            **options: Forwarded to ``set``

        Returns:
            Cached or computed value
        """
        value = self.get(key, _MISSING, context=context)
        if value is not _MISSING:
            return value

        value = factory()
        self.set(key, value, context=context, **options)
        return value

    def mget(self, keys: Iterable[str]) -> List[Any]:
        """Get several keys; misses come back as None in position."""
        return [self.get(key) for key in keys]

    def mset(self, entries: Union[Mapping, Iterable[Any]]) -> int:
        """Set several entries.

        Args:
            entries: Mapping of key -> value, ``(key, value)`` pairs, or
                dicts with ``key``, ``value`` and ``set`` options, given
                either flat or nested under ``opts``/``options`` (flat wins)

        Returns:
            Number of entries stored
        """
        items = entries.items() if isinstance(entries, Mapping) else entries
        count = 0
        for item in items:
            if isinstance(item, Mapping):
                options = dict(item)
                key = options.pop("key")
                value = options.pop("value")
                merged: Dict[str, Any] = {}
                for nested in ("opts", "options"):
                    merged.update(options.pop(nested, None) or {})
                merged.update(options)
                options = merged
            else:
                key, value = item
                options = {}
            if self.set(key, value, **options):
                count += 1
        return count

    def incr(self, key: str, amount: Union[int, float] = 1) -> Union[int, float]:
        """Add to a numeric value, starting from 0 when missing.

        Calls within this process are serialized.

        Returns:
            New value

        Raises:
            TypeError: If the stored value is not numeric
        """
        with self._incr_lock:
            current = self.get(key, 0)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                raise TypeError(f"Cannot increment non-numeric value at {key}")
            new_value = current + amount
            self.set(key, new_value)
            return new_value

    def decr(self, key: str, amount: Union[int, float] = 1) -> Union[int, float]:
        """Subtract from a numeric value, starting from 0 when missing."""
        return self.incr(key, -amount)

    def touch(self, key: str, ttl: Optional[float] = None) -> bool:
        """Restart an entry's TTL window.

        Args:
            key: Cache key
            ttl: New TTL (keeps the current one when None)

        Returns:
            True if the entry exists locally
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired_at(self._clock()):
                return False
            entry.refresh_ttl(self._clock(), ttl)
            effective = entry.ttl_seconds

        if self._distributed is not None and effective is not None:
            result = self._distributed.set_ttl(self._remote_key(key), effective)
            if not result.ok:
                self._count("errors")
        return True

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get live keys held in memory.

        Args:
            pattern: Optional glob pattern
        """
        now = self._clock()
        with self._lock:
            keys = [k for k, e in self._entries.items() if not e.is_expired_at(now)]
        if pattern is None:
            return keys
        return [k for k in keys if fnmatch.fnmatchcase(k, pattern)]

    # Strategies and events

    def register_strategy(self, pattern: KeyPattern, strategy: CacheStrategy) -> None:
        """Apply a strategy to keys matching a pattern."""
        self._registry.register(pattern, strategy)

    def subscribe(
        self,
        listener: Union[CacheListener, Callable[[CacheEvent], None]],
        event_types: Optional[Iterable[CacheEventType]] = None,
    ) -> CacheListener:
        """Receive cache events."""
        return self.events.subscribe(listener, event_types)

    def unsubscribe(self, listener: Union[CacheListener, Callable[[CacheEvent], None]]) -> bool:
        return self.events.unsubscribe(listener)

    # Statistics and introspection

    def get_statistics(self) -> CacheStatistics:
        """Get current statistics."""
        self._update_gauges()
        return self._collector.get_statistics(top_keys=self.get_top_keys())

    def reset_statistics(self) -> None:
        self._collector.reset()

    def get_top_keys(self, limit: int = 10) -> List[Tuple[str, int]]:
        """Get the most accessed keys.

        Returns:
            (key, access_count) pairs, most accessed first
        """
        with self._lock:
            ranked = sorted(
                self._entries.values(),
                key=lambda e: (-e.access_count, e.sequence),
            )
            return [(e.key, e.access_count) for e in ranked[:limit]]

    def get_cache_size(self) -> Dict[str, Any]:
        """Get current usage against the configured limits."""
        with self._lock:
            items = len(self._entries)
            size = self._size_bytes
        return {
            "items": items,
            "bytes": size,
            "max_items": self.config.max_items,
            "max_bytes": self.config.max_size_bytes,
            "item_utilization": items / self.config.max_items if self.config.max_items else 0.0,
            "byte_utilization": size / self.config.max_size_bytes if self.config.max_size_bytes else 0.0,
        }

    def export_data(self) -> Dict[str, Any]:
        """Snapshot configuration, statistics, entries and recent events."""
        now = self._clock()
        with self._lock:
            entries = [
                {
                    "key": e.key,
                    "ttl": e.ttl_seconds,
                    "remaining_ttl": e.remaining_ttl(now),
                    "created_at": e.created_at,
                    "accessed_at": e.accessed_at,
                    "access_count": e.access_count,
                    "tags": sorted(e.tags),
                    "size": e.size_bytes,
                    "compressed": e.compressed,
                    "metadata": dict(e.metadata),
                }
                for e in self._entries.values()
            ]

        pattern_names = [
            {"pattern": p if isinstance(p, str) else p.pattern, "strategy": s.name}
            for p, s in self._registry.strategies()
        ]
        queued = []
        if self._offline_queue is not None:
            queued = [
                {
                    "operation": item.descriptor.operation.value,
                    "key": item.descriptor.key,
                    "enqueued_at": item.enqueued_at,
                    "retry_count": item.retry_count,
                }
                for item in self._offline_queue.pending()
            ]

        return {
            "config": self.config.to_dict(),
            "statistics": self.get_statistics().to_dict(),
            "entries": entries,
            "strategies": pattern_names,
            "offline_queue": queued,
            "events": [e.to_dict() for e in self.events.history()],
        }

    # Bulk population

    def warmup(
        self,
        entries: Any,
        ttl: Optional[float] = None,
        skip_existing: bool = False,
    ) -> WarmupStats:
        """Populate the cache from prepared entries.

        Args:
            entries: Mapping, ``(key, value)`` pairs or option dicts
            ttl: TTL for entries without their own
            skip_existing: Skip keys already held in memory
        """
        return CacheWarmer(self).warm(ListSource(entries), ttl=ttl, skip_existing=skip_existing)

    def rehydrate(self) -> int:
        """Load live persistent records into memory.

        Keys already in memory are left alone.

        Returns:
            Number of entries loaded
        """
        if self._persistent is None:
            return 0

        loaded = 0
        for record in self._persistent.records():
            entry = self._entry_from_record(record, "persisted")
            if entry is None:
                continue

            if entry.size_bytes > self.config.max_size_bytes:
                continue

            with self._lock:
                if entry.key in self._entries:
                    continue
                victims = self._insert_locked(entry)
            self._emit_evictions(victims)
            loaded += 1

        logger.info(f"Rehydrated {loaded} entries into {self.config.name}")
        return loaded

    # Maintenance

    def sweep_expired(self, batch_size: Optional[int] = None) -> int:
        """Remove expired entries in batches.

        Candidates are snapshotted first; each batch takes the lock once.

        Returns:
            Number removed
        """
        batch_size = batch_size or self.config.sweep_batch_size
        now = self._clock()

        with self._lock:
            candidates = [k for k, e in self._entries.items() if e.is_expired_at(now)]

        removed: List[str] = []
        for start in range(0, len(candidates), batch_size):
            with self._lock:
                for key in candidates[start:start + batch_size]:
                    entry = self._entries.get(key)
                    if entry is not None and entry.is_expired_at(now):
                        self._remove_locked(key)
                        removed.append(key)

        if removed:
            self._count("expirations", len(removed))
            for key in removed:
                self.events.emit(CacheEventType.EXPIRE, key, source=self.config.name)
            logger.debug(f"Swept {len(removed)} expired entries from {self.config.name}")
        return len(removed)

    def enforce_limits(self) -> int:
        """Evict down to the target utilization if a limit is exceeded.

        Returns:
            Number evicted
        """
        with self._lock:
            over_items = len(self._entries) > self.config.max_items
            over_bytes = self._size_bytes > self.config.max_size_bytes
            if not (over_items or over_bytes):
                return 0

            target_items = int(self.config.max_items * self.config.target_utilization)
            target_bytes = int(self.config.max_size_bytes * self.config.target_utilization)
            victims = self._eviction.select_victims(
                list(self._entries.values()),
                required_bytes=max(0, self._size_bytes - target_bytes),
                required_items=max(0, len(self._entries) - target_items),
            )
            for victim in victims:
                self._remove_locked(victim.key)

        self._emit_evictions(victims)
        if victims:
            logger.info(f"Evicted {len(victims)} entries from {self.config.name} to meet limits")
        return len(victims)

    def compact_persistent(self) -> int:
        """Drop expired records from the persistent tier."""
        if self._persistent is None:
            return 0
        return self._persistent.compact()

    # Offline replay

    def replay_write(self, descriptor: WriteDescriptor) -> AdapterResult:
        """Apply a queued write to the distributed tier.

        A SET whose record has expired meanwhile is acknowledged without
        being sent.
        """
        if self._distributed is None:
            return AdapterResult.failure("no distributed adapter configured")

        if descriptor.operation == WriteOperation.DELETE:
            return self._distributed.delete(descriptor.key)

        ttl = descriptor.ttl
        expires_at = (descriptor.record or {}).get("expires_at")
        if expires_at is not None:
            ttl = expires_at - self._clock()
            if ttl <= 0:
                logger.debug(f"Skipping replay of expired {descriptor.key}")
                return AdapterResult.success()
        return self._distributed.set(descriptor.key, descriptor.record, ttl)

    def sync_offline(self) -> int:
        """Drain the offline queue now.

        Returns:
            Number of writes replayed
        """
        if self._offline_queue is None or self._distributed is None:
            return 0
        return self._offline_queue.drain(self.replay_write).replayed

    @property
    def offline_queue(self) -> Optional[OfflineQueue]:
        return self._offline_queue

    # Internals

    def _count(self, counter: str, amount: int = 1) -> None:
        if self.config.enable_metrics:
            self._collector.increment(counter, amount)

    def _count_offline_event(self, event: CacheEvent) -> None:
        counter = {
            CacheEventType.QUEUED: "offline_enqueued",
            CacheEventType.REPLAYED: "offline_replayed",
            CacheEventType.DROPPED: "offline_dropped",
        }[event.event_type]
        self._count(counter)

    def _update_gauges(self) -> None:
        with self._lock:
            self._collector.set_gauge("item_count", len(self._entries))
            self._collector.set_gauge("size_bytes", self._size_bytes)
        queued = len(self._offline_queue) if self._offline_queue is not None else 0
        self._collector.set_gauge("offline_queue_size", queued)

    def _remote_key(self, key: str) -> str:
        return f"{self.config.namespace}:{key}"

    def _check_remote(self) -> bool:
        return self._distributed is not None and self._distributed.ping().ok

    def _resolve_strategy(self, key: str, name: Optional[str]) -> Optional[CacheStrategy]:
        if name is None:
            return self._registry.match(key)
        strategy = self._registry.get(name)
        if strategy is None:
            raise ValueError(f"Unknown cache strategy: {name!r}")
        return strategy

    def _encode(self, key: str, value: Any, compress: Optional[bool]) -> Optional[SerializedData]:
        """Serialize a value, or None when it cannot be serialized."""
        if compress is False:
            compression, threshold = CompressionType.NONE, 0
        elif compress is True:
            compression, threshold = self._compression, 0
        elif self.config.enable_compression:
            compression, threshold = self._compression, self.config.compression_threshold
        else:
            compression, threshold = CompressionType.NONE, 0

        try:
            return self._serializer.encode(value, compression, threshold)
        except SerializationError as e:
            logger.warning(f"Keeping {key} in memory only: {e}")
            self._count("errors")
            return None

    def _decode(self, stored: Any, compressed: bool) -> Any:
        if not compressed:
            return stored
        return get_serializer(stored.format).decode(stored)

    def _insert_locked(self, entry: CacheEntry) -> List[CacheEntry]:
        """Insert an entry, evicting as needed. Caller holds the lock."""
        old = self._entries.pop(entry.key, None)
        if old is not None:
            self._size_bytes -= old.size_bytes

        entry.sequence = next(self._counter)
        entry.access_sequence = entry.sequence

        required_bytes = self._size_bytes + entry.size_bytes - self.config.max_size_bytes
        required_items = len(self._entries) + 1 - self.config.max_items
        victims: List[CacheEntry] = []
        if required_bytes > 0 or required_items > 0:
            victims = self._eviction.select_victims(
                list(self._entries.values()),
                required_bytes=max(0, required_bytes),
                required_items=max(0, required_items),
            )
            for victim in victims:
                self._remove_locked(victim.key)

        self._entries[entry.key] = entry
        self._size_bytes += entry.size_bytes
        return victims

    def _remove_locked(self, key: str) -> Optional[CacheEntry]:
        """Remove an entry from memory. Caller holds the lock."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._size_bytes -= entry.size_bytes
            self._unlink_dependencies_locked(key)
        return entry

    def _emit_evictions(self, victims: List[CacheEntry]) -> None:
        if not victims:
            return
        self._count("evictions", len(victims))
        for victim in victims:
            logger.debug(f"Evicted {victim.key} ({victim.size_bytes} bytes)")
            self.events.emit(CacheEventType.EVICT, victim.key, source=self.config.name)

    def _link_dependencies_locked(self, key: str, strategy: Optional[CacheStrategy]) -> None:
        self._unlink_dependencies_locked(key)
        if strategy is None or not strategy.dependencies:
            return
        deps = {dep for dep in strategy.dependencies if dep != key}
        for dep in deps:
            self._dependents.setdefault(dep, {})[key] = strategy
        self._depends_on[key] = deps

    def _unlink_dependencies_locked(self, key: str) -> None:
        for dep in self._depends_on.pop(key, ()):
            dependents = self._dependents.get(dep)
            if dependents is not None:
                dependents.pop(key, None)
                if not dependents:
                    del self._dependents[dep]

    def _invalidate_dependents(self, key: str, seen: Optional[Set[str]] = None) -> None:
        """Remove entries that declared a dependency on key, transitively."""
        seen = seen if seen is not None else {key}
        with self._lock:
            dependents = list(self._dependents.pop(key, {}).items())

        for dependent, strategy in dependents:
            if dependent in seen:
                continue
            seen.add(dependent)

            with self._lock:
                entry = self._remove_locked(dependent)
            value = None
            if entry is not None:
                try:
                    value = self._decode(entry.value, entry.compressed)
                except SerializationError as e:
                    logger.warning(f"Invalidated {dependent} with undecodable value: {e}")

            self.events.emit(
                CacheEventType.INVALIDATE, dependent, source=self.config.name, dependency=key
            )
            logger.debug(f"Invalidated {dependent} after change to {key}")
            self._delete_secondary(dependent)

            if strategy.on_invalidate is not None:
                try:
                    strategy.on_invalidate(dependent, value)
                except Exception as e:
                    logger.error(f"on_invalidate callback for {dependent} failed: {e}")

            self._invalidate_dependents(dependent, seen)

    def _read_secondary(self, key: str) -> Any:
        """Resolve a local miss from the distributed then persistent tier."""
        record = None
        counter = None

        if self._distributed is not None:
            result = self._distributed.get(self._remote_key(key))
            if not result.ok:
                self._count("errors")
            elif result.value is not None:
                record, counter = result.value, "remote_hits"

        if record is None and self._persistent is not None:
            record = self._persistent.load(key)
            counter = "persistent_hits"

        if record is None:
            return _MISSING

        entry = self._entry_from_record(record, counter.split("_")[0])
        if entry is None:
            return _MISSING

        if entry.key != key or entry.is_expired_at(self._clock()):
            return _MISSING

        try:
            value = self._decode(entry.value, entry.compressed)
        except SerializationError as e:
            logger.warning(f"Ignoring undecodable record for {key}: {e}")
            self._count("errors")
            return _MISSING

        if entry.size_bytes <= self.config.max_size_bytes:
            with self._lock:
                victims = self._insert_locked(entry)
            self._emit_evictions(victims)

        self._count(counter)
        logger.debug(f"Resolved {key} from {counter.split('_')[0]} tier")
        return value

    def _entry_from_record(self, record: Any, source: str) -> Optional[CacheEntry]:
        """Rebuild an entry from a tier value, or None if it is not a usable record."""
        if not isinstance(record, dict):
            logger.warning(f"Ignoring {source} value of type {type(record).__name__}: not a cache record")
            self._count("errors")
            return None
        try:
            return CacheEntry.from_record(record)
        except _RECORD_ERRORS as e:
            logger.warning(f"Ignoring unreadable {source} record {record.get('key')!r}: {e}")
            self._count("errors")
            return None

    def _write_secondary(self, key: str, record: Dict[str, Any], ttl: Optional[float]) -> None:
        if self._distributed is None and self._persistent is None:
            return

        if self.config.write_mode == WriteMode.WRITE_BEHIND:
            executor = self._get_executor()
            executor.submit(self._write_secondary_now, key, record, ttl)
        else:
            self._write_secondary_now(key, record, ttl)

    def _write_secondary_now(self, key: str, record: Dict[str, Any], ttl: Optional[float]) -> None:
        if self._distributed is not None:
            remote_key = self._remote_key(key)
            result = self._distributed.set(remote_key, record, ttl)
            if not result.ok:
                self._count("errors")
                self.events.emit(CacheEventType.ERROR, key, source=self.config.name, error=result.error)
                if result.connectivity and self._offline_queue is not None:
                    self._offline_queue.enqueue(
                        WriteDescriptor(WriteOperation.SET, remote_key, record=record, ttl=ttl)
                    )

        if self._persistent is not None and not self._persistent.save(record):
            self._count("errors")

    def _remote_delete(self, key: str) -> AdapterResult:
        remote_key = self._remote_key(key)
        result = self._distributed.delete(remote_key)
        if not result.ok:
            self._count("errors")
            if result.connectivity and self._offline_queue is not None:
                self._offline_queue.enqueue(WriteDescriptor(WriteOperation.DELETE, remote_key))
        return result

    def _delete_secondary(self, key: str) -> bool:
        existed = False
        if self._distributed is not None:
            result = self._remote_delete(key)
            existed = bool(result.ok and result.value)
        if self._persistent is not None:
            existed = self._persistent.remove(key) or existed
        return existed

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.write_behind_workers,
                    thread_name_prefix=f"cache-{self.config.name}-write",
                )
            return self._executor

    def __contains__(self, key: str) -> bool:
        return self.contains_local(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __enter__(self) -> "Cache":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def __repr__(self) -> str:
        return f"Cache(name={self.config.name!r}, entries={len(self._entries)})"


__all__ = ["Cache", "CacheConfig", "WriteMode"]
