"""ResilientCache - Tiered Cache with Offline Write Replay.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A caching layer for expensive external calls with:
- Pattern-based caching strategies (TTL rules, tags, conditions)
- Multiple eviction policies (LRU, LFU, FIFO, Random)
- Optional distributed tier (in-process or Redis)
- Durable file tier for restart rehydration
- Offline queue replaying remote writes after connectivity loss
- Periodic expiry sweep and limit enforcement
- Statistics, Prometheus export and typed events

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                      ResilientCache System                      │
    ├─────────────────────────────────────────────────────────────────┤
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐             │
    │  │   Cache     │  │  Strategy   │  │   Entry     │   CACHE     │
    │  │  get/set    │  │  registry   │  │  TTL/tags   │   LAYER     │
    │  └──────┬──────┘  └──────┬──────┘  └──────┬──────┘             │
    │         │                │                │                     │
    │  ┌──────┴────────────────┴────────────────┴──────┐             │
    │  │              Eviction Policies                 │             │
    │  │   ┌─────┐  ┌─────┐  ┌──────┐  ┌────────┐      │   EVICTION  │
    │  │   │ LRU │  │ LFU │  │ FIFO │  │ Random │      │   LAYER     │
    │  │   └─────┘  └─────┘  └──────┘  └────────┘      │             │
    │  └──────────────────────┬────────────────────────┘             │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐             │
    │  │              Secondary Tiers                   │             │
    │  │   ┌────────┐  ┌────────┐  ┌────────┐         │   STORAGE   │
    │  │   │ Memory │  │ Redis  │  │  File  │         │   LAYER     │
    │  │   └────────┘  └────────┘  └────────┘         │             │
    │  └──────────────────────┬────────────────────────┘             │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐             │
    │  │              Background Work                   │             │
    │  │   ┌──────────┐  ┌─────────────┐  ┌─────────┐  │ MAINTENANCE │
    │  │   │ Offline  │  │ Maintenance │  │  Stats  │  │   LAYER     │
    │  │   │  Queue   │  │  Scheduler  │  │Collector│  │             │
    │  │   └──────────┘  └─────────────┘  └─────────┘  │             │
    │  └──────────────────────────────────────────────┘             │
    └─────────────────────────────────────────────────────────────────┘

Example Usage:
    from resilient_cache import Cache, CacheConfig, CacheStrategy

    # Simple in-memory cache
    cache = Cache()
    cache.set("user:1", {"name": "John"}, ttl=300)
    user = cache.get("user:1")

    # Remote and durable tiers
    from resilient_cache import FileStore, RedisAdapter, RedisConfig

    cache = Cache(
        CacheConfig(name="api", namespace="api"),
        distributed=RedisAdapter(RedisConfig(host="redis.local")),
        persistent=FileStore("/var/cache/api"),
    )
    cache.rehydrate()

    # Strategies
    cache.register_strategy(
        "session:*",
        CacheStrategy("session", ttl=1800, tags={"session"}),
    )
    cache.set("session:abc", session_data)
    cache.delete_by_tag("session")
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from resilient_cache.errors import (
    CacheError,
    SerializationError,
    PersistenceError,
    DistributedCacheError,
    CacheOperationError,
)
from resilient_cache.events import (
    CacheEvent,
    CacheEventType,
    CacheListener,
    EventBus,
)
from resilient_cache.cache.entry import CacheEntry
from resilient_cache.cache.strategy import CacheStrategy, StrategyRegistry
from resilient_cache.cache.warmup import CacheWarmer, WarmupConfig, WarmupStats
from resilient_cache.cache.cache import Cache, CacheConfig, WriteMode
from resilient_cache.eviction import (
    EvictionPolicy,
    EvictionStats,
    LRUPolicy,
    LFUPolicy,
    FIFOPolicy,
    RandomPolicy,
    create_policy,
)
from resilient_cache.store.backend import (
    DistributedAdapter,
    AdapterResult,
    AdapterStats,
)
from resilient_cache.store.memory import MemoryAdapter
from resilient_cache.store.redis import RedisAdapter, RedisConfig
from resilient_cache.store.file import FileStore, StorageConfig
from resilient_cache.offline.queue import (
    OfflineQueue,
    OfflineQueueConfig,
    WriteDescriptor,
    WriteOperation,
)
from resilient_cache.metrics.collector import StatisticsCollector, CacheStatistics
from resilient_cache.metrics.scheduler import PeriodicTask, MaintenanceScheduler
from resilient_cache.protocol.serializer import (
    Serializer,
    JSONSerializer,
    PickleSerializer,
    MsgPackSerializer,
    CompressionType,
)

__all__ = [
    # Errors
    "CacheError",
    "SerializationError",
    "PersistenceError",
    "DistributedCacheError",
    "CacheOperationError",
    # Events
    "CacheEvent",
    "CacheEventType",
    "CacheListener",
    "EventBus",
    # Cache
    "Cache",
    "CacheConfig",
    "CacheEntry",
    "CacheStrategy",
    "StrategyRegistry",
    "CacheWarmer",
    "WarmupConfig",
    "WarmupStats",
    "WriteMode",
    # Eviction
    "EvictionPolicy",
    "EvictionStats",
    "LRUPolicy",
    "LFUPolicy",
    "FIFOPolicy",
    "RandomPolicy",
    "create_policy",
    # Tiers
    "DistributedAdapter",
    "AdapterResult",
    "AdapterStats",
    "MemoryAdapter",
    "RedisAdapter",
    "RedisConfig",
    "FileStore",
    "StorageConfig",
    # Offline
    "OfflineQueue",
    "OfflineQueueConfig",
    "WriteDescriptor",
    "WriteOperation",
    # Metrics
    "StatisticsCollector",
    "CacheStatistics",
    "PeriodicTask",
    "MaintenanceScheduler",
    # Protocol
    "Serializer",
    "JSONSerializer",
    "PickleSerializer",
    "MsgPackSerializer",
    "CompressionType",
]
