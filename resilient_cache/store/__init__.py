"""Store module - Distributed adapters and the persistent tier."""

from resilient_cache.store.backend import (
    DistributedAdapter,
    AdapterResult,
    AdapterStats,
)
from resilient_cache.store.memory import MemoryAdapter
from resilient_cache.store.file import FileStore, StorageConfig, StorageStats
from resilient_cache.store.redis import RedisAdapter, RedisConfig

__all__ = [
    "DistributedAdapter",
    "AdapterResult",
    "AdapterStats",
    "MemoryAdapter",
    "FileStore",
    "StorageConfig",
    "StorageStats",
    "RedisAdapter",
    "RedisConfig",
]
