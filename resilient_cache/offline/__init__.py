"""Offline module - Queued remote writes and replay."""

from resilient_cache.offline.queue import (
    OfflineQueue,
    OfflineQueueConfig,
    OfflineQueueItem,
    OfflineQueueStats,
    WriteDescriptor,
    WriteOperation,
    DrainResult,
)

__all__ = [
    "OfflineQueue",
    "OfflineQueueConfig",
    "OfflineQueueItem",
    "OfflineQueueStats",
    "WriteDescriptor",
    "WriteOperation",
    "DrainResult",
]
