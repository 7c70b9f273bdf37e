"""ResilientCache Offline Queue - Bounded Replay Queue for Remote Writes.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Writes the distributed tier rejected because of connection loss are
queued here and replayed in submission order once connectivity returns.

Delivery is at-least-once: a replayed write whose acknowledgement was
lost stays queued and is sent again. Overflow drops the oldest item.
"""

from __future__ import annotations

import logging
import os
import pickle
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from resilient_cache.events import CacheEventType, EventBus

logger = logging.getLogger(__name__)


class WriteOperation(Enum):
    """Queued remote operations."""

    SET = "set"
    DELETE = "delete"


@dataclass
class WriteDescriptor:
    """A remote write to replay.

    Attributes:
        operation: SET or DELETE
        key: Remote key
        record: Record to store (SET only)
        ttl: Remote TTL in seconds (SET only)
    """

    operation: WriteOperation
    key: str
    record: Optional[Dict[str, Any]] = None
    ttl: Optional[float] = None


@dataclass
class OfflineQueueItem:
    """A queued write with retry bookkeeping."""

    descriptor: WriteDescriptor
    enqueued_at: float
    retry_count: int = 0
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    last_error: Optional[str] = None


@dataclass
class OfflineQueueConfig:
    """Offline queue configuration.

    Attributes:
        max_size: Maximum queued items; overflow drops the oldest
        max_retries: Failed replays before an item is dropped
        sync_interval: Seconds between replay passes
        storage_path: Optional journal file for queue durability
    """

    max_size: int = 100
    max_retries: int = 3
    sync_interval: float = 30.0
    storage_path: Optional[str] = None


@dataclass
class OfflineQueueStats:
    """Offline queue counters.

    ``dropped`` covers both overflow and exhausted retries.
    """

    enqueued: int = 0
    replayed: int = 0
    dropped: int = 0
    overflowed: int = 0
    failures: int = 0


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    replayed: int = 0
    failed: int = 0
    dropped: int = 0
    remaining: int = 0

    @property
    def complete(self) -> bool:
        return self.remaining == 0


ReplayFunc = Callable[[WriteDescriptor], Any]


class OfflineQueue:
    """Bounded FIFO of remote writes awaiting replay.

    ``replay`` callables return an object with an ``ok`` attribute (such
    as ``AdapterResult``) or a plain bool. An exception counts as a
    failed attempt.

    Example:
        queue = OfflineQueue(OfflineQueueConfig(max_size=500))
        queue.enqueue(WriteDescriptor(WriteOperation.DELETE, "user:1"))
        queue.drain(cache.replay_write)
    """

    def __init__(
        self,
        config: Optional[OfflineQueueConfig] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize offline queue.

        Args:
            config: Queue configuration
            events: Bus receiving queue events
            clock: Time source for enqueue timestamps
        """
        self.config = config or OfflineQueueConfig()
        self.events = events
        self._clock = clock
        self._items: List[OfflineQueueItem] = []
        self._stats = OfflineQueueStats()
        self._lock = threading.RLock()
        self._drain_lock = threading.Lock()

        self._online: Optional[bool] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        if self.config.storage_path:
            self._load_journal()

    def _emit(self, event_type: CacheEventType, key: Optional[str] = None, **data: Any) -> None:
        if self.events is not None:
            self.events.emit(event_type, key, source="offline_queue", **data)

    def enqueue(self, descriptor: WriteDescriptor) -> OfflineQueueItem:
        """Queue a write for replay.

        When the queue is full the oldest item is dropped first.

        Args:
            descriptor: Write to replay

        Returns:
            The queued item
        """
        item = OfflineQueueItem(descriptor=descriptor, enqueued_at=self._clock())
        overflow: List[OfflineQueueItem] = []

        with self._lock:
            while self._items and len(self._items) >= self.config.max_size:
                overflow.append(self._items.pop(0))
            self._items.append(item)
            self._stats.enqueued += 1
            self._stats.dropped += len(overflow)
            self._stats.overflowed += len(overflow)
            self._save_journal()

        for dropped in overflow:
            logger.error(
                f"Offline queue full ({self.config.max_size}); dropped oldest "
                f"{dropped.descriptor.operation.value} {dropped.descriptor.key}"
            )
            self._emit(CacheEventType.DROPPED, dropped.descriptor.key, reason="overflow")

        logger.debug(f"Queued {descriptor.operation.value} {descriptor.key} for replay")
        self._emit(CacheEventType.QUEUED, descriptor.key, operation=descriptor.operation.value)
        return item

    def _attempt(self, replay: ReplayFunc, item: OfflineQueueItem) -> Optional[str]:
        """Run one replay; returns an error description or None."""
        try:
            result = replay(item.descriptor)
        except Exception as e:
            return str(e)
        if isinstance(result, bool):
            return None if result else "replay rejected"
        if getattr(result, "ok", False):
            return None
        return getattr(result, "error", None) or "replay rejected"

    def _remove(self, item: OfflineQueueItem) -> bool:
        for i, queued in enumerate(self._items):
            if queued is item:
                del self._items[i]
                return True
        return False

    def drain(self, replay: ReplayFunc) -> DrainResult:
        """Replay queued writes in submission order.

        A failure increments the head item's retry count and ends the
        pass so later writes are never applied ahead of it. An item that
        reaches ``max_retries`` is dropped.

        Args:
            replay: Callable that applies a write to the remote tier

        Returns:
            Pass outcome
        """
        result = DrainResult()

        with self._drain_lock:
            while True:
                with self._lock:
                    if not self._items:
                        break
                    item = self._items[0]

                error = self._attempt(replay, item)

                if error is None:
                    with self._lock:
                        removed = self._remove(item)
                        if removed:
                            self._stats.replayed += 1
                            self._save_journal()
                    if removed:
                        result.replayed += 1
                        logger.debug(
                            f"Replayed {item.descriptor.operation.value} {item.descriptor.key}"
                        )
                        self._emit(CacheEventType.REPLAYED, item.descriptor.key)
                    continue

                result.failed += 1
                with self._lock:
                    item.retry_count += 1
                    item.last_error = error
                    self._stats.failures += 1
                    dropped = item.retry_count >= self.config.max_retries and self._remove(item)
                    if dropped:
                        self._stats.dropped += 1
                        result.dropped += 1
                    self._save_journal()

                if dropped:
                    logger.error(
                        f"Dropping {item.descriptor.operation.value} {item.descriptor.key} "
                        f"after {item.retry_count} failed replays: {error}"
                    )
                    self._emit(CacheEventType.DROPPED, item.descriptor.key, reason="retries")
                else:
                    logger.warning(
                        f"Replay of {item.descriptor.key} failed "
                        f"(attempt {item.retry_count}/{self.config.max_retries}): {error}"
                    )
                break

        result.remaining = len(self)
        return result

    def _check_online(self, is_online: Callable[[], bool]) -> bool:
        try:
            online = bool(is_online())
        except Exception as e:
            logger.warning(f"Connectivity check failed: {e}")
            online = False

        if online != self._online:
            previous = self._online
            self._online = online
            if previous is not None or not online:
                logger.info(f"Distributed tier is {'online' if online else 'offline'}")
                self._emit(CacheEventType.ONLINE if online else CacheEventType.OFFLINE)
        return online

    def run_once(
        self,
        replay: ReplayFunc,
        is_online: Optional[Callable[[], bool]] = None,
    ) -> Optional[DrainResult]:
        """Run a single replay pass.

        Returns:
            Drain outcome, or None when the connectivity check reported offline
        """
        if is_online is not None and not self._check_online(is_online):
            return None
        if not self._items:
            return DrainResult()
        return self.drain(replay)

    def start(
        self,
        replay: ReplayFunc,
        interval: Optional[float] = None,
        is_online: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Start the background replay loop.

        Args:
            replay: Callable that applies a write to the remote tier
            interval: Seconds between passes (defaults to sync_interval)
            is_online: Connectivity check; passes are skipped while it is False
        """
        if self._thread and self._thread.is_alive():
            return

        wait = interval if interval is not None else self.config.sync_interval
        self._stop_event.clear()

        def replay_loop():
            while not self._stop_event.wait(wait):
                try:
                    self.run_once(replay, is_online)
                except Exception as e:
                    logger.error(f"Offline replay pass failed: {e}")

        self._thread = threading.Thread(target=replay_loop, name="offline-replay", daemon=True)
        self._thread.start()
        logger.info(f"Offline replay loop started (interval={wait}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the replay loop and wait for it to exit."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("Offline replay loop stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def pending(self) -> List[OfflineQueueItem]:
        """Get a snapshot of queued items, oldest first."""
        with self._lock:
            return list(self._items)

    def clear(self) -> int:
        """Discard every queued item.

        Returns:
            Number discarded
        """
        with self._lock:
            count = len(self._items)
            self._items.clear()
            self._save_journal()
        return count

    def get_stats(self) -> OfflineQueueStats:
        return self._stats

    def _save_journal(self) -> None:
        if not self.config.storage_path:
            return

        path = Path(self.config.storage_path)
        temp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as f:
                pickle.dump(self._items, f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(temp_path, path)
        except OSError as e:
            logger.error(f"Could not write offline journal {path}: {e}")

    def _load_journal(self) -> None:
        path = Path(self.config.storage_path)
        if not path.exists():
            return

        try:
            with open(path, "rb") as f:
                items = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            logger.warning(f"Ignoring unreadable offline journal {path}: {e}")
            return

        self._items = list(items)[-self.config.max_size:]
        logger.info(f"Restored {len(self._items)} queued writes from {path}")

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"OfflineQueue(pending={len(self._items)}, max_size={self.config.max_size})"


__all__ = [
    "OfflineQueue",
    "OfflineQueueConfig",
    "OfflineQueueItem",
    "OfflineQueueStats",
    "WriteDescriptor",
    "WriteOperation",
    "DrainResult",
]
