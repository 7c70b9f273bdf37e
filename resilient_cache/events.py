"""ResilientCache Events - Typed Observer Channel.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Cache, offline queue and maintenance code publish ``CacheEvent``
objects to an ``EventBus``. Listeners implement ``CacheListener`` or
pass a plain callable to ``subscribe``.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


class CacheEventType(Enum):
    """Kinds of cache events."""

    HIT = "hit"
    MISS = "miss"
    SET = "set"
    DELETE = "delete"
    EVICT = "evict"
    EXPIRE = "expire"
    ERROR = "error"
    INVALIDATE = "invalidate"
    ONLINE = "online"
    OFFLINE = "offline"
    QUEUED = "queued"
    REPLAYED = "replayed"
    DROPPED = "dropped"


@dataclass
class CacheEvent:
    """A single cache event.

    Attributes:
        event_type: Event kind
        key: Affected key, if any
        source: Publishing component name
        timestamp: When the event happened
        data: Extra event details
    """

    event_type: CacheEventType
    key: Optional[str] = None
    source: str = ""
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "key": self.key,
            "source": self.source,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


class CacheListener(ABC):
    """Receives cache events."""

    @abstractmethod
    def on_event(self, event: CacheEvent) -> None:
        """Handle an event.

        Args:
            event: Published event
        """
        pass


class CallbackListener(CacheListener):
    """Adapts a plain callable to the listener interface."""

    def __init__(self, callback: Callable[[CacheEvent], None]):
        self.callback = callback

    def on_event(self, event: CacheEvent) -> None:
        self.callback(event)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CallbackListener):
            return self.callback == other.callback
        return self.callback == other

    def __hash__(self) -> int:
        return hash(self.callback)


ListenerLike = Union[CacheListener, Callable[[CacheEvent], None]]


class EventBus:
    """Ordered publish/subscribe channel with a bounded history.

    Listeners are notified in subscription order. A listener that raises
    is logged and skipped; publishing never fails because of a listener.

    Example:
        bus = EventBus()
        bus.subscribe(lambda event: print(event.key), {CacheEventType.EVICT})
        bus.emit(CacheEventType.EVICT, "user:1", source="cache")
    """

    def __init__(
        self,
        history_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize event bus.

        Args:
            history_size: Number of recent events retained
            clock: Time source for event timestamps
        """
        self._clock = clock
        self._listeners: List[tuple] = []
        self._history: Deque[CacheEvent] = deque(maxlen=max(history_size, 0))
        self._lock = threading.RLock()

    def subscribe(
        self,
        listener: ListenerLike,
        event_types: Optional[Iterable[CacheEventType]] = None,
    ) -> CacheListener:
        """Add a listener.

        Args:
            listener: Listener or callable
            event_types: Restrict delivery to these types (None for all)

        Returns:
            The registered listener
        """
        if not isinstance(listener, CacheListener):
            listener = CallbackListener(listener)
        types: Optional[FrozenSet[CacheEventType]] = (
            frozenset(event_types) if event_types is not None else None
        )
        with self._lock:
            self._listeners.append((listener, types))
        return listener

    def unsubscribe(self, listener: ListenerLike) -> bool:
        """Remove a listener.

        Returns:
            True if it was subscribed
        """
        with self._lock:
            for i, (registered, _) in enumerate(self._listeners):
                if registered is listener or registered == listener:
                    del self._listeners[i]
                    return True
        return False

    def publish(self, event: CacheEvent) -> None:
        """Deliver an event to matching listeners."""
        with self._lock:
            self._history.append(event)
            listeners = list(self._listeners)

        for listener, types in listeners:
            if types is not None and event.event_type not in types:
                continue
            try:
                listener.on_event(event)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed on {event.event_type.value}: {e}")

    def emit(
        self,
        event_type: CacheEventType,
        key: Optional[str] = None,
        source: str = "",
        **data: Any,
    ) -> CacheEvent:
        """Build and publish an event.

        Returns:
            The published event
        """
        event = CacheEvent(
            event_type=event_type,
            key=key,
            source=source,
            timestamp=self._clock(),
            data=data,
        )
        self.publish(event)
        return event

    def history(
        self,
        limit: Optional[int] = None,
        event_type: Optional[CacheEventType] = None,
    ) -> List[CacheEvent]:
        """Get recent events, oldest first.

        Args:
            limit: Maximum events returned (most recent kept)
            event_type: Only events of this type
        """
        with self._lock:
            events = list(self._history)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"EventBus(listeners={len(self._listeners)}, history={len(self._history)})"


__all__ = [
    "CacheEventType",
    "CacheEvent",
    "CacheListener",
    "CallbackListener",
    "EventBus",
]
