"""ResilientCache Entry - Cache Entry with TTL and Access Bookkeeping.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from resilient_cache.protocol.record import payload_from_record
from resilient_cache.protocol.serializer import SerializedData, get_serializer


@dataclass
class CacheEntry:
    """A cache entry with value, TTL, and access bookkeeping.

    When ``compressed`` is set, ``value`` holds the compressed
    ``SerializedData`` payload instead of the live object.

    Attributes:
        key: Cache key
        value: Cached value or compressed payload
        ttl_seconds: Time to live in seconds (None never expires)
        created_at: Creation timestamp
        accessed_at: Last access timestamp
        access_count: Number of reads served
        tags: Entry tags for bulk invalidation
        size_bytes: Serialized size in bytes
        metadata: Free-form metadata
        compressed: Whether value is a compressed payload
        sequence: Insertion order within the store
        access_sequence: Recency order within the store
    """

    key: str
    value: Any
    ttl_seconds: Optional[float] = None
    created_at: float = field(default_factory=time.time)
    accessed_at: Optional[float] = None
    access_count: int = 0
    tags: Set[str] = field(default_factory=set)
    size_bytes: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    compressed: bool = False
    sequence: int = 0
    access_sequence: int = 0

    def __post_init__(self):
        if self.accessed_at is None:
            self.accessed_at = self.created_at
        self.tags = set(self.tags)

    @property
    def expires_at(self) -> Optional[float]:
        """Get expiration timestamp."""
        if self.ttl_seconds is None:
            return None
        return self.created_at + self.ttl_seconds

    def is_expired_at(self, now: float) -> bool:
        """Check expiry against a given clock reading."""
        expires_at = self.expires_at
        return expires_at is not None and now > expires_at

    @property
    def is_expired(self) -> bool:
        """Check expiry against wall-clock time."""
        return self.is_expired_at(time.time())

    def remaining_ttl(self, now: float) -> Optional[float]:
        """Get remaining TTL in seconds."""
        expires_at = self.expires_at
        if expires_at is None:
            return None
        return max(0.0, expires_at - now)

    def touch(self, now: float, access_sequence: int) -> None:
        """Record a read."""
        self.accessed_at = now
        self.access_count += 1
        self.access_sequence = access_sequence

    def refresh_ttl(self, now: float, ttl: Optional[float] = None) -> None:
        """Restart the TTL window from ``now``."""
        if ttl is not None:
            self.ttl_seconds = ttl
        self.created_at = now

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def to_record(self, payload: SerializedData) -> Dict[str, Any]:
        """Build the tier record for this entry.

        Args:
            payload: Serialized form of the value

        Returns:
            Record dictionary
        """
        return {
            "key": self.key,
            "data": payload.data,
            "format": payload.format,
            "compressed": payload.compressed,
            "compression_type": payload.compression_type.value,
            "original_size": payload.original_size,
            "ttl": self.ttl_seconds,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "tags": sorted(self.tags),
            "size": self.size_bytes,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CacheEntry":
        """Rebuild an entry from a tier record.

        Compressed payloads stay compressed; plain payloads are decoded.

        Raises:
            SerializationError: If the payload cannot be decoded
            KeyError: If the record lacks required fields
        """
        payload = payload_from_record(record)
        if payload.compressed:
            value: Any = payload
        else:
            value = get_serializer(payload.format).decode(payload)

        return cls(
            key=record["key"],
            value=value,
            ttl_seconds=record.get("ttl"),
            created_at=record.get("created_at", time.time()),
            tags=set(record.get("tags", ())),
            size_bytes=record.get("size", payload.size),
            metadata=dict(record.get("metadata") or {}),
            compressed=payload.compressed,
        )

    def __repr__(self) -> str:
        return (
            f"CacheEntry(key={self.key!r}, ttl={self.ttl_seconds}, "
            f"size={self.size_bytes}, tags={sorted(self.tags)})"
        )


__all__ = ["CacheEntry"]
