"""ResilientCache Record - Tier Record Helpers.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A record is the plain-dict form of a cache entry exchanged with the
distributed and persistent tiers:

    key, data, format, compressed, compression_type, original_size,
    ttl, created_at, expires_at, tags, size, metadata
"""

from __future__ import annotations

from typing import Any, Dict

from resilient_cache.protocol.serializer import CompressionType, SerializedData


def payload_from_record(record: Dict[str, Any]) -> SerializedData:
    """Extract the serialized payload from a record."""
    return SerializedData(
        data=record["data"],
        format=record["format"],
        compressed=record.get("compressed", False),
        compression_type=CompressionType(record.get("compression_type", "none")),
        original_size=record.get("original_size", 0),
    )


def record_is_expired(record: Dict[str, Any], now: float) -> bool:
    """Check a raw record for expiry without decoding it."""
    expires_at = record.get("expires_at")
    return expires_at is not None and now > expires_at


def record_has_tag(record: Dict[str, Any], tag: str) -> bool:
    return tag in record.get("tags", ())


__all__ = ["payload_from_record", "record_is_expired", "record_has_tag"]
