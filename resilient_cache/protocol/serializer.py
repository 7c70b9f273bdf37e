"""ResilientCache Serializer - Payload Encoding for Tier Records.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Values leave the memory tier as ``SerializedData`` payloads: the bytes
produced by a named format, optionally compressed. The format name and
compression type travel with the payload so any process can decode it.
"""

from __future__ import annotations

import gzip
import json
import logging
import pickle
import threading
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import msgpack

from resilient_cache.errors import SerializationError

logger = logging.getLogger(__name__)


class CompressionType(Enum):
    """Payload compression algorithms."""

    NONE = "none"
    GZIP = "gzip"
    ZLIB = "zlib"


_CODECS: Dict[CompressionType, Tuple[Callable[[bytes], bytes], Callable[[bytes], bytes]]] = {
    CompressionType.GZIP: (gzip.compress, gzip.decompress),
    CompressionType.ZLIB: (zlib.compress, zlib.decompress),
}


@dataclass
class SerializedData:
    """Encoded value as stored in the distributed and persistent tiers.

    Attributes:
        data: Payload bytes, compressed when ``compressed`` is set
        format: Name of the format that produced the bytes
        compressed: Whether ``data`` is compressed
        compression_type: Algorithm used when compressed
        original_size: Encoded length before compression
    """

    data: bytes
    format: str
    compressed: bool = False
    compression_type: CompressionType = CompressionType.NONE
    original_size: int = 0

    @property
    def size(self) -> int:
        """Stored payload length in bytes."""
        return len(self.data)

    @property
    def ratio(self) -> float:
        if not self.original_size:
            return 1.0
        return self.size / self.original_size


def compress_bytes(data: bytes, compression: CompressionType) -> bytes:
    codec = _CODECS.get(compression)
    return codec[0](data) if codec else data


def decompress_bytes(data: bytes, compression: CompressionType) -> bytes:
    codec = _CODECS.get(compression)
    return codec[1](data) if codec else data


class Serializer(ABC):
    """Turns cache values into payload bytes and back.

    Subclasses provide ``format_name``, ``dumps`` and ``loads``;
    ``encode``/``decode`` add compression and error wrapping.
    """

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Name recorded in every payload this serializer produces."""

    @abstractmethod
    def dumps(self, value: Any) -> bytes:
        pass

    @abstractmethod
    def loads(self, data: bytes) -> Any:
        pass

    def encode(
        self,
        value: Any,
        compression: CompressionType = CompressionType.GZIP,
        threshold: int = 1024,
    ) -> SerializedData:
        """Encode a value, compressing payloads of at least ``threshold`` bytes.

        The compressed form is only kept when it is smaller than the
        plain encoding.

        Args:
            value: Value to encode
            compression: Algorithm to try
            threshold: Minimum encoded size before compression is tried

        Returns:
            Encoded payload

        Raises:
            SerializationError: If the format cannot represent the value
        """
        try:
            raw = self.dumps(value)
        except Exception as e:
            raise SerializationError(
                f"{self.format_name} cannot encode {type(value).__name__}: {e}",
                {"format": self.format_name},
            ) from e

        payload = SerializedData(data=raw, format=self.format_name, original_size=len(raw))
        if compression == CompressionType.NONE or len(raw) < threshold:
            return payload

        packed = compress_bytes(raw, compression)
        if len(packed) >= len(raw):
            logger.debug(f"{compression.value} did not shrink {len(raw)} byte payload")
            return payload

        payload.data = packed
        payload.compressed = True
        payload.compression_type = compression
        return payload

    def decode(self, payload: SerializedData) -> Any:
        """Decode a payload produced by ``encode``.

        Raises:
            SerializationError: If the bytes are corrupt or not in this format
        """
        try:
            raw = payload.data
            if payload.compressed:
                raw = decompress_bytes(raw, payload.compression_type)
            return self.loads(raw)
        except Exception as e:
            raise SerializationError(
                f"Cannot decode {payload.format} payload of {payload.size} bytes: {e}",
                {"format": payload.format},
            ) from e


class JSONSerializer(Serializer):
    """JSON payloads, readable by non-Python consumers of the remote tier.

    Values JSON cannot represent are rejected rather than coerced, so
    such entries stay in memory only.
    """

    @property
    def format_name(self) -> str:
        return "json"

    def dumps(self, value: Any) -> bytes:
        return json.dumps(value, separators=(",", ":")).encode("utf-8")

    def loads(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))


class PickleSerializer(Serializer):
    """Pickle payloads. Handles any picklable object; trusted tiers only."""

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    @property
    def format_name(self) -> str:
        return "pickle"

    def dumps(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=self.protocol)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class MsgPackSerializer(Serializer):
    """MessagePack payloads."""

    @property
    def format_name(self) -> str:
        return "msgpack"

    def dumps(self, value: Any) -> bytes:
        return msgpack.packb(value, use_bin_type=True)

    def loads(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False)


_DEFAULT_FORMAT = "pickle"
_serializers: Dict[str, Serializer] = {}
_serializers_lock = threading.Lock()


def register_serializer(serializer: Serializer) -> None:
    """Make a format available to ``get_serializer`` and record decoding."""
    with _serializers_lock:
        _serializers[serializer.format_name] = serializer


def get_serializer(format_name: Optional[str] = None) -> Serializer:
    """Look up a serializer by format name.

    Args:
        format_name: Format name, or None for pickle

    Raises:
        KeyError: If no serializer is registered under the name
    """
    name = format_name or _DEFAULT_FORMAT
    with _serializers_lock:
        serializer = _serializers.get(name)
    if serializer is None:
        raise KeyError(f"Unknown serializer format: {name}")
    return serializer


def available_formats() -> List[str]:
    with _serializers_lock:
        return sorted(_serializers)


for _serializer in (JSONSerializer(), PickleSerializer(), MsgPackSerializer()):
    register_serializer(_serializer)


__all__ = [
    "CompressionType",
    "SerializedData",
    "Serializer",
    "JSONSerializer",
    "PickleSerializer",
    "MsgPackSerializer",
    "compress_bytes",
    "decompress_bytes",
    "register_serializer",
    "get_serializer",
    "available_formats",
]
