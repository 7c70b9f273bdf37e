"""Protocol module - Serialization, compression and tier records."""

from resilient_cache.protocol.serializer import (
    CompressionType,
    SerializedData,
    Serializer,
    JSONSerializer,
    PickleSerializer,
    MsgPackSerializer,
    available_formats,
    get_serializer,
    register_serializer,
)
from resilient_cache.protocol.record import (
    payload_from_record,
    record_is_expired,
    record_has_tag,
)

__all__ = [
    "CompressionType",
    "SerializedData",
    "Serializer",
    "JSONSerializer",
    "PickleSerializer",
    "MsgPackSerializer",
    "get_serializer",
    "register_serializer",
    "available_formats",
    "payload_from_record",
    "record_is_expired",
    "record_has_tag",
]
