"""ResilientCache Errors - Exception Hierarchy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class CacheError(Exception):
    """Base exception for cache failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class SerializationError(CacheError):
    """Value could not be serialized or deserialized."""


class PersistenceError(CacheError):
    """Persistent tier I/O failed."""


class DistributedCacheError(CacheError):
    """Distributed backend operation failed.

    Attributes:
        connectivity: True if caused by connection loss
    """

    def __init__(
        self,
        message: str,
        connectivity: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.connectivity = connectivity


class CacheOperationError(CacheError):
    """An administrative operation did not complete on every tier.

    Raised by operations whose caller expects a definite outcome
    (clear, delete_by_tag). Local work is already done when raised.

    Attributes:
        operation: Operation name
        failures: Underlying tier errors
    """

    def __init__(self, operation: str, failures: List[Exception]):
        self.operation = operation
        self.failures = list(failures)
        summary = "; ".join(str(f) for f in self.failures)
        super().__init__(
            f"{operation} failed on {len(self.failures)} tier(s): {summary}",
            {"operation": operation},
        )


__all__ = [
    "CacheError",
    "SerializationError",
    "PersistenceError",
    "DistributedCacheError",
    "CacheOperationError",
]
