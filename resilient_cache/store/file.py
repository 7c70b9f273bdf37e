"""ResilientCache File Store - Durable Local Tier.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import pickle
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from resilient_cache.errors import PersistenceError
from resilient_cache.protocol.record import record_has_tag, record_is_expired

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


@dataclass
class StorageConfig:
    """Persistent tier configuration.

    Attributes:
        name: Tier name
        shard_count: Number of shard directories (max 256)
        fsync: Flush writes to disk before the atomic rename
    """

    name: str = "persistent"
    shard_count: int = 256
    fsync: bool = False


@dataclass
class StorageStats:
    """Persistent tier statistics.

    Attributes:
        reads: Number of read operations
        writes: Number of write operations
        deletes: Number of delete operations
        errors: Number of errors
    """

    reads: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def record_error(self, error: str) -> None:
        """Record an error."""
        self.errors += 1
        self.last_error = error
        self.last_error_at = datetime.now()


class FileStore:
    """File-based persistent tier.

    Persists cache records to disk so the memory tier can be rehydrated
    after a restart and so reads can fall back here when both the memory
    tier and the distributed adapter miss. Uses a sharded directory
    structure with hashed filenames.

    Each file holds one pickled record carrying key, payload, ttl,
    created_at, expires_at, tags and size.

    Normal reads and writes are best effort: failures are logged and
    reported as None/False. ``delete_by_tag`` and ``clear`` are
    administrative and raise ``PersistenceError``.

    Example:
        store = FileStore("/var/cache/myapp")
        store.save(record)
        record = store.load("key")
    """

    def __init__(
        self,
        base_path: str,
        config: Optional[StorageConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize file store.

        Args:
            base_path: Base directory for cache files
            config: Storage configuration
            clock: Time source used for expiry checks
        """
        self.base_path = Path(base_path)
        self.config = config or StorageConfig()
        self._clock = clock
        self._stats = StorageStats()
        self._lock = threading.RLock()

        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_shard(self, key: str) -> str:
        """Get shard directory name for key."""
        hash_value = hashlib.md5(key.encode()).hexdigest()
        shard_index = int(hash_value[:2], 16) % self.config.shard_count
        return f"{shard_index:02x}"

    def _get_path(self, key: str) -> Path:
        """Get file path for key."""
        filename = hashlib.sha256(key.encode()).hexdigest()
        return self.base_path / self._get_shard(key) / filename

    def _record_files(self) -> Iterator[Path]:
        for shard_dir in sorted(self.base_path.iterdir()):
            if not shard_dir.is_dir():
                continue
            for file_path in shard_dir.iterdir():
                if file_path.is_file() and file_path.suffix != TMP_SUFFIX:
                    yield file_path

    def _read(self, path: Path) -> Dict[str, Any]:
        with open(path, "rb") as f:
            return pickle.load(f)

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        with open(path, "wb") as f:
            pickle.dump(record, f, protocol=pickle.HIGHEST_PROTOCOL)
            if self.config.fsync:
                f.flush()
                os.fsync(f.fileno())

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        """Load a live record by key.

        Expired records are removed and reported as missing.

        Args:
            key: Cache key

        Returns:
            Record or None
        """
        path = self._get_path(key)

        try:
            with self._lock:
                self._stats.reads += 1
                if not path.exists():
                    return None
                record = self._read(path)

            if record.get("key") != key:
                return None
            if record_is_expired(record, self._clock()):
                self.remove(key)
                return None
            return record

        except Exception as e:
            logger.error(f"Error reading {key}: {e}")
            self._stats.record_error(str(e))
            return None

    def save(self, record: Dict[str, Any]) -> bool:
        """Store a record atomically.

        Args:
            record: Record with at least a ``key`` field

        Returns:
            True if successful
        """
        key = record["key"]
        path = self._get_path(key)
        temp_path = path.with_suffix(TMP_SUFFIX)

        try:
            with self._lock:
                path.parent.mkdir(exist_ok=True)
                self._write(temp_path, record)
                os.replace(temp_path, path)
                self._stats.writes += 1
                return True

        except Exception as e:
            logger.error(f"Error writing {key}: {e}")
            self._stats.record_error(str(e))

            if temp_path.exists():
                temp_path.unlink()

            return False

    def remove(self, key: str) -> bool:
        """Delete a record.

        Args:
            key: Cache key

        Returns:
            True if deleted
        """
        path = self._get_path(key)

        try:
            with self._lock:
                if path.exists():
                    path.unlink()
                    self._stats.deletes += 1
                    return True
                return False

        except Exception as e:
            logger.error(f"Error deleting {key}: {e}")
            self._stats.record_error(str(e))
            return False

    def contains(self, key: str) -> bool:
        """Check if a live record exists."""
        return self.load(key) is not None

    def records(self) -> Iterator[Dict[str, Any]]:
        """Iterate live records.

        Unreadable files are logged and skipped; expired records are
        skipped but left for ``compact``.

        Yields:
            Record dictionaries
        """
        now = self._clock()
        for file_path in self._record_files():
            try:
                record = self._read(file_path)
            except Exception as e:
                logger.warning(f"Skipping unreadable record {file_path.name}: {e}")
                self._stats.record_error(str(e))
                continue
            if not isinstance(record, dict):
                logger.warning(f"Skipping {file_path.name}: not a cache record")
                continue
            if not record_is_expired(record, now):
                yield record

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get keys of live records.

        Args:
            pattern: Optional glob pattern

        Returns:
            List of keys
        """
        keys = []
        for record in self.records():
            key = record.get("key", "")
            if pattern is None or fnmatch.fnmatchcase(key, pattern):
                keys.append(key)
        return keys

    def delete_by_tag(self, tag: str) -> List[str]:
        """Delete every record carrying ``tag``.

        This is a full scan of the tier.

        Args:
            tag: Tag to match

        Returns:
            Keys removed

        Raises:
            PersistenceError: If a file cannot be read or removed
        """
        removed = []
        with self._lock:
            try:
                for file_path in list(self._record_files()):
                    record = self._read(file_path)
                    if isinstance(record, dict) and record_has_tag(record, tag):
                        file_path.unlink()
                        self._stats.deletes += 1
                        removed.append(record.get("key", ""))
            except (OSError, pickle.UnpicklingError, EOFError) as e:
                self._stats.record_error(str(e))
                raise PersistenceError(
                    f"delete_by_tag({tag!r}) failed in {self.base_path}: {e}"
                ) from e
        return removed

    def clear(self) -> int:
        """Remove every record.

        Returns:
            Number cleared

        Raises:
            PersistenceError: If a file cannot be removed
        """
        count = 0
        with self._lock:
            try:
                for shard_dir in self.base_path.iterdir():
                    if shard_dir.is_dir():
                        for file_path in shard_dir.iterdir():
                            if file_path.is_file():
                                file_path.unlink()
                                count += 1
            except OSError as e:
                self._stats.record_error(str(e))
                raise PersistenceError(f"clear failed in {self.base_path}: {e}") from e
        return count

    def compact(self) -> int:
        """Remove expired and unreadable records from disk.

        Returns:
            Number removed
        """
        removed = 0
        now = self._clock()

        with self._lock:
            for file_path in list(self._record_files()):
                try:
                    record = self._read(file_path)
                    if isinstance(record, dict) and not record_is_expired(record, now):
                        continue
                except (pickle.UnpicklingError, EOFError) as e:
                    logger.warning(f"Dropping corrupt record {file_path.name}: {e}")
                except OSError as e:
                    logger.error(f"Compaction skipped {file_path.name}: {e}")
                    self._stats.record_error(str(e))
                    continue

                try:
                    file_path.unlink()
                    removed += 1
                except OSError as e:
                    logger.error(f"Compaction could not remove {file_path.name}: {e}")
                    self._stats.record_error(str(e))

        if removed:
            logger.debug(f"Compacted {removed} records from {self.base_path}")
        return removed

    def size(self) -> int:
        """Get stored record count, expired included."""
        return sum(1 for _ in self._record_files())

    def disk_usage(self) -> int:
        """Get total disk usage in bytes."""
        return sum(path.stat().st_size for path in self._record_files())

    def get_stats(self) -> StorageStats:
        return self._stats

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"FileStore(path={self.base_path})"


__all__ = ["FileStore", "StorageConfig", "StorageStats"]
