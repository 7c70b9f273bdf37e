"""ResilientCache Redis Adapter - Redis Distributed Tier.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import pickle
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from resilient_cache.store.backend import DistributedAdapter

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Redis-specific configuration.

    Attributes:
        host: Redis host
        port: Redis port
        db: Redis database number
        password: Redis password
        socket_timeout: Socket timeout
        socket_connect_timeout: Connection timeout
        max_connections: Connection pool size
        prefix: Key prefix
        scan_count: SCAN batch hint
    """

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    max_connections: int = 10
    prefix: str = "cache:"
    scan_count: int = 100


class RedisAdapter(DistributedAdapter):
    """Redis distributed adapter.

    Uses Redis as the shared remote tier:
    - Native TTL support (PSETEX / PEXPIRE)
    - Connection pooling
    - Prefix-scoped SCAN for keys and clear

    Connection and timeout errors from the client are reported as
    connectivity failures so the cache can queue the write for replay.

    Example:
        adapter = RedisAdapter(RedisConfig(host="redis.local"))
        cache = Cache(distributed=adapter)
    """

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        client: Optional[Any] = None,
    ):
        """Initialize Redis adapter.

        Args:
            config: Redis configuration
            client: Pre-built client (skips pool creation)
        """
        super().__init__()
        self.config = config or RedisConfig()
        self._client: Optional[Any] = client
        self._pool: Optional[redis.ConnectionPool] = None

    def _ensure_connected(self) -> Any:
        """Ensure a Redis client exists.

        Returns:
            Redis client
        """
        if self._client is not None:
            return self._client

        self._pool = redis.ConnectionPool(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            password=self.config.password,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_connect_timeout,
            max_connections=self.config.max_connections,
            decode_responses=False,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        logger.info(f"Connected to Redis at {self.config.host}:{self.config.port}")
        return self._client

    def _is_connectivity_error(self, error: Exception) -> bool:
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            return True
        return super()._is_connectivity_error(error)

    def _make_key(self, key: str) -> str:
        return f"{self.config.prefix}{key}"

    def _strip_key(self, redis_key: Any) -> str:
        key_str = redis_key.decode() if isinstance(redis_key, bytes) else redis_key
        return key_str[len(self.config.prefix):]

    def _scan(self, pattern: str) -> List[Any]:
        client = self._ensure_connected()
        found = []
        cursor = 0
        while True:
            cursor, batch = client.scan(cursor, match=pattern, count=self.config.scan_count)
            found.extend(batch)
            if cursor == 0:
                break
        return found

    def _get(self, key: str) -> Optional[Dict[str, Any]]:
        data = self._ensure_connected().get(self._make_key(key))
        if data is None:
            return None
        return pickle.loads(data)

    def _set(self, key: str, record: Dict[str, Any], ttl: Optional[float]) -> None:
        client = self._ensure_connected()
        data = pickle.dumps(record, protocol=pickle.HIGHEST_PROTOCOL)
        if ttl is not None:
            # A zero TTL still has to expire; PSETEX rejects 0 ms
            client.psetex(self._make_key(key), max(1, int(ttl * 1000)), data)
        else:
            client.set(self._make_key(key), data)

    def _delete(self, key: str) -> bool:
        return self._ensure_connected().delete(self._make_key(key)) > 0

    def _exists(self, key: str) -> bool:
        return self._ensure_connected().exists(self._make_key(key)) > 0

    def _clear(self) -> int:
        client = self._ensure_connected()
        keys = self._scan(f"{self.config.prefix}*")
        if not keys:
            return 0
        return client.delete(*keys)

    def _keys(self, pattern: Optional[str]) -> List[str]:
        redis_pattern = f"{self.config.prefix}{pattern or '*'}"
        return [self._strip_key(k) for k in self._scan(redis_pattern)]

    def _get_ttl(self, key: str) -> Optional[float]:
        ttl_ms = self._ensure_connected().pttl(self._make_key(key))
        if ttl_ms is None or ttl_ms < 0:
            return None
        return ttl_ms / 1000

    def _set_ttl(self, key: str, ttl: float) -> bool:
        return bool(self._ensure_connected().pexpire(self._make_key(key), int(ttl * 1000)))

    def _ping(self) -> bool:
        return bool(self._ensure_connected().ping())

    def close(self) -> None:
        """Close Redis connection."""
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None

    def __repr__(self) -> str:
        return f"RedisAdapter(host={self.config.host}, port={self.config.port})"


__all__ = ["RedisAdapter", "RedisConfig"]
