"""
Redis key-value backend for the search result cache.

Provides:
- Per-entry TTL (falls back to the configured default)
- Pattern-based invalidation
- JSON serialization for result snapshots

Every operation is non-fatal: a Redis outage turns reads into misses and
writes into no-ops, it never raises into the search path.
"""

import hashlib
import json
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis

logger = logging.getLogger(__name__)


def generate_cache_key(operation: str, params: dict[str, Any], max_length: int = 200) -> str:
    """
    Generate a consistent cache key from operation and parameters.

    Args:
        operation: The operation namespace (e.g. 'search')
        params: Dictionary of parameters that determine the cached content
        max_length: Keys longer than this are replaced by a hash; 0 always hashes

    Returns:
        Cache key string, either ``operation:k1=v1:k2=v2`` or ``operation:<sha256 prefix>``
    """
    # Sort params for consistent key generation
    sorted_params = sorted(params.items())

    param_strs = []
    for key, value in sorted_params:
        if isinstance(value, (dict, list, tuple)):
            value_str = json.dumps(value, sort_keys=True, separators=(",", ":"))
        else:
            value_str = str(value)
        param_strs.append(f"{key}={value_str}")

    key_base = f"{operation}:" + ":".join(param_strs)

    if len(key_base) > max_length:
        key_hash = hashlib.sha256(key_base.encode()).hexdigest()[:32]
        return f"{operation}:{key_hash}"

    return key_base


class RedisCache:
    """
    Redis-based key-value cache.

    Values are JSON documents stored with SETEX; expiry is handled by Redis.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        ttl_seconds: int = 300,
        key_prefix: str = "mounasabet:cache:",
        max_connections: int = 10,
    ):
        """
        Initialize Redis cache.

        Args:
            url: Redis connection URL
            ttl_seconds: Default TTL for entries written without an explicit TTL
            key_prefix: Prefix for all cache keys
            max_connections: Maximum Redis connections in pool
        """
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.max_connections = max_connections

        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None
        self._initialized = False

    @property
    def available(self) -> bool:
        return self._initialized and self._redis is not None

    async def initialize(self) -> None:
        """Initialize Redis connection pool."""
        if self._initialized:
            return

        self._pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
        )

        self._redis = Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
            self._initialized = True
            logger.info(f"RedisCache initialized: {self.url} (default TTL={self.ttl_seconds}s)")
        except Exception as e:
            logger.error(f"RedisCache initialization failed: {e}")
            if self._redis:
                await self._redis.aclose()
            if self._pool:
                await self._pool.aclose()
            self._redis = None
            self._pool = None
            raise

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        self._initialized = False

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> dict[str, Any] | None:
        """
        Get cached value by key.

        Returns:
            Cached value as dict, or None if not found, not connected or on error
        """
        if not self.available:
            return None

        try:
            value = await self._redis.get(self._make_key(key))
            if value is None:
                return None
            return json.loads(value)
        except Exception as e:
            logger.warning(f"Cache get failed for key {key}: {e}")
            return None

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> bool:
        """
        Set cached value with TTL.

        Args:
            key: Cache key (without prefix)
            value: JSON-serializable value
            ttl_seconds: Entry lifetime; defaults to the cache-wide TTL

        Returns:
            True if stored, False otherwise
        """
        if not self.available:
            return False

        try:
            ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
            await self._redis.setex(self._make_key(key), ttl, json.dumps(value))
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for key {key}: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Redis glob pattern relative to the prefix (e.g. "search:*")

        Returns:
            Number of keys deleted
        """
        if not self.available:
            return 0

        try:
            keys = [key async for key in self._redis.scan_iter(match=self._make_key(pattern))]
            if not keys:
                return 0

            deleted = await self._redis.delete(*keys)
            logger.debug(f"Cache invalidated {deleted} keys matching pattern: {pattern}")
            return deleted
        except Exception as e:
            logger.warning(f"Cache invalidation failed for pattern {pattern}: {e}")
            return 0
