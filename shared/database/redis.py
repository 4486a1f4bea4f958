"""
Redis Client
============

Async Redis client used as a read-through cache.

Version: 0.1.0
"""

import json
import time
from typing import Any

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import settings
from shared.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client wrapper.

    Provides JSON caching helpers and connection management.
    """

    _client: Redis | None = None  # type: ignore[type-arg]

    @classmethod
    def get_client(cls) -> Redis:  # type: ignore[type-arg]
        """Get or create the async client."""
        if cls._client is None:
            cls._client = aioredis.from_url(
                settings.redis.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            logger.info(
                "redis_client_created",
                host=settings.redis.host,
            )
        return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the client and release all connections."""
        if cls._client is not None:
            await cls._client.aclose()
            cls._client = None
            logger.info("redis_client_closed")

    @classmethod
    async def health_check(cls) -> dict[str, Any]:
        """
        Check Redis health.

        Returns:
            dict with status and server info
        """
        try:
            start = time.perf_counter()
            client = cls.get_client()
            pong = await client.ping()
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy" if pong else "unhealthy",
                "latency_ms": round(latency_ms, 2),
            }
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    # =========================================================================
    # Caching Utilities
    # =========================================================================

    @classmethod
    async def get_cached(
        cls,
        key: str,
        default: Any = None,
    ) -> Any:
        """
        Get a cached JSON value.

        Args:
            key: Cache key
            default: Default value if not found

        Returns:
            Cached value or default
        """
        client = cls.get_client()
        value = await client.get(key)

        if value is None:
            return default

        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    @classmethod
    async def set_cached(
        cls,
        key: str,
        value: Any,
        ttl_seconds: int = 300,
    ) -> bool:
        """
        Set a cached value.

        Args:
            key: Cache key
            value: Value to cache (JSON serialized)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful
        """
        client = cls.get_client()
        return bool(await client.setex(key, ttl_seconds, json.dumps(value)))

    @classmethod
    async def delete_cached(cls, key: str) -> bool:
        """Delete a cached value."""
        client = cls.get_client()
        return await client.delete(key) > 0

    # =========================================================================
    # Versioned Entries
    # =========================================================================

    # Entries are hashes of (rank, data); a write only lands when its rank
    # sorts after the stored one.
    _SET_IF_NEWER = """
local current = redis.call('HGET', KEYS[1], 'rank')
if current and current >= ARGV[1] then
    return 0
end
redis.call('HSET', KEYS[1], 'rank', ARGV[1], 'data', ARGV[2])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
return 1
"""

    @classmethod
    async def set_if_newer(
        cls,
        key: str,
        rank: str,
        value: Any,
        ttl_seconds: int = 300,
    ) -> bool:
        """
        Atomically store a JSON value unless a newer one is cached.

        Args:
            key: Cache key
            rank: Ordering key; compared as a string
            value: Value to cache (JSON serialized)
            ttl_seconds: Time to live in seconds

        Returns:
            True if the value was written
        """
        client = cls.get_client()
        written = await client.eval(
            cls._SET_IF_NEWER, 1, key, rank, json.dumps(value), ttl_seconds
        )
        return bool(written)

    @classmethod
    async def get_versioned(cls, key: str, default: Any = None) -> Any:
        """Get the JSON value written by set_if_newer."""
        client = cls.get_client()
        value = await client.hget(key, "data")

        if value is None:
            return default

        return json.loads(value)
