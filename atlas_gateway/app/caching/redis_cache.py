"""
Redis-backed JSON cache for the gateway.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis

from shared.logging import get_logger

KEY_NAMESPACE = "atlas"


class RedisCache:
    """Thin JSON cache over redis.asyncio.

    Reads and writes never raise: a failed read is a miss and a failed write
    is logged, so the store of record always remains the fallback.
    Invalidation failures are reported to the caller.
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("gateway.cache")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def make_key(namespace: str, *parts: Any) -> str:
        """Build a namespaced cache key, e.g. ``atlas:keys:<principal>``."""
        return ":".join([KEY_NAMESPACE, namespace, *(str(part) for part in parts)])

    async def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value, or None on miss or error."""
        try:
            redis_client = await self._get_redis()
            cached = await redis_client.get(key)
        except Exception as exc:
            self.logger.error("Cache get error", error=str(exc))
            return None

        if cached is None:
            return None
        try:
            return json.loads(cached)
        except (TypeError, ValueError):
            self.logger.warning("Discarding undecodable cache entry")
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> bool:
        """Store a JSON-serialisable value with a TTL in seconds."""
        try:
            redis_client = await self._get_redis()
            await redis_client.setex(key, max(1, int(ttl)), json.dumps(value, default=str))
            return True
        except Exception as exc:
            self.logger.error("Cache set error", error=str(exc))
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns the number removed."""
        if not keys:
            return 0
        redis_client = await self._get_redis()
        return int(await redis_client.delete(*keys))

    async def read_counter(self, key: str) -> int:
        """Current value of an integer counter (0 when absent). Errors are raised."""
        redis_client = await self._get_redis()
        value = await redis_client.get(key)
        return int(value) if value is not None else 0

    async def bump_counter(self, key: str, ttl: int) -> int:
        """Atomically increment a counter and refresh its TTL. Errors are raised."""
        redis_client = await self._get_redis()
        async with redis_client.pipeline(transaction=True) as pipeline:
            pipeline.incr(key)
            pipeline.expire(key, max(1, int(ttl)))
            results = await pipeline.execute()
        return int(results[0])

    async def ping(self) -> bool:
        """Return True when Redis responds."""
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except Exception as exc:
            self.logger.warning("Redis ping failed", error=str(exc))
            return False

    async def client(self) -> redis.Redis:
        """Expose the shared connection for components with their own key layout."""
        return await self._get_redis()
