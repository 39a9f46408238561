"""
Best-effort cache in front of Redis.
Any Redis failure is logged and treated as a miss so reads never fail on the cache.
"""

import hashlib
from datetime import timedelta
from typing import Any, Optional, Union

from redis.exceptions import RedisError

from app.core.logging import get_logger
from app.infrastructure.cache.redis_client import RedisClient, get_redis_client

logger = get_logger(__name__)

MAX_KEY_LENGTH = 200


class CacheService:
    """Cache facade used by the profile resolver."""

    def __init__(self, client: Optional[RedisClient] = None):
        self._client = client

    async def _redis(self) -> RedisClient:
        if self._client is None:
            self._client = await get_redis_client()
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or when Redis is down."""
        try:
            client = await self._redis()
            return await client.get_json(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache read skipped for {key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None,
    ) -> bool:
        """Store a value; returns False when Redis is unavailable."""
        try:
            client = await self._redis()
            return await client.set_json(key, value, expire)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache write skipped for {key}: {e}")
            return False

    def generate_key(self, prefix: str, *parts: Any) -> str:
        """
        Build a `prefix:part:part` key.

        Keys longer than MAX_KEY_LENGTH are replaced by `prefix:<sha256>`.
        """
        key = ":".join([prefix, *(str(p) for p in parts)])
        if len(key) <= MAX_KEY_LENGTH:
            return key
        return f"{prefix}:{hashlib.sha256(key.encode()).hexdigest()}"


# Global cache service instance
cache_service = CacheService()


def get_cache_service() -> CacheService:
    return cache_service
