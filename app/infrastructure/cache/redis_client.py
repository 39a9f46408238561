"""
Redis connection used to cache profile metadata fetched from IPFS.
Values are stored as JSON strings.
"""

import json
from datetime import timedelta
from typing import Any, Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Lazily connected Redis client storing JSON values."""

    def __init__(self, uri: Optional[str] = None, max_connections: int = 10):
        self.uri = uri or settings.REDIS_URI
        self.max_connections = max_connections
        self._client: Optional[redis.Redis] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """
        Open the connection pool and ping the server.

        Raises:
            RedisError: If the server cannot be reached
        """
        pool = redis.ConnectionPool.from_url(
            self.uri,
            decode_responses=True,
            max_connections=self.max_connections,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error(f"Redis unreachable at {self.uri}: {e}")
            raise
        self._client = client
        logger.info(f"Connected to Redis at {self.uri}")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.info("Disconnected from Redis")

    async def get_json(self, key: str) -> Optional[Any]:
        """Read and decode a JSON value; a miss or a corrupt entry returns None."""
        if self._client is None:
            await self.connect()

        raw = await self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding non-JSON cache entry {key}")
            return None

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, timedelta]] = None,
    ) -> bool:
        """Encode and store a value, optionally expiring after `ttl`."""
        if self._client is None:
            await self.connect()

        stored = await self._client.set(key, json.dumps(value, default=str), ex=ttl)
        return bool(stored)


# Global Redis client instance
redis_client = RedisClient()


async def get_redis_client() -> RedisClient:
    """Get the shared Redis client, connecting on first use."""
    if not redis_client.connected:
        await redis_client.connect()
    return redis_client
