"""
Redis cache for profile metadata resolved on read.
"""

from .redis_client import redis_client
from .cache_service import CacheService, cache_service, get_cache_service

__all__ = ["redis_client", "CacheService", "cache_service", "get_cache_service"]
