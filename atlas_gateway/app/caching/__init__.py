"""
Gateway caching package.

Provides the Redis cache used in front of read-mostly listings (credential
lists, digest lookups, usage summaries, swap chain support). Prefer short
TTLs and explicit invalidation on mutation.
"""

from .redis_cache import RedisCache
from .cache_manager import CacheManager

__all__ = ["CacheManager", "RedisCache"]
