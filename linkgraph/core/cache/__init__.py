"""
Tiered cache for graph queries.

- CacheBackend: storage interface (InMemoryCacheBackend, RedisCacheBackend)
- GraphCache: namespaces, TTLs, invalidation triggers and hit/miss stats
"""

from linkgraph.core.cache.base import CacheBackend
from linkgraph.core.cache.graph_cache import (
    DEFAULT_TTLS,
    CacheNamespace,
    GraphCache,
    cache_key,
)
from linkgraph.core.cache.memory import InMemoryCacheBackend
from linkgraph.core.cache.redis_cache import RedisCacheBackend

__all__ = [
    "CacheBackend",
    "CacheNamespace",
    "DEFAULT_TTLS",
    "GraphCache",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "cache_key",
]
