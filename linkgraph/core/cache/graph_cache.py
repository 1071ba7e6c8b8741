"""
Namespaced read-through cache in front of graph store queries.

Four namespaces with independent TTLs:
- similar:  related-bookmark traversals, keyed per bookmark
- entities: entity listings and entity -> bookmark lookups
- concepts: concept listings and co-occurrence lookups
- stats:    per-user graph statistics

Every key starts with "{user_id}:" so a user's entries can be dropped by
prefix without enumerating exact keys. Staleness up to the TTL is accepted
when an invalidation is skipped.
"""

import json
from enum import Enum
from typing import Any

from linkgraph.core.cache.base import CacheBackend
from linkgraph.models.query import CacheStats, NamespaceCacheStats
from linkgraph.utils.exceptions import CacheError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class CacheNamespace(str, Enum):
    SIMILAR = "similar"
    ENTITIES = "entities"
    CONCEPTS = "concepts"
    STATS = "stats"


DEFAULT_TTLS: dict[CacheNamespace, int] = {
    CacheNamespace.SIMILAR: 1800,
    CacheNamespace.ENTITIES: 3600,
    CacheNamespace.CONCEPTS: 3600,
    CacheNamespace.STATS: 600,
}


def cache_key(*parts: Any) -> str:
    """Join key parts with ':' (e.g. cache_key("u1", "bm1", "d2", "l20") -> "u1:bm1:d2:l20")."""
    return ":".join(str(part) for part in parts)


class GraphCache:
    """
    Cache service shared by the agents (which invalidate) and the query
    service (which reads through it).

    Values must be JSON-serializable; callers store model_dump(mode="json")
    output and re-validate on the way out.
    """

    def __init__(self, backend: CacheBackend, ttls: dict[str, int] | None = None):
        """
        Args:
            backend: Storage backend (in-memory or Redis)
            ttls: Per-namespace TTL overrides in seconds
        """
        self.backend = backend
        self.ttls = dict(DEFAULT_TTLS)
        for namespace, ttl in (ttls or {}).items():
            self.ttls[CacheNamespace(namespace)] = ttl

        self._hits = {namespace: 0 for namespace in CacheNamespace}
        self._misses = {namespace: 0 for namespace in CacheNamespace}

    @staticmethod
    def _full_key(namespace: CacheNamespace, key: str) -> str:
        return f"{namespace.value}:{key}"

    # ═══════════════════════════════════════════════════════════
    # READ / WRITE
    # ═══════════════════════════════════════════════════════════

    async def get(self, namespace: CacheNamespace | str, key: str) -> Any | None:
        """
        Look up a cached value.

        Backend failures and undecodable payloads count as misses.
        """
        namespace = CacheNamespace(namespace)

        try:
            raw = await self.backend.get(self._full_key(namespace, key))
        except Exception as e:
            logger.warning(f"Cache get failed for {namespace.value}:{key}: {e}")
            raw = None

        if raw is not None:
            try:
                value = json.loads(raw)
            except ValueError:
                logger.warning(f"Discarding undecodable cache entry {namespace.value}:{key}")
            else:
                self._hits[namespace] += 1
                return value

        self._misses[namespace] += 1
        return None

    async def set(self, namespace: CacheNamespace | str, key: str, value: Any) -> None:
        """
        Store a value for the namespace's TTL.

        Raises:
            CacheError: If the backend write fails
        """
        namespace = CacheNamespace(namespace)

        try:
            await self.backend.set(
                self._full_key(namespace, key), json.dumps(value), self.ttls[namespace]
            )
        except Exception as e:
            raise CacheError(
                f"Cache set failed: {e}", {"namespace": namespace.value, "key": key}
            ) from e

    async def invalidate(self, namespace: CacheNamespace | str, prefix: str) -> int:
        """
        Drop every entry of a namespace whose key starts with prefix.

        Raises:
            CacheError: If the backend delete fails
        """
        namespace = CacheNamespace(namespace)

        try:
            removed = await self.backend.delete_prefix(self._full_key(namespace, prefix))
        except Exception as e:
            raise CacheError(
                f"Cache invalidation failed: {e}", {"namespace": namespace.value, "prefix": prefix}
            ) from e

        if removed:
            logger.debug(f"Invalidated {removed} {namespace.value} entries for prefix {prefix!r}")
        return removed

    # ═══════════════════════════════════════════════════════════
    # INVALIDATION TRIGGERS
    # ═══════════════════════════════════════════════════════════

    async def invalidate_entities(self, user_id: str) -> None:
        """Entity written: entity listings and stats are stale."""
        await self.invalidate(CacheNamespace.ENTITIES, f"{user_id}:")
        await self.invalidate(CacheNamespace.STATS, f"{user_id}:")

    async def invalidate_concepts(self, user_id: str) -> None:
        """Concept written: concept listings and stats are stale."""
        await self.invalidate(CacheNamespace.CONCEPTS, f"{user_id}:")
        await self.invalidate(CacheNamespace.STATS, f"{user_id}:")

    async def invalidate_stats(self, user_id: str) -> None:
        await self.invalidate(CacheNamespace.STATS, f"{user_id}:")

    async def invalidate_similar(self, user_id: str, bookmark_id: str) -> None:
        """Relationship touching a bookmark changed: its traversals are stale."""
        await self.invalidate(CacheNamespace.SIMILAR, f"{user_id}:{bookmark_id}:")

    async def invalidate_user(self, user_id: str) -> None:
        """Bulk refresh: drop all four namespaces for the user."""
        for namespace in CacheNamespace:
            await self.invalidate(namespace, f"{user_id}:")

    # ═══════════════════════════════════════════════════════════
    # STATISTICS
    # ═══════════════════════════════════════════════════════════

    async def get_stats(self) -> CacheStats:
        """Per-namespace size, hits, misses and hit rate."""
        namespaces: dict[str, NamespaceCacheStats] = {}

        for namespace in CacheNamespace:
            try:
                size = await self.backend.count_prefix(f"{namespace.value}:")
            except Exception as e:
                logger.warning(f"Cache size lookup failed for {namespace.value}: {e}")
                size = 0

            hits = self._hits[namespace]
            misses = self._misses[namespace]
            lookups = hits + misses
            namespaces[namespace.value] = NamespaceCacheStats(
                size=size,
                hits=hits,
                misses=misses,
                hit_rate=hits / lookups if lookups else 0.0,
            )

        return CacheStats(
            namespaces=namespaces,
            total_size=sum(stats.size for stats in namespaces.values()),
            average_hit_rate=sum(stats.hit_rate for stats in namespaces.values()) / len(namespaces),
        )

    async def close(self) -> None:
        await self.backend.close()
