"""
Tests for the namespaced graph cache and the in-memory backend.
"""

from unittest.mock import AsyncMock

import pytest

from linkgraph.core.cache import CacheBackend, CacheNamespace, GraphCache, cache_key
from linkgraph.utils.exceptions import CacheError


@pytest.fixture
def failing_backend():
    backend = AsyncMock(spec=CacheBackend)
    backend.get.side_effect = ConnectionError("backend down")
    backend.set.side_effect = ConnectionError("backend down")
    backend.delete_prefix.side_effect = ConnectionError("backend down")
    backend.count_prefix.side_effect = ConnectionError("backend down")
    return backend


@pytest.mark.unit
class TestCacheKey:
    def test_joins_parts(self):
        assert cache_key("u1", "bm1", "d2", "l20") == "u1:bm1:d2:l20"


@pytest.mark.unit
@pytest.mark.asyncio
class TestGraphCacheReadWrite:
    async def test_round_trip(self, cache):
        value = [{"bookmark_id": "bm2", "weight": 0.8}]

        await cache.set(CacheNamespace.SIMILAR, "u1:bm1:d2:l20", value)

        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm1:d2:l20") == value

    async def test_namespaces_are_separate(self, cache):
        await cache.set(CacheNamespace.ENTITIES, "u1:list", [1])

        assert await cache.get(CacheNamespace.CONCEPTS, "u1:list") is None

    async def test_string_namespace_accepted(self, cache):
        await cache.set("stats", "u1:stats", {"entities": 3})

        assert await cache.get(CacheNamespace.STATS, "u1:stats") == {"entities": 3}

    async def test_entry_expires_after_ttl(self, cache, clock):
        await cache.set(CacheNamespace.STATS, "u1:stats", {"entities": 1})

        clock.advance(599)
        assert await cache.get(CacheNamespace.STATS, "u1:stats") is not None

        clock.advance(2)
        assert await cache.get(CacheNamespace.STATS, "u1:stats") is None

    async def test_ttl_overrides(self, cache_backend, clock):
        cache = GraphCache(cache_backend, {"similar": 10})
        await cache.set(CacheNamespace.SIMILAR, "u1:bm1", [])

        clock.advance(11)

        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm1") is None
        assert cache.ttls[CacheNamespace.ENTITIES] == 3600

    async def test_backend_failure_is_a_miss(self, failing_backend):
        cache = GraphCache(failing_backend)

        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm1") is None
        stats = await cache.get_stats()
        assert stats.namespaces["similar"].misses == 1

    async def test_undecodable_entry_is_a_miss(self, cache, cache_backend):
        await cache_backend.set("similar:u1:bm1", "{not json", 60)

        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm1") is None

    async def test_set_failure_raises(self, failing_backend):
        cache = GraphCache(failing_backend)

        with pytest.raises(CacheError):
            await cache.set(CacheNamespace.SIMILAR, "u1:bm1", [])

    async def test_invalidate_failure_raises(self, failing_backend):
        cache = GraphCache(failing_backend)

        with pytest.raises(CacheError):
            await cache.invalidate_user("u1")


@pytest.mark.unit
@pytest.mark.asyncio
class TestGraphCacheInvalidation:
    async def test_prefix_invalidation(self, cache):
        await cache.set(CacheNamespace.SIMILAR, "u1:bm1:d1:l20", [])
        await cache.set(CacheNamespace.SIMILAR, "u1:bm1:d2:l20", [])
        await cache.set(CacheNamespace.SIMILAR, "u1:bm2:d2:l20", [])

        await cache.invalidate_similar("u1", "bm1")

        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm1:d1:l20") is None
        assert await cache.get(CacheNamespace.SIMILAR, "u1:bm2:d2:l20") == []

    async def test_invalidate_returns_count(self, cache):
        await cache.set(CacheNamespace.CONCEPTS, "u1:list:l100", [])
        await cache.set(CacheNamespace.CONCEPTS, "u1:related:con_1:m2:l20", [])

        assert await cache.invalidate(CacheNamespace.CONCEPTS, "u1:") == 2

    async def test_entity_write_drops_entities_and_stats(self, cache):
        await cache.set(CacheNamespace.ENTITIES, "u1:list:all:l50", [])
        await cache.set(CacheNamespace.STATS, "u1:stats", {})
        await cache.set(CacheNamespace.CONCEPTS, "u1:list:l100", [])

        await cache.invalidate_entities("u1")

        assert await cache.get(CacheNamespace.ENTITIES, "u1:list:all:l50") is None
        assert await cache.get(CacheNamespace.STATS, "u1:stats") is None
        assert await cache.get(CacheNamespace.CONCEPTS, "u1:list:l100") == []

    async def test_concept_write_drops_concepts_and_stats(self, cache):
        await cache.set(CacheNamespace.CONCEPTS, "u1:list:l100", [])
        await cache.set(CacheNamespace.STATS, "u1:stats", {})

        await cache.invalidate_concepts("u1")

        assert await cache.get(CacheNamespace.CONCEPTS, "u1:list:l100") is None
        assert await cache.get(CacheNamespace.STATS, "u1:stats") is None

    async def test_invalidate_user_spares_other_users(self, cache):
        for namespace in CacheNamespace:
            await cache.set(namespace, "u1:key", 1)
            await cache.set(namespace, "u2:key", 2)

        await cache.invalidate_user("u1")

        for namespace in CacheNamespace:
            assert await cache.get(namespace, "u1:key") is None
            assert await cache.get(namespace, "u2:key") == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestGraphCacheStats:
    async def test_hits_misses_and_sizes(self, cache):
        await cache.set(CacheNamespace.SIMILAR, "u1:bm1", [])
        await cache.set(CacheNamespace.SIMILAR, "u1:bm2", [])

        await cache.get(CacheNamespace.SIMILAR, "u1:bm1")
        await cache.get(CacheNamespace.SIMILAR, "u1:bm1")
        await cache.get(CacheNamespace.SIMILAR, "u1:missing")
        await cache.get(CacheNamespace.SIMILAR, "u1:missing")

        stats = await cache.get_stats()
        similar = stats.namespaces["similar"]

        assert similar.size == 2
        assert similar.hits == 2
        assert similar.misses == 2
        assert similar.hit_rate == 0.5
        assert stats.total_size == 2
        assert stats.average_hit_rate == pytest.approx(0.125)

    async def test_expired_entries_not_counted(self, cache, clock):
        await cache.set(CacheNamespace.STATS, "u1:stats", {})

        clock.advance(601)

        assert (await cache.get_stats()).namespaces["stats"].size == 0

    async def test_empty_stats(self, cache):
        stats = await cache.get_stats()

        assert set(stats.namespaces) == {"similar", "entities", "concepts", "stats"}
        assert stats.average_hit_rate == 0.0

    async def test_size_failure_reports_zero(self, failing_backend):
        stats = await GraphCache(failing_backend).get_stats()

        assert stats.total_size == 0
