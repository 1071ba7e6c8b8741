"""
Tests for hybrid nearest-neighbor search.
"""

import math
from datetime import timedelta

import pytest

from linkgraph.config import SimilarityConfig
from linkgraph.core.neighbors import (
    HybridNeighborSearch,
    hybrid_score,
    tag_jaccard,
    temporal_proximity,
)
from tests.conftest import USER, make_bookmark


@pytest.mark.unit
class TestSignals:
    def test_tag_jaccard(self):
        assert tag_jaccard(["python", "ml"], ["ml", "stats"]) == pytest.approx(1 / 3)

    def test_tag_jaccard_empty(self):
        assert tag_jaccard([], []) == 0.0

    def test_temporal_proximity(self):
        source = make_bookmark("a")
        candidate = source.model_copy(update={"created_at": source.created_at - timedelta(days=30)})

        assert temporal_proximity(source, candidate, 30.0) == pytest.approx(math.exp(-1))

    def test_hybrid_score_all_signals(self):
        source = make_bookmark("a", tags=["python"], domain="a.com")
        candidate = source.model_copy(update={"id": "b"})

        assert hybrid_score(1.0, source, candidate, SimilarityConfig()) == pytest.approx(1.0)

    def test_empty_domain_does_not_match(self):
        source = make_bookmark("a")
        candidate = source.model_copy(update={"id": "b"})
        config = SimilarityConfig(vector_weight=0, tag_weight=0, temporal_weight=0, domain_weight=1)

        assert hybrid_score(0.0, source, candidate, config) == 0.0


@pytest.mark.unit
@pytest.mark.asyncio
class TestHybridNeighborSearch:
    async def _seed(self, store):
        await store.upsert_bookmark(make_bookmark("src", embedding=[1.0, 0.0]))
        await store.upsert_bookmark(make_bookmark("same", embedding=[1.0, 0.0]))
        await store.upsert_bookmark(make_bookmark("near", embedding=[1.0, 1.0]))
        await store.upsert_bookmark(make_bookmark("orthogonal", embedding=[0.0, 1.0]))
        await store.upsert_bookmark(make_bookmark("other-dim", embedding=[1.0, 0.0, 0.0]))
        await store.upsert_bookmark(make_bookmark("no-embedding"))

    async def test_ranked_neighbors(self, store):
        await self._seed(store)
        search = HybridNeighborSearch(store)

        results = await search.find_neighbors("src", USER, threshold=0.5, limit=10)

        assert [result.bookmark_id for result in results] == ["same", "near"]
        assert results[0].similarity == pytest.approx(0.75, abs=1e-3)
        expected = 0.7 * (1 + math.sqrt(0.5)) / 2 + 0.05
        assert results[1].similarity == pytest.approx(expected, abs=1e-3)

    async def test_threshold_filters(self, store):
        await self._seed(store)
        search = HybridNeighborSearch(store)

        results = await search.find_neighbors("src", USER, threshold=0.7, limit=10)

        assert [result.bookmark_id for result in results] == ["same"]

    async def test_limit(self, store):
        await self._seed(store)
        search = HybridNeighborSearch(store)

        results = await search.find_neighbors("src", USER, threshold=0.0, limit=1)

        assert len(results) == 1

    async def test_missing_source(self, store):
        assert await HybridNeighborSearch(store).find_neighbors("nope", USER, 0.5, 10) == []

    async def test_source_without_embedding(self, store):
        await store.upsert_bookmark(make_bookmark("plain"))

        assert await HybridNeighborSearch(store).find_neighbors("plain", USER, 0.5, 10) == []
