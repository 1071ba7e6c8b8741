"""
Tests for the entity extraction agent.

Tests cover:
1. Candidate normalization, type mapping and in-call deduplication
2. Collaborator failures degrading to empty results
3. Saving entities and mentions edges into the graph store
4. Cache invalidation after saving
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from linkgraph.agents.classifiers import EntityClassifier
from linkgraph.agents.entity_extractor import EntityExtractor
from linkgraph.core.cache import CacheNamespace
from linkgraph.models.extraction import EntityCandidate
from linkgraph.models.graph import BookmarkRef, EntityType, RelationshipType
from linkgraph.utils.exceptions import GraphStoreError
from tests.conftest import USER

CONTENT = "React and react-dom power the UI. Dan Abramov wrote about React hooks at Meta."


@pytest.fixture
def classifier():
    mock = MagicMock(spec=EntityClassifier)
    mock.classify = AsyncMock(
        return_value=[
            EntityCandidate(text="React", type="framework", context="React and react-dom"),
            EntityCandidate(text="react", type="technology"),
            EntityCandidate(text="dan abramov", type="people"),
            EntityCandidate(text="Meta", type="organization"),
            EntityCandidate(text="data", type="technology"),
            EntityCandidate(text="x", type="product"),
        ]
    )
    return mock


@pytest.fixture
def extractor(classifier, store, cache):
    return EntityExtractor(classifier, store, cache)


@pytest.mark.unit
@pytest.mark.asyncio
class TestEntityExtraction:
    async def test_normalizes_and_deduplicates(self, extractor):
        result = await extractor.extract(CONTENT)

        by_name = {entity.normalized_name: entity for entity in result.entities}
        assert set(by_name) == {"react", "dan abramov", "meta"}
        assert by_name["react"].entity_type == EntityType.TECHNOLOGY
        assert by_name["react"].mentions == 6
        assert by_name["dan abramov"].display_name == "Dan Abramov"
        assert by_name["dan abramov"].entity_type == EntityType.PERSON
        assert by_name["meta"].entity_type == EntityType.COMPANY
        assert result.entities[0].normalized_name == "react"

    async def test_classifier_failure_yields_empty(self, extractor, classifier):
        classifier.classify.side_effect = RuntimeError("LLM down")

        result = await extractor.extract(CONTENT)

        assert result.entities == []

    async def test_malformed_candidates_skipped(self, extractor):
        entities = extractor.normalize_and_deduplicate(
            [{"text": "Kubernetes", "type": "technology"}, {"type": "person"}, "garbage"],
            "Kubernetes everywhere",
        )

        assert [entity.display_name for entity in entities] == ["Kubernetes"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestEntitySave:
    async def test_saves_entities_and_mentions_edges(self, extractor, store):
        saved = await extractor.extract_and_save(CONTENT, "bm1", USER)

        assert saved == 3
        entities = await store.list_entities(USER)
        assert {entity.normalized_name for entity in entities} == {"react", "dan abramov", "meta"}
        assert all(entity.occurrence_count == 1 for entity in entities)

        edges = await store.find_relationships(
            USER, source=BookmarkRef(id="bm1"), relationship_type=RelationshipType.MENTIONS
        )
        assert len(edges) == 3
        assert all(edge.weight == 0.85 for edge in edges)

    async def test_rerun_does_not_duplicate_edges(self, extractor, store):
        await extractor.extract_and_save(CONTENT, "bm1", USER)
        await extractor.extract_and_save(CONTENT, "bm1", USER)

        edges = await store.find_relationships(USER, source=BookmarkRef(id="bm1"))
        assert len(edges) == 3
        assert all(entity.occurrence_count == 2 for entity in await store.list_entities(USER))

    async def test_same_entity_across_bookmarks(self, extractor, store):
        await extractor.extract_and_save(CONTENT, "bm1", USER)
        await extractor.extract_and_save(CONTENT, "bm2", USER)

        entities = await store.list_entities(USER)
        assert len(entities) == 3
        assert all(entity.occurrence_count == 2 for entity in entities)

    async def test_save_nothing(self, extractor, store):
        assert await extractor.save([], "bm1", USER) == 0

    async def test_failed_item_skipped(self, extractor, store, monkeypatch):
        result = await extractor.extract(CONTENT)
        real_upsert = store.upsert_entity
        calls = []

        async def flaky(user_id, name, entity_type, mention_delta=1, context=None):
            calls.append(name)
            if len(calls) == 1:
                raise GraphStoreError("database is locked")
            return await real_upsert(user_id, name, entity_type, mention_delta, context)

        monkeypatch.setattr(store, "upsert_entity", flaky)

        assert await extractor.save(result.entities, "bm1", USER) == 2

    async def test_invalidates_caches(self, extractor, cache):
        await cache.set(CacheNamespace.ENTITIES, f"{USER}:list:all:l50", [])
        await cache.set(CacheNamespace.STATS, f"{USER}:stats", {})
        await cache.set(CacheNamespace.SIMILAR, f"{USER}:bm1:d2:l20", [])
        await cache.set(CacheNamespace.SIMILAR, f"{USER}:bm9:d2:l20", [])

        await extractor.extract_and_save(CONTENT, "bm1", USER)

        assert await cache.get(CacheNamespace.ENTITIES, f"{USER}:list:all:l50") is None
        assert await cache.get(CacheNamespace.STATS, f"{USER}:stats") is None
        assert await cache.get(CacheNamespace.SIMILAR, f"{USER}:bm1:d2:l20") is None
        assert await cache.get(CacheNamespace.SIMILAR, f"{USER}:bm9:d2:l20") == []
