"""
Tests for the SQLite graph store.

Tests cover:
1. Entity / concept upserts converging on one row per normalized key
2. Relationship upserts keyed on the edge key (last writer wins)
3. Concept hierarchy and cycle rejection
4. Cluster creation and transactional merge
5. Refresh deletes and statistics
"""

import asyncio

import pytest

from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from linkgraph.models.graph import (
    BookmarkRef,
    ClusterRef,
    ConceptRef,
    EdgeKey,
    EntityRef,
    EntityType,
    NodeKind,
    RelationshipType,
)
from linkgraph.utils.exceptions import (
    ConfigurationError,
    GraphStoreError,
    NotFoundError,
    ValidationError,
)
from tests.conftest import OTHER_USER, USER, make_bookmark


def about(bookmark_id: str, concept_id: str, user_id: str = USER) -> EdgeKey:
    return EdgeKey(
        user_id=user_id,
        source=BookmarkRef(id=bookmark_id),
        target=ConceptRef(id=concept_id),
        relationship_type=RelationshipType.ABOUT,
    )


@pytest.mark.unit
@pytest.mark.asyncio
class TestSQLiteStoreLifecycle:
    async def test_memory_database_rejected(self):
        with pytest.raises(ConfigurationError):
            SQLiteGraphStore(db_path=":memory:")

    async def test_initialize_is_idempotent(self, store):
        await store.initialize()
        assert await store.list_entities(USER) == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestBookmarks:
    async def test_upsert_and_get(self, store):
        bookmark = make_bookmark("bm1", tags=["python"], embedding=[0.1, 0.2], domain="a.com")

        saved = await store.upsert_bookmark(bookmark)
        fetched = await store.get_bookmark("bm1", USER)

        assert saved.id == "bm1"
        assert fetched.tags == ["python"]
        assert fetched.embedding == [0.1, 0.2]
        assert fetched.domain == "a.com"

    async def test_get_scoped_by_user(self, store):
        await store.upsert_bookmark(make_bookmark("bm1"))
        assert await store.get_bookmark("bm1", OTHER_USER) is None

    async def test_other_users_bookmark_id_rejected(self, store):
        await store.upsert_bookmark(make_bookmark("bm1"))

        with pytest.raises(ValidationError):
            await store.upsert_bookmark(make_bookmark("bm1", user_id=OTHER_USER))

    async def test_list_with_embedding(self, store):
        await store.upsert_bookmark(make_bookmark("bm1", embedding=[1.0, 0.0]))
        await store.upsert_bookmark(make_bookmark("bm2"))

        listed = await store.list_bookmarks(USER, with_embedding=True)

        assert [bookmark.id for bookmark in listed] == ["bm1"]

    async def test_get_bookmarks_skips_missing(self, store):
        await store.upsert_bookmark(make_bookmark("bm1"))

        found = await store.get_bookmarks(["bm1", "missing"], USER)

        assert set(found) == {"bm1"}


@pytest.mark.unit
@pytest.mark.asyncio
class TestEntities:
    async def test_case_variants_share_one_row(self, store):
        """Extracting "React" then "react" yields one entity with occurrence_count 2."""
        first = await store.upsert_entity(USER, "React", EntityType.TECHNOLOGY)
        second = await store.upsert_entity(USER, "react", EntityType.TECHNOLOGY)

        assert first.id == second.id
        assert second.occurrence_count == 2
        assert len(await store.list_entities(USER)) == 1

    async def test_display_name_tracks_latest(self, store):
        await store.upsert_entity(USER, "OPENAI", EntityType.COMPANY)
        entity = await store.upsert_entity(USER, "OpenAI", EntityType.COMPANY)

        assert entity.name == "OpenAI"
        assert entity.normalized_name == "openai"

    async def test_type_is_part_of_key(self, store):
        await store.upsert_entity(USER, "Swift", EntityType.TECHNOLOGY)
        await store.upsert_entity(USER, "Swift", EntityType.PERSON)

        assert len(await store.list_entities(USER)) == 2

    async def test_first_mention_context_kept(self, store):
        await store.upsert_entity(
            USER, "Django", EntityType.TECHNOLOGY, context="built with Django"
        )
        entity = await store.upsert_entity(USER, "Django", EntityType.TECHNOLOGY, context="later")

        assert entity.metadata == {"first_mention_context": "built with Django"}

    async def test_mention_delta(self, store):
        entity = await store.upsert_entity(USER, "Rust", EntityType.TECHNOLOGY, mention_delta=3)
        assert entity.occurrence_count == 3

    async def test_negative_delta_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.upsert_entity(USER, "Rust", EntityType.TECHNOLOGY, mention_delta=-1)

    async def test_generic_name_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.upsert_entity(USER, "data", EntityType.TECHNOLOGY)

    async def test_concurrent_upserts_converge(self, store):
        await asyncio.gather(
            *(store.upsert_entity(USER, "Kafka", EntityType.TECHNOLOGY) for _ in range(10))
        )

        entities = await store.list_entities(USER)
        assert len(entities) == 1
        assert entities[0].occurrence_count == 10

    async def test_list_filters_and_orders(self, store):
        await store.upsert_entity(USER, "Go", EntityType.TECHNOLOGY)
        await store.upsert_entity(USER, "Python", EntityType.TECHNOLOGY, mention_delta=5)
        await store.upsert_entity(USER, "Guido van Rossum", EntityType.PERSON)

        technologies = await store.list_entities(USER, entity_type=EntityType.TECHNOLOGY)

        assert [entity.name for entity in technologies] == ["Python", "Go"]

    async def test_users_are_isolated(self, store):
        await store.upsert_entity(USER, "Redis", EntityType.TECHNOLOGY)
        await store.upsert_entity(OTHER_USER, "Redis", EntityType.TECHNOLOGY)

        assert len(await store.list_entities(USER)) == 1
        assert (await store.list_entities(OTHER_USER))[0].occurrence_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestConcepts:
    async def test_case_variants_share_one_row(self, store):
        first = await store.upsert_concept(USER, "Machine Learning")
        second = await store.upsert_concept(USER, "machine   learning")

        assert first.id == second.id
        assert second.occurrence_count == 2

    async def test_set_parent(self, store):
        child = await store.upsert_concept(USER, "Deep Learning")
        parent = await store.upsert_concept(USER, "Machine Learning")

        updated = await store.set_concept_parent(child.id, parent.id, USER)

        assert updated.parent_concept_id == parent.id

    async def test_self_parent_rejected(self, store):
        concept = await store.upsert_concept(USER, "Databases")

        with pytest.raises(ValidationError):
            await store.set_concept_parent(concept.id, concept.id, USER)

    async def test_cycle_rejected(self, store):
        a = await store.upsert_concept(USER, "Concept A")
        b = await store.upsert_concept(USER, "Concept B")
        c = await store.upsert_concept(USER, "Concept C")
        await store.set_concept_parent(a.id, b.id, USER)
        await store.set_concept_parent(b.id, c.id, USER)

        with pytest.raises(ValidationError):
            await store.set_concept_parent(c.id, a.id, USER)

        assert (await store.get_concept(c.id, USER)).parent_concept_id is None

    async def test_missing_parent(self, store):
        concept = await store.upsert_concept(USER, "Databases")

        with pytest.raises(NotFoundError):
            await store.set_concept_parent(concept.id, "con_missing", USER)

    async def test_co_occurrences(self, store):
        ml = await store.upsert_concept(USER, "Machine Learning")
        stats = await store.upsert_concept(USER, "Statistics")
        web = await store.upsert_concept(USER, "Web Development")

        for bookmark_id in ("bm1", "bm2", "bm3"):
            await store.upsert_relationship(about(bookmark_id, ml.id), 0.9)
        for bookmark_id in ("bm1", "bm2"):
            await store.upsert_relationship(about(bookmark_id, stats.id), 0.6)
        await store.upsert_relationship(about("bm3", web.id), 0.5)

        related = await store.concept_co_occurrences(ml.id, USER, min_co_occurrence=2)

        assert related == [(stats.id, 2, pytest.approx(0.6))]
        assert len(await store.concept_co_occurrences(ml.id, USER, min_co_occurrence=1)) == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestRelationships:
    async def test_upsert_twice_keeps_one_row_with_second_weight(self, store):
        key = about("bm1", "con_1")

        first = await store.upsert_relationship(key, 0.4, {"confidence": 0.5})
        second = await store.upsert_relationship(key, 0.9, {"confidence": 0.8})

        assert first.id == second.id
        edges = await store.find_relationships(USER, source=BookmarkRef(id="bm1"))
        assert len(edges) == 1
        assert edges[0].weight == 0.9
        assert edges[0].metadata == {"confidence": 0.8}

    @pytest.mark.parametrize("weight", [-0.1, 1.5])
    async def test_weight_out_of_range(self, store, weight):
        with pytest.raises(ValidationError):
            await store.upsert_relationship(about("bm1", "con_1"), weight)

    async def test_endpoints_round_trip_as_tagged_refs(self, store):
        await store.upsert_relationship(
            EdgeKey(
                user_id=USER,
                source=BookmarkRef(id="bm1"),
                target=EntityRef(id="ent_1"),
                relationship_type=RelationshipType.MENTIONS,
            ),
            0.85,
        )

        edge = (await store.find_relationships(USER, target_kind=NodeKind.ENTITY))[0]

        assert isinstance(edge.source, BookmarkRef)
        assert isinstance(edge.target, EntityRef)

    async def test_symmetric_upsert(self, store):
        await store.upsert_symmetric_relationship(
            USER, BookmarkRef(id="A"), BookmarkRef(id="B"), RelationshipType.SIMILAR_TO, 0.8
        )

        forward = await store.get_relationship(
            EdgeKey(
                user_id=USER,
                source=BookmarkRef(id="A"),
                target=BookmarkRef(id="B"),
                relationship_type=RelationshipType.SIMILAR_TO,
            )
        )
        backward = await store.get_relationship(
            EdgeKey(
                user_id=USER,
                source=BookmarkRef(id="B"),
                target=BookmarkRef(id="A"),
                relationship_type=RelationshipType.SIMILAR_TO,
            )
        )

        assert forward.weight == backward.weight == 0.8

    async def test_find_orders_by_weight_and_limits(self, store):
        for index, weight in enumerate([0.2, 0.9, 0.5]):
            await store.upsert_relationship(about("bm1", f"con_{index}"), weight)

        edges = await store.find_relationships(
            USER, source=BookmarkRef(id="bm1"), relationship_type=RelationshipType.ABOUT, limit=2
        )

        assert [edge.weight for edge in edges] == [0.9, 0.5]

    async def test_find_excludes_source(self, store):
        await store.upsert_relationship(about("bm1", "con_1"), 0.5)
        await store.upsert_relationship(about("bm2", "con_1"), 0.5)

        edges = await store.find_relationships(
            USER, target=ConceptRef(id="con_1"), exclude_source_id="bm1"
        )

        assert [edge.source.id for edge in edges] == ["bm2"]

    async def test_delete_touching(self, store):
        await store.upsert_relationship(about("bm1", "con_1"), 0.5)
        await store.upsert_symmetric_relationship(
            USER, BookmarkRef(id="bm1"), BookmarkRef(id="bm2"), RelationshipType.SIMILAR_TO, 0.7
        )
        await store.upsert_relationship(about("bm2", "con_1"), 0.5)

        deleted = await store.delete_relationships_touching("bm1", USER)

        assert len(deleted) == 3
        remaining = await store.find_relationships(USER)
        assert [(edge.source.id, edge.target.id) for edge in remaining] == [("bm2", "con_1")]


@pytest.mark.unit
@pytest.mark.asyncio
class TestClusters:
    async def _cluster_with(self, store, name, bookmark_ids):
        for bookmark_id in bookmark_ids:
            await store.upsert_bookmark(make_bookmark(bookmark_id))
        return await store.create_cluster(USER, name, bookmark_ids=bookmark_ids)

    async def test_create_counts_members(self, store):
        cluster = await self._cluster_with(store, "Python", ["bm1", "bm2"])

        assert cluster.bookmark_count == 2
        members = await store.list_bookmarks(USER, cluster_id=cluster.id)
        assert {bookmark.id for bookmark in members} == {"bm1", "bm2"}

    async def test_create_recounts_previous_cluster(self, store):
        old = await self._cluster_with(store, "Old", ["bm1", "bm2"])
        await store.create_cluster(USER, "New", bookmark_ids=["bm2"])

        assert (await store.get_cluster(old.id, USER)).bookmark_count == 1

    async def test_merge(self, store):
        target = await self._cluster_with(store, "Target", ["bm1", "bm2"])
        source = await self._cluster_with(store, "Source", ["bm3", "bm4", "bm5"])

        result = await store.merge_clusters(target.id, source.id, USER)

        assert result.target_cluster_id == target.id
        assert result.merged_count == 3
        merged = await store.get_cluster(target.id, USER)
        assert merged.bookmark_count == 5
        assert await store.get_cluster(source.id, USER) is None
        members = await store.list_bookmarks(USER, cluster_id=target.id)
        assert len(members) == 5

    async def test_merge_again_is_not_found(self, store):
        target = await self._cluster_with(store, "Target", ["bm1"])
        source = await self._cluster_with(store, "Source", ["bm2"])
        await store.merge_clusters(target.id, source.id, USER)

        with pytest.raises(NotFoundError):
            await store.merge_clusters(target.id, source.id, USER)

        assert (await store.get_cluster(target.id, USER)).bookmark_count == 2

    async def test_merge_into_itself(self, store):
        cluster = await self._cluster_with(store, "Only", ["bm1"])

        with pytest.raises(ValidationError):
            await store.merge_clusters(cluster.id, cluster.id, USER)

    async def test_merge_other_users_cluster(self, store):
        target = await self._cluster_with(store, "Target", ["bm1"])
        foreign = await store.create_cluster(OTHER_USER, "Foreign")

        with pytest.raises(NotFoundError):
            await store.merge_clusters(target.id, foreign.id, USER)

    async def test_merge_moves_membership_edges(self, store):
        target = await self._cluster_with(store, "Target", ["bm1"])
        source = await self._cluster_with(store, "Source", ["bm2"])
        await store.upsert_relationship(
            EdgeKey(
                user_id=USER,
                source=BookmarkRef(id="bm2"),
                target=ClusterRef(id=source.id),
                relationship_type=RelationshipType.BELONGS_TO_CLUSTER,
            ),
            1.0,
        )

        await store.merge_clusters(target.id, source.id, USER)

        edges = await store.find_relationships(
            USER, relationship_type=RelationshipType.BELONGS_TO_CLUSTER
        )
        assert [edge.target.id for edge in edges] == [target.id]

    async def test_failed_merge_changes_nothing(self, store):
        target = await self._cluster_with(store, "Target", ["bm1"])
        source = await self._cluster_with(store, "Source", ["bm2", "bm3"])
        await store.upsert_relationship(
            EdgeKey(
                user_id=USER,
                source=BookmarkRef(id="bm2"),
                target=ClusterRef(id=source.id),
                relationship_type=RelationshipType.BELONGS_TO_CLUSTER,
            ),
            1.0,
        )
        # The last statement of a merge fails, after members and counts were moved
        await store.connection.execute(
            """
            CREATE TRIGGER block_cluster_delete BEFORE DELETE ON clusters
            BEGIN SELECT RAISE(ABORT, 'cluster delete blocked'); END
            """
        )

        with pytest.raises(GraphStoreError):
            await store.merge_clusters(target.id, source.id, USER)

        assert (await store.get_cluster(target.id, USER)).bookmark_count == 1
        assert (await store.get_cluster(source.id, USER)).bookmark_count == 2
        members = await store.list_bookmarks(USER, cluster_id=source.id)
        assert {bookmark.id for bookmark in members} == {"bm2", "bm3"}
        edges = await store.find_relationships(
            USER, relationship_type=RelationshipType.BELONGS_TO_CLUSTER
        )
        assert [edge.target.id for edge in edges] == [source.id]

    async def test_list_by_size(self, store):
        await self._cluster_with(store, "Small", ["bm1"])
        await self._cluster_with(store, "Large", ["bm2", "bm3"])

        clusters = await store.list_clusters(USER)

        assert [cluster.name for cluster in clusters] == ["Large", "Small"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestGraphStats:
    async def test_counts_and_top_lists(self, store):
        await store.upsert_entity(USER, "Python", EntityType.TECHNOLOGY, mention_delta=4)
        await store.upsert_entity(USER, "Rust", EntityType.TECHNOLOGY)
        concept = await store.upsert_concept(USER, "Programming Languages")
        await store.upsert_relationship(about("bm1", concept.id), 0.8)
        await store.create_cluster(USER, "Languages")

        stats = await store.get_graph_stats(USER)

        assert stats.counts.entities == 2
        assert stats.counts.concepts == 1
        assert stats.counts.clusters == 1
        assert stats.counts.relationships == 1
        assert stats.top_entities[0].name == "Python"
        assert stats.top_concepts[0].name == "Programming Languages"
