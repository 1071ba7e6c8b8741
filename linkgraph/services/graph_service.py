"""
Graph query service.

Read paths go through the GraphCache (read-through, JSON payloads
re-validated into models on the way out); write paths (cluster merge,
bookmark refresh) invalidate the affected namespaces after the store
commits.

Related-bookmark traversal:
- depth 1: the source's similar_to edges
- depth 2: bookmarks sharing one of the source's 10 strongest concepts or
  entities (5 per shared node), weighted by the average of both edges
- depth 3: one more similar_to hop out of every bookmark already reached,
  weighted by the product along the path
"""

from typing import Any

from pydantic import TypeAdapter

from linkgraph.agents.cluster_generator import ClusterGenerator
from linkgraph.core.cache.graph_cache import CacheNamespace, GraphCache, cache_key
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.projection import PCAProjector, Projector
from linkgraph.models.graph import (
    Bookmark,
    BookmarkRef,
    Cluster,
    Concept,
    Entity,
    EntityRef,
    EntityType,
    NodeKind,
    Relationship,
    RelationshipType,
)
from linkgraph.models.query import (
    BookmarkPosition,
    CacheStats,
    ClusterDetails,
    EntityBookmark,
    ExtractAndSaveResult,
    GraphStats,
    MergeResult,
    RefreshResult,
    RelatedBookmark,
    RelatedConcept,
)
from linkgraph.pipeline.graph_pipeline import GraphPipeline
from linkgraph.utils.exceptions import (
    CacheError,
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

MIN_DEPTH = 1
MAX_DEPTH = 3
ANCHOR_LIMIT = 10
PER_ANCHOR_LIMIT = 5
THIRD_HOP_LIMIT = 5

_related_bookmarks = TypeAdapter(list[RelatedBookmark])
_related_concepts = TypeAdapter(list[RelatedConcept])
_entities = TypeAdapter(list[Entity])
_concepts = TypeAdapter(list[Concept])
_entity_bookmarks = TypeAdapter(list[EntityBookmark])


class GraphService:
    """Caller-facing graph operations for one store, cache and pipeline."""

    def __init__(
        self,
        store: GraphStore,
        cache: GraphCache,
        pipeline: GraphPipeline | None = None,
        projector: Projector | None = None,
        cluster_generator: ClusterGenerator | None = None,
    ):
        """
        Args:
            store: Graph store (source of truth)
            cache: Cache service for read paths
            pipeline: Job pipeline used for bookmark processing and refresh
            projector: 2D projection (default: PCA)
            cluster_generator: Builds clusters from bookmark embeddings
        """
        self.store = store
        self.cache = cache
        self.pipeline = pipeline
        self.projector = projector or PCAProjector()
        self.cluster_generator = cluster_generator

    # ═══════════════════════════════════════════════════════════
    # BOOKMARK PROCESSING
    # ═══════════════════════════════════════════════════════════

    async def process_bookmark(self, bookmark: Bookmark) -> list[str]:
        """
        Record a bookmark and queue its graph jobs.

        Returns:
            IDs of the queued jobs
        """
        pipeline = self._require_pipeline()
        content = bookmark.graph_content()
        if not content.strip():
            raise ValidationError("Bookmark has no title or summary", {"bookmark_id": bookmark.id})

        stored = await self.store.upsert_bookmark(bookmark)
        jobs = await pipeline.enqueue_bookmark(stored.id, stored.user_id, content, stored.embedding)
        return [job.id for job in jobs]

    async def extract_and_save(
        self, content: str, bookmark_id: str, user_id: str
    ) -> ExtractAndSaveResult:
        """Run entity and concept extraction for a bookmark immediately."""
        if not content or not content.strip():
            raise ValidationError("Content must not be empty", {"bookmark_id": bookmark_id})
        return await self._require_pipeline().extract_and_save(content, bookmark_id, user_id)

    async def refresh_bookmark_graph(self, bookmark_id: str, user_id: str) -> RefreshResult:
        """
        Drop every edge touching a bookmark and queue its graph jobs again.

        Raises:
            NotFoundError: If the bookmark doesn't exist for user_id
        """
        bookmark = await self.store.get_bookmark(bookmark_id, user_id)
        if bookmark is None:
            raise NotFoundError(
                f"Bookmark {bookmark_id} not found",
                {"bookmark_id": bookmark_id, "user_id": user_id},
            )

        content = bookmark.graph_content()
        if self.pipeline is not None and not content.strip():
            raise ValidationError("Bookmark has no title or summary", {"bookmark_id": bookmark_id})

        deleted = await self.store.delete_relationships_touching(bookmark_id, user_id)
        # Neighbors' traversals may include this bookmark, so drop the user's whole cache.
        await self._invalidate_user_after_write(user_id)

        job_ids: list[str] = []
        if self.pipeline is not None:
            jobs = await self.pipeline.enqueue_bookmark(
                bookmark_id, user_id, content, bookmark.embedding
            )
            job_ids = [job.id for job in jobs]

        logger.info(
            f"Refreshed graph for bookmark {bookmark_id}: "
            f"{len(deleted)} relationships deleted, {len(job_ids)} jobs queued"
        )
        return RefreshResult(
            bookmark_id=bookmark_id,
            relationships_deleted=len(deleted),
            jobs_enqueued=job_ids,
        )

    # ═══════════════════════════════════════════════════════════
    # TRAVERSAL
    # ═══════════════════════════════════════════════════════════

    async def find_related_bookmarks(
        self, bookmark_id: str, user_id: str, depth: int = 2, limit: int = 20
    ) -> list[RelatedBookmark]:
        """
        Find bookmarks related to bookmark_id, strongest first.

        Depth is clamped into [1, 3]. The source bookmark is never part of
        the result and no bookmark appears twice; a bookmark keeps the
        shortest path it was first reached by. Reached ids with no stored
        bookmark row are left out.

        Raises:
            NotFoundError: If the bookmark doesn't exist for user_id
        """
        depth = max(MIN_DEPTH, min(MAX_DEPTH, depth))
        limit = max(1, limit)

        if await self.store.get_bookmark(bookmark_id, user_id) is None:
            raise NotFoundError(
                f"Bookmark {bookmark_id} not found",
                {"bookmark_id": bookmark_id, "user_id": user_id},
            )

        key = cache_key(user_id, bookmark_id, f"d{depth}", f"l{limit}")
        cached = await self.cache.get(CacheNamespace.SIMILAR, key)
        if cached is not None:
            return _related_bookmarks.validate_python(cached)

        found: dict[str, RelatedBookmark] = {}
        source = BookmarkRef(id=bookmark_id)

        similar = await self.store.find_relationships(
            user_id, source=source, relationship_type=RelationshipType.SIMILAR_TO, limit=limit
        )
        for edge in similar:
            self._add_related(
                found,
                bookmark_id,
                RelatedBookmark(
                    bookmark_id=edge.target.id,
                    relationship_type=RelationshipType.SIMILAR_TO.value,
                    weight=edge.weight,
                    path=[bookmark_id, edge.target.id],
                    path_length=1,
                ),
            )

        if depth >= 2:
            await self._expand_shared_nodes(found, bookmark_id, user_id)

        if depth >= 3:
            await self._expand_similar_hop(found, bookmark_id, user_id)

        bookmarks = await self.store.get_bookmarks(list(found), user_id)
        ranked = sorted(
            (item for item in found.values() if item.bookmark_id in bookmarks),
            key=lambda item: item.weight,
            reverse=True,
        )[:limit]
        for item in ranked:
            stored = bookmarks[item.bookmark_id]
            item.title = stored.title
            item.url = stored.url

        await self._remember(
            CacheNamespace.SIMILAR, key, [item.model_dump(mode="json") for item in ranked]
        )
        return ranked

    @staticmethod
    def _add_related(
        found: dict[str, RelatedBookmark], source_id: str, candidate: RelatedBookmark
    ) -> bool:
        if candidate.bookmark_id == source_id or candidate.bookmark_id in found:
            return False
        found[candidate.bookmark_id] = candidate
        return True

    async def _expand_shared_nodes(
        self, found: dict[str, RelatedBookmark], bookmark_id: str, user_id: str
    ) -> None:
        source = BookmarkRef(id=bookmark_id)
        anchors: list[Relationship] = []
        for relationship_type in (RelationshipType.ABOUT, RelationshipType.MENTIONS):
            anchors.extend(
                await self.store.find_relationships(
                    user_id,
                    source=source,
                    relationship_type=relationship_type,
                    limit=ANCHOR_LIMIT,
                )
            )
        anchors = sorted(anchors, key=lambda edge: edge.weight, reverse=True)[:ANCHOR_LIMIT]
        if not anchors:
            return

        concepts = await self.store.get_concepts(
            [edge.target.id for edge in anchors if edge.target.kind == NodeKind.CONCEPT], user_id
        )
        entities = await self.store.get_entities(
            [edge.target.id for edge in anchors if edge.target.kind == NodeKind.ENTITY], user_id
        )

        for anchor in anchors:
            if anchor.target.kind == NodeKind.CONCEPT:
                node = concepts.get(anchor.target.id)
                label = f"concept:{node.name if node else anchor.target.id}"
                relationship_type = "via_concept"
            else:
                node = entities.get(anchor.target.id)
                label = f"entity:{node.name if node else anchor.target.id}"
                relationship_type = "via_entity"

            sharing = await self.store.find_relationships(
                user_id,
                target=anchor.target,
                relationship_type=anchor.relationship_type,
                exclude_source_id=bookmark_id,
                limit=PER_ANCHOR_LIMIT,
            )
            for edge in sharing:
                self._add_related(
                    found,
                    bookmark_id,
                    RelatedBookmark(
                        bookmark_id=edge.source.id,
                        relationship_type=relationship_type,
                        weight=(anchor.weight + edge.weight) / 2,
                        path=[bookmark_id, label, edge.source.id],
                        path_length=2,
                    ),
                )

    async def _expand_similar_hop(
        self, found: dict[str, RelatedBookmark], bookmark_id: str, user_id: str
    ) -> None:
        for reached in list(found.values()):
            edges = await self.store.find_relationships(
                user_id,
                source=BookmarkRef(id=reached.bookmark_id),
                relationship_type=RelationshipType.SIMILAR_TO,
                limit=THIRD_HOP_LIMIT,
            )
            for edge in edges:
                self._add_related(
                    found,
                    bookmark_id,
                    RelatedBookmark(
                        bookmark_id=edge.target.id,
                        relationship_type="via_similar",
                        weight=reached.weight * edge.weight,
                        path=[*reached.path, edge.target.id],
                        path_length=reached.path_length + 1,
                    ),
                )

    async def find_related_concepts(
        self, concept_id: str, user_id: str, min_co_occurrence: int = 2, limit: int = 20
    ) -> list[RelatedConcept]:
        """
        Concepts sharing at least min_co_occurrence bookmarks with concept_id.

        Raises:
            NotFoundError: If the concept doesn't exist for user_id
        """
        key = cache_key(user_id, "related", concept_id, f"m{min_co_occurrence}", f"l{limit}")
        cached = await self.cache.get(CacheNamespace.CONCEPTS, key)
        if cached is not None:
            return _related_concepts.validate_python(cached)

        concept = await self.store.get_concept(concept_id, user_id)
        if concept is None:
            raise NotFoundError(
                f"Concept {concept_id} not found", {"concept_id": concept_id, "user_id": user_id}
            )

        rows = await self.store.concept_co_occurrences(
            concept_id, user_id, min_co_occurrence=min_co_occurrence, limit=limit
        )
        concepts = await self.store.get_concepts([row[0] for row in rows], user_id)

        related = [
            RelatedConcept(concept=concepts[other_id], co_occurrence_count=count, weight=weight)
            for other_id, count, weight in rows
            if other_id in concepts
        ]

        await self._remember(
            CacheNamespace.CONCEPTS, key, [item.model_dump(mode="json") for item in related]
        )
        return related

    # ═══════════════════════════════════════════════════════════
    # LISTINGS
    # ═══════════════════════════════════════════════════════════

    async def list_entities(
        self, user_id: str, entity_type: EntityType | None = None, limit: int = 50
    ) -> list[Entity]:
        type_part = EntityType(entity_type).value if entity_type else "all"
        key = cache_key(user_id, "list", type_part, f"l{limit}")

        cached = await self.cache.get(CacheNamespace.ENTITIES, key)
        if cached is not None:
            return _entities.validate_python(cached)

        entities = await self.store.list_entities(user_id, entity_type=entity_type, limit=limit)
        await self._remember(
            CacheNamespace.ENTITIES, key, [entity.model_dump(mode="json") for entity in entities]
        )
        return entities

    async def get_bookmarks_for_entity(
        self, entity_id: str, user_id: str, limit: int = 20
    ) -> list[EntityBookmark]:
        """
        Bookmarks that mention an entity, strongest edge first.

        Raises:
            NotFoundError: If the entity doesn't exist for user_id
        """
        key = cache_key(user_id, "entity", entity_id, f"l{limit}")
        cached = await self.cache.get(CacheNamespace.ENTITIES, key)
        if cached is not None:
            return _entity_bookmarks.validate_python(cached)

        entity = await self.store.get_entity(entity_id, user_id)
        if entity is None:
            raise NotFoundError(
                f"Entity {entity_id} not found", {"entity_id": entity_id, "user_id": user_id}
            )

        edges = await self.store.find_relationships(
            user_id,
            target=EntityRef(id=entity_id),
            relationship_type=RelationshipType.MENTIONS,
            limit=limit,
        )
        bookmarks = await self.store.get_bookmarks([edge.source.id for edge in edges], user_id)

        results = [
            EntityBookmark(
                bookmark=bookmarks[edge.source.id], weight=edge.weight, metadata=edge.metadata
            )
            for edge in edges
            if edge.source.id in bookmarks
        ]

        await self._remember(
            CacheNamespace.ENTITIES, key, [item.model_dump(mode="json") for item in results]
        )
        return results

    async def list_concepts(self, user_id: str, limit: int = 100) -> list[Concept]:
        key = cache_key(user_id, "list", f"l{limit}")
        cached = await self.cache.get(CacheNamespace.CONCEPTS, key)
        if cached is not None:
            return _concepts.validate_python(cached)

        concepts = await self.store.list_concepts(user_id, limit=limit)
        await self._remember(
            CacheNamespace.CONCEPTS, key, [concept.model_dump(mode="json") for concept in concepts]
        )
        return concepts

    async def get_concept(self, concept_id: str, user_id: str) -> Concept:
        concept = await self.store.get_concept(concept_id, user_id)
        if concept is None:
            raise NotFoundError(
                f"Concept {concept_id} not found", {"concept_id": concept_id, "user_id": user_id}
            )
        return concept

    # ═══════════════════════════════════════════════════════════
    # CLUSTERS
    # ═══════════════════════════════════════════════════════════

    async def list_clusters(self, user_id: str, limit: int = 20) -> list[Cluster]:
        return await self.store.list_clusters(user_id, limit=limit)

    async def get_cluster_details(
        self, cluster_id: str, user_id: str, bookmark_limit: int = 50
    ) -> ClusterDetails:
        cluster = await self.store.get_cluster(cluster_id, user_id)
        if cluster is None:
            raise NotFoundError(
                f"Cluster {cluster_id} not found", {"cluster_id": cluster_id, "user_id": user_id}
            )

        bookmarks = await self.store.list_bookmarks(
            user_id, cluster_id=cluster_id, limit=bookmark_limit
        )
        return ClusterDetails(cluster=cluster, bookmarks=bookmarks)

    async def generate_clusters(self, user_id: str) -> list[Cluster]:
        """
        Regroup the user's embedded bookmarks into named clusters.

        Raises:
            ConfigurationError: If the service was created without a cluster generator
        """
        if self.cluster_generator is None:
            raise ConfigurationError("Graph service was created without a cluster generator")

        clusters = await self.cluster_generator.generate(user_id)
        logger.info(f"Generated {len(clusters)} clusters for user {user_id}")
        return clusters

    async def merge_clusters(self, target_id: str, source_id: str, user_id: str) -> MergeResult:
        """
        Fold source cluster into target.

        Raises:
            NotFoundError: If either cluster is missing (including an already merged source)
            ValidationError: If target and source are the same cluster
        """
        result = await self.store.merge_clusters(target_id, source_id, user_id)
        await self._invalidate_user_after_write(user_id)

        logger.info(
            f"Merged cluster {source_id} into {target_id} ({result.merged_count} bookmarks moved)"
        )
        return result

    # ═══════════════════════════════════════════════════════════
    # STATISTICS, CACHE & PROJECTION
    # ═══════════════════════════════════════════════════════════

    async def get_graph_stats(self, user_id: str) -> GraphStats:
        key = cache_key(user_id, "stats")
        cached = await self.cache.get(CacheNamespace.STATS, key)
        if cached is not None:
            return GraphStats.model_validate(cached)

        stats = await self.store.get_graph_stats(user_id)
        await self._remember(CacheNamespace.STATS, key, stats.model_dump(mode="json"))
        return stats

    async def invalidate_all_caches(self, user_id: str) -> None:
        await self.cache.invalidate_user(user_id)
        logger.info(f"Invalidated all graph caches for user {user_id}")

    async def get_cache_stats(self) -> CacheStats:
        return await self.cache.get_stats()

    async def compute_projection(self, user_id: str) -> list[BookmarkPosition]:
        """2D positions for every bookmark of user_id that has an embedding."""
        bookmarks = await self.store.list_bookmarks(user_id, with_embedding=True)
        return await self.projector.project_2d(
            [(bookmark.id, bookmark.embedding) for bookmark in bookmarks]
        )

    async def _remember(self, namespace: CacheNamespace, key: str, value: Any) -> None:
        """Cache a computed read result; a failing cache never fails the read."""
        try:
            await self.cache.set(namespace, key, value)
        except CacheError as e:
            logger.warning(f"Could not cache {namespace.value}:{key}: {e.message}")

    async def _invalidate_user_after_write(self, user_id: str) -> None:
        """Drop the user's cache once a store write has committed; stale entries expire by TTL."""
        try:
            await self.cache.invalidate_user(user_id)
        except CacheError as e:
            logger.warning(
                f"Cache invalidation for user {user_id} failed after commit: {e.message}"
            )

    def _require_pipeline(self) -> GraphPipeline:
        if self.pipeline is None:
            raise ConfigurationError("Graph service was created without a job pipeline")
        return self.pipeline
