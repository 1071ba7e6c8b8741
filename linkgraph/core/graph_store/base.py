"""
Base interface for graph storage.

The store is the single source of truth for the knowledge graph. All
writes that can race (entity, concept and relationship upserts) are
single conflict-then-update statements keyed on the storage-level
uniqueness constraints; multi-row changes that must stay consistent
(cluster creation and merge, concept re-parenting) run inside one
transaction.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from linkgraph.models.graph import (
    Bookmark,
    Cluster,
    Concept,
    EdgeKey,
    Entity,
    EntityType,
    NodeKind,
    NodeRef,
    Relationship,
    RelationshipType,
)
from linkgraph.models.query import GraphStats, MergeResult


class GraphStore(ABC):
    """Abstract base class for graph storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the graph store (create tables/schema)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection to the graph store."""
        pass

    # ═══════════════════════════════════════════════════════════
    # BOOKMARKS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_bookmark(self, bookmark: Bookmark) -> Bookmark:
        """
        Insert or refresh the graph's view of a bookmark.

        Cluster membership is never changed here; it is owned by the
        cluster operations so bookmark_count stays exact.

        Raises:
            ValidationError: If the id already belongs to another user
        """
        pass

    @abstractmethod
    async def get_bookmark(self, bookmark_id: str, user_id: str) -> Bookmark | None:
        """Get a bookmark owned by user_id, or None."""
        pass

    @abstractmethod
    async def get_bookmarks(self, bookmark_ids: Iterable[str], user_id: str) -> dict[str, Bookmark]:
        """Fetch several bookmarks owned by user_id, keyed by id (missing ids are absent)."""
        pass

    @abstractmethod
    async def list_bookmarks(
        self,
        user_id: str,
        with_embedding: bool = False,
        cluster_id: str | None = None,
        limit: int | None = None,
    ) -> list[Bookmark]:
        """
        List a user's bookmarks.

        Args:
            user_id: Owner
            with_embedding: Only bookmarks that have an embedding
            cluster_id: Only members of this cluster
            limit: Maximum results
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # ENTITIES & CONCEPTS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_entity(
        self,
        user_id: str,
        name: str,
        entity_type: EntityType,
        mention_delta: int = 1,
        context: str | None = None,
    ) -> Entity:
        """
        Create an entity or record another sighting of it.

        An existing (normalized name, type) row gets occurrence_count +=
        mention_delta, a fresh last_seen_at and the new display name; a new
        row starts at occurrence_count = mention_delta with context saved as
        the first-mention context.

        Raises:
            ValidationError: If the name normalizes to nothing or mention_delta < 0
        """
        pass

    @abstractmethod
    async def get_entity(self, entity_id: str, user_id: str) -> Entity | None:
        pass

    @abstractmethod
    async def get_entities(self, entity_ids: Iterable[str], user_id: str) -> dict[str, Entity]:
        pass

    @abstractmethod
    async def list_entities(
        self, user_id: str, entity_type: EntityType | None = None, limit: int = 50
    ) -> list[Entity]:
        """List entities by occurrence_count descending."""
        pass

    @abstractmethod
    async def upsert_concept(self, user_id: str, name: str, mention_delta: int = 1) -> Concept:
        """Concept counterpart of upsert_entity, keyed on the normalized name only."""
        pass

    @abstractmethod
    async def get_concept(self, concept_id: str, user_id: str) -> Concept | None:
        pass

    @abstractmethod
    async def get_concepts(self, concept_ids: Iterable[str], user_id: str) -> dict[str, Concept]:
        pass

    @abstractmethod
    async def list_concepts(self, user_id: str, limit: int = 100) -> list[Concept]:
        """List concepts by occurrence_count descending."""
        pass

    @abstractmethod
    async def set_concept_parent(self, concept_id: str, parent_id: str, user_id: str) -> Concept:
        """
        Attach a concept to a parent concept.

        Raises:
            NotFoundError: If either concept is missing
            ValidationError: If the link would create a cycle
        """
        pass

    @abstractmethod
    async def concept_co_occurrences(
        self, concept_id: str, user_id: str, min_co_occurrence: int = 2, limit: int = 20
    ) -> list[tuple[str, int, float]]:
        """
        Concepts sharing "about" bookmarks with concept_id.

        Returns:
            (concept_id, shared bookmark count, average edge weight) tuples,
            most shared first, only those with count >= min_co_occurrence
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # RELATIONSHIPS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_relationship(
        self, key: EdgeKey, weight: float, metadata: dict[str, Any] | None = None
    ) -> Relationship:
        """
        Assert an edge. Re-asserting the same key updates weight/metadata in place.

        Raises:
            ValidationError: If weight is outside [0, 1]
        """
        pass

    @abstractmethod
    async def upsert_symmetric_relationship(
        self,
        user_id: str,
        first: NodeRef,
        second: NodeRef,
        relationship_type: RelationshipType,
        weight: float,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Relationship, Relationship]:
        """
        Assert first -> second and second -> first with the same weight in one transaction.

        Raises:
            ValidationError: If weight is outside [0, 1]
        """
        pass

    @abstractmethod
    async def get_relationship(self, key: EdgeKey) -> Relationship | None:
        pass

    @abstractmethod
    async def find_relationships(
        self,
        user_id: str,
        source: NodeRef | None = None,
        target: NodeRef | None = None,
        source_kind: NodeKind | None = None,
        target_kind: NodeKind | None = None,
        relationship_type: RelationshipType | None = None,
        exclude_source_id: str | None = None,
        limit: int | None = None,
    ) -> list[Relationship]:
        """
        Query edges, strongest first.

        Args:
            user_id: Owner
            source: Exact source node
            target: Exact target node
            source_kind: Kind of source node
            target_kind: Kind of target node
            relationship_type: Edge type
            exclude_source_id: Drop edges whose source has this id
            limit: Maximum results
        """
        pass

    @abstractmethod
    async def delete_relationships_touching(
        self, bookmark_id: str, user_id: str
    ) -> list[Relationship]:
        """Delete every edge with the bookmark at either end; returns the deleted edges."""
        pass

    # ═══════════════════════════════════════════════════════════
    # CLUSTERS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def create_cluster(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        bookmark_ids: Iterable[str] = (),
        coherence_score: float | None = None,
        centroid: list[float] | None = None,
    ) -> Cluster:
        """Create a cluster and move the given bookmarks into it atomically."""
        pass

    @abstractmethod
    async def get_cluster(self, cluster_id: str, user_id: str) -> Cluster | None:
        pass

    @abstractmethod
    async def list_clusters(self, user_id: str, limit: int = 20) -> list[Cluster]:
        """List clusters by bookmark_count descending."""
        pass

    @abstractmethod
    async def merge_clusters(self, target_id: str, source_id: str, user_id: str) -> MergeResult:
        """
        Fold source into target in one transaction.

        Re-points every source bookmark to target, adds the source count to the
        target count and deletes source.

        Raises:
            NotFoundError: If either cluster is missing or not owned by user_id
            ValidationError: If target and source are the same cluster
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # STATISTICS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_graph_stats(self, user_id: str, top_n: int = 10) -> GraphStats:
        """Row counts and the most frequent entities and concepts."""
        pass
