"""Result models returned by the graph query service."""

from typing import Any

from pydantic import BaseModel, Field

from linkgraph.models.graph import Bookmark, Cluster, Concept, EntityType


class RelatedBookmark(BaseModel):
    """
    A bookmark reached by traversal.

    path lists the hops from the source bookmark, e.g.
    ["bm1", "concept:machine learning", "bm7"].
    """

    bookmark_id: str
    title: str = ""
    url: str = ""
    relationship_type: str
    weight: float
    path: list[str]
    path_length: int


class RelatedConcept(BaseModel):
    concept: Concept
    co_occurrence_count: int
    weight: float


class EntityBookmark(BaseModel):
    bookmark: Bookmark
    weight: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class TopEntity(BaseModel):
    name: str
    entity_type: EntityType
    occurrence_count: int


class TopConcept(BaseModel):
    name: str
    occurrence_count: int


class GraphCounts(BaseModel):
    entities: int = 0
    concepts: int = 0
    clusters: int = 0
    relationships: int = 0


class GraphStats(BaseModel):
    counts: GraphCounts = Field(default_factory=GraphCounts)
    top_entities: list[TopEntity] = Field(default_factory=list)
    top_concepts: list[TopConcept] = Field(default_factory=list)


class MergeResult(BaseModel):
    target_cluster_id: str
    merged_count: int


class ClusterDetails(BaseModel):
    cluster: Cluster
    bookmarks: list[Bookmark] = Field(default_factory=list)


class RefreshResult(BaseModel):
    bookmark_id: str
    relationships_deleted: int
    jobs_enqueued: list[str] = Field(default_factory=list)


class ExtractAndSaveResult(BaseModel):
    bookmark_id: str
    entities_saved: int = 0
    concepts_saved: int = 0


class BookmarkPosition(BaseModel):
    bookmark_id: str
    x: float
    y: float


class NamespaceCacheStats(BaseModel):
    size: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0


class CacheStats(BaseModel):
    namespaces: dict[str, NamespaceCacheStats] = Field(default_factory=dict)
    total_size: int = 0
    average_hit_rate: float = 0.0
