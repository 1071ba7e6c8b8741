"""
Data models for LinkGraph.

Graph layer (persisted, user-scoped):
- Entity, Concept, Cluster, Bookmark: graph nodes
- Relationship, EdgeKey: polymorphic edges between NodeRef endpoints
- EntityType, NodeKind, RelationshipType: enums

Extraction layer:
- EntityCandidate(s), ConceptCandidate(s): classifier structured output
- ExtractedEntity, ExtractedConcept, SimilarBookmark: normalized agent output
- ClusterName, BookmarkGroup: cluster naming output and KMeans groups

Pipeline layer:
- Job, JobFamily, JobStatus, QueueMetrics

Query layer:
- RelatedBookmark, RelatedConcept, GraphStats, MergeResult, ...
"""

from linkgraph.models.extraction import (
    BookmarkGroup,
    ClusterName,
    ConceptAnalysisResult,
    ConceptCandidate,
    ConceptCandidates,
    EntityCandidate,
    EntityCandidates,
    EntityExtractionResult,
    ExtractedConcept,
    ExtractedEntity,
    SimilarBookmark,
    SimilarityResult,
)
from linkgraph.models.graph import (
    Bookmark,
    BookmarkRef,
    Cluster,
    ClusterRef,
    Concept,
    ConceptRef,
    EdgeKey,
    Entity,
    EntityRef,
    EntityType,
    NodeKind,
    NodeRef,
    Relationship,
    RelationshipType,
    node_ref,
)
from linkgraph.models.jobs import Job, JobFamily, JobStatus, QueueMetrics
from linkgraph.models.query import (
    BookmarkPosition,
    CacheStats,
    ClusterDetails,
    EntityBookmark,
    ExtractAndSaveResult,
    GraphCounts,
    GraphStats,
    MergeResult,
    NamespaceCacheStats,
    RefreshResult,
    RelatedBookmark,
    RelatedConcept,
    TopConcept,
    TopEntity,
)

__all__ = [
    # Graph models
    "Bookmark",
    "BookmarkRef",
    "Cluster",
    "ClusterRef",
    "Concept",
    "ConceptRef",
    "EdgeKey",
    "Entity",
    "EntityRef",
    "EntityType",
    "NodeKind",
    "NodeRef",
    "Relationship",
    "RelationshipType",
    "node_ref",
    # Extraction models
    "EntityCandidate",
    "EntityCandidates",
    "ConceptCandidate",
    "ConceptCandidates",
    "ExtractedEntity",
    "ExtractedConcept",
    "EntityExtractionResult",
    "ConceptAnalysisResult",
    "SimilarBookmark",
    "SimilarityResult",
    "ClusterName",
    "BookmarkGroup",
    # Pipeline models
    "Job",
    "JobFamily",
    "JobStatus",
    "QueueMetrics",
    # Query models
    "RelatedBookmark",
    "RelatedConcept",
    "EntityBookmark",
    "TopEntity",
    "TopConcept",
    "GraphCounts",
    "GraphStats",
    "MergeResult",
    "ClusterDetails",
    "RefreshResult",
    "ExtractAndSaveResult",
    "BookmarkPosition",
    "NamespaceCacheStats",
    "CacheStats",
]
