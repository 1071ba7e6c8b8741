"""
Persistent knowledge graph models.

Every row is scoped by user_id. Relationship endpoints are a tagged union
of node references so an edge can only point at the four node kinds the
graph knows about.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class EntityType(str, Enum):
    """Kinds of named entities."""

    PERSON = "person"
    COMPANY = "company"
    TECHNOLOGY = "technology"
    PRODUCT = "product"
    LOCATION = "location"


class NodeKind(str, Enum):
    """Node kinds an edge endpoint may reference."""

    BOOKMARK = "bookmark"
    ENTITY = "entity"
    CONCEPT = "concept"
    CLUSTER = "cluster"


class RelationshipType(str, Enum):
    """Edge types written by the extraction agents."""

    MENTIONS = "mentions"  # bookmark -> entity
    ABOUT = "about"  # bookmark -> concept
    SIMILAR_TO = "similar_to"  # bookmark -> bookmark
    BELONGS_TO_CLUSTER = "belongs_to_cluster"  # bookmark -> cluster
    RELATED_TO = "related_to"  # concept -> parent concept


class _NodeRefBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class BookmarkRef(_NodeRefBase):
    kind: Literal[NodeKind.BOOKMARK] = NodeKind.BOOKMARK


class EntityRef(_NodeRefBase):
    kind: Literal[NodeKind.ENTITY] = NodeKind.ENTITY


class ConceptRef(_NodeRefBase):
    kind: Literal[NodeKind.CONCEPT] = NodeKind.CONCEPT


class ClusterRef(_NodeRefBase):
    kind: Literal[NodeKind.CLUSTER] = NodeKind.CLUSTER


NodeRef = Annotated[
    BookmarkRef | EntityRef | ConceptRef | ClusterRef,
    Field(discriminator="kind"),
]

_REF_TYPES: dict[NodeKind, type[_NodeRefBase]] = {
    NodeKind.BOOKMARK: BookmarkRef,
    NodeKind.ENTITY: EntityRef,
    NodeKind.CONCEPT: ConceptRef,
    NodeKind.CLUSTER: ClusterRef,
}


def node_ref(
    kind: NodeKind | str, node_id: str
) -> BookmarkRef | EntityRef | ConceptRef | ClusterRef:
    """Build the reference variant for a stored (kind, id) pair."""
    return _REF_TYPES[NodeKind(kind)](id=node_id)


class EdgeKey(BaseModel):
    """Uniqueness key of a relationship (per user)."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    source: NodeRef
    target: NodeRef
    relationship_type: RelationshipType


class Relationship(BaseModel):
    """Directed, typed, weighted edge between two graph nodes."""

    id: str
    user_id: str
    source: NodeRef
    target: NodeRef
    relationship_type: RelationshipType
    weight: float = Field(default=1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(
            user_id=self.user_id,
            source=self.source,
            target=self.target,
            relationship_type=self.relationship_type,
        )


class Entity(BaseModel):
    """Named thing extracted from bookmark text, unique on (normalized_name, entity_type)."""

    id: str
    user_id: str
    name: str
    normalized_name: str
    entity_type: EntityType
    occurrence_count: int = Field(default=1, ge=0)
    first_seen_at: datetime = Field(default_factory=utcnow)
    last_seen_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Concept(BaseModel):
    """Abstract topic extracted from bookmark text, unique on normalized_name."""

    id: str
    user_id: str
    name: str
    normalized_name: str
    occurrence_count: int = Field(default=1, ge=0)
    parent_concept_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Cluster(BaseModel):
    """Group of bookmarks; bookmark_count always equals the number of member bookmarks."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    coherence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    bookmark_count: int = Field(default=0, ge=0)
    centroid: list[float] | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Bookmark(BaseModel):
    """The slice of a bookmark the graph core reads."""

    id: str
    user_id: str
    url: str = ""
    title: str = ""
    summary: str = ""
    domain: str = ""
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    cluster_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def graph_content(self) -> str:
        """Text fed to extraction (title + summary)."""
        return "\n\n".join(part for part in (self.title, self.summary) if part)
