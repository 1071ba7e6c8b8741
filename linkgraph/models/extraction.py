"""
Extraction models.

Candidate models describe the structured output requested from the LLM;
Extracted models are what the agents persist after normalization and
per-call deduplication.
"""

from pydantic import BaseModel, Field

from linkgraph.models.graph import Bookmark, EntityType


class EntityCandidate(BaseModel):
    """Raw entity proposed by the classifier."""

    model_config = {"extra": "ignore"}

    text: str = Field(..., description="The exact name as it appears in the content")
    type: str = Field(..., description="One of: person, company, technology, product, location")
    context: str | None = Field(
        default=None, description="Short snippet showing where it appears (max 50 chars)"
    )


class EntityCandidates(BaseModel):
    """LLM structured output for entity classification."""

    model_config = {"extra": "ignore"}

    entities: list[EntityCandidate] = Field(default_factory=list)


class ConceptCandidate(BaseModel):
    """Raw concept proposed by the classifier."""

    model_config = {"extra": "ignore"}

    name: str = Field(..., description="Concise concept name (2-4 words)")
    parent: str | None = Field(default=None, description="Parent concept name, if a subtopic")
    relevance: float | None = Field(
        default=None, ge=0.0, le=1.0, description="How central the concept is (0-1)"
    )


class ConceptCandidates(BaseModel):
    """LLM structured output for concept classification."""

    model_config = {"extra": "ignore"}

    concepts: list[ConceptCandidate] = Field(default_factory=list)


class ExtractedEntity(BaseModel):
    """Normalized, per-call deduplicated entity ready to persist."""

    text: str
    display_name: str
    normalized_name: str
    entity_type: EntityType
    confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    mentions: int = 0
    context: str | None = None


class ExtractedConcept(BaseModel):
    """Normalized, per-call deduplicated concept ready to persist."""

    name: str
    normalized_name: str
    parent_concept: str | None = None
    confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    relevance: float = Field(default=0.7, ge=0.0, le=1.0)


class EntityExtractionResult(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    method: str = "llm"
    processing_time_ms: float = 0.0
    cost: float | None = None


class ConceptAnalysisResult(BaseModel):
    concepts: list[ExtractedConcept] = Field(default_factory=list)
    method: str = "llm"
    processing_time_ms: float = 0.0
    cost: float | None = None


class SimilarBookmark(BaseModel):
    bookmark_id: str
    similarity: float = Field(..., ge=0.0, le=1.0)


class SimilarityResult(BaseModel):
    bookmark_id: str
    similar_bookmarks: list[SimilarBookmark] = Field(default_factory=list)
    method: str = "hybrid"
    processing_time_ms: float = 0.0


class ClusterName(BaseModel):
    """LLM structured output naming a group of bookmarks."""

    model_config = {"extra": "ignore"}

    name: str = Field(..., description="Short descriptive name (2-5 words)")
    description: str = Field(..., description="One sentence describing the common theme")


class BookmarkGroup(BaseModel):
    """Bookmarks KMeans put together, before the group is named and stored."""

    bookmarks: list[Bookmark]
    centroid: list[float]
    coherence_score: float = Field(..., ge=0.0, le=1.0)
