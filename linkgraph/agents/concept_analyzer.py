"""
Concept analysis agent.

Concepts are saved in two passes: first every concept and its
bookmark -> concept "about" edge, then parent links between concepts of
the same call (child -> parent "related_to" edge, weight 1.0). A parent
link that would close a cycle is rejected by the store and skipped.
"""

import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from linkgraph.agents.classifiers import ConceptClassifier
from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.normalizer import normalize_concept
from linkgraph.models.extraction import (
    ConceptAnalysisResult,
    ConceptCandidate,
    ExtractedConcept,
)
from linkgraph.models.graph import BookmarkRef, ConceptRef, EdgeKey, RelationshipType
from linkgraph.utils.exceptions import CacheError, LinkGraphError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class ConceptAnalyzer:
    """Turns classifier output into a deduplicated concept hierarchy."""

    def __init__(
        self,
        classifier: ConceptClassifier,
        store: GraphStore,
        cache: GraphCache,
        default_relevance: float = 0.7,
        confidence: float = 0.85,
    ):
        self.classifier = classifier
        self.store = store
        self.cache = cache
        self.default_relevance = default_relevance
        self.confidence = confidence

    async def analyze(
        self, content: str, embedding: list[float] | None = None
    ) -> ConceptAnalysisResult:
        """
        Analyze concepts in bookmark content.

        Never raises on collaborator failure: a failing or malformed
        classifier response yields an empty result.
        """
        start_time = time.time()

        try:
            candidates = await self.classifier.classify(content, embedding)
            concepts = self.normalize_and_deduplicate(candidates)
        except Exception as e:
            logger.warning(f"Concept classification failed, continuing without concepts: {e}")
            concepts = []

        return ConceptAnalysisResult(
            concepts=concepts,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    def normalize_and_deduplicate(
        self, candidates: list[ConceptCandidate | dict[str, Any]]
    ) -> list[ExtractedConcept]:
        """Collapse candidates onto their normalized key keeping the highest relevance."""
        merged: dict[str, ExtractedConcept] = {}

        for raw in candidates:
            try:
                candidate = ConceptCandidate.model_validate(raw)
            except PydanticValidationError:
                logger.debug(f"Skipping malformed concept candidate: {raw!r}")
                continue

            normalized = normalize_concept(candidate.name)
            if normalized is None:
                continue

            parent = normalize_concept(candidate.parent) if candidate.parent else None
            parent_key = parent.key if parent and parent.key != normalized.key else None
            relevance = (
                candidate.relevance if candidate.relevance is not None else self.default_relevance
            )

            existing = merged.get(normalized.key)
            if existing is None:
                merged[normalized.key] = ExtractedConcept(
                    name=normalized.display,
                    normalized_name=normalized.key,
                    parent_concept=parent_key,
                    confidence=self.confidence,
                    relevance=relevance,
                )
            else:
                existing.relevance = max(existing.relevance, relevance)
                existing.parent_concept = existing.parent_concept or parent_key

        return sorted(merged.values(), key=lambda concept: concept.relevance, reverse=True)

    async def save(self, concepts: list[ExtractedConcept], bookmark_id: str, user_id: str) -> int:
        """
        Persist concepts, about edges and parent links for one bookmark.

        Returns:
            Number of concepts saved
        """
        if not concepts:
            logger.debug(f"No concepts to save for bookmark {bookmark_id}")
            return 0

        concept_ids: dict[str, str] = {}

        for concept in concepts:
            try:
                stored = await self.store.upsert_concept(user_id, concept.name, mention_delta=1)
                await self.store.upsert_relationship(
                    EdgeKey(
                        user_id=user_id,
                        source=BookmarkRef(id=bookmark_id),
                        target=ConceptRef(id=stored.id),
                        relationship_type=RelationshipType.ABOUT,
                    ),
                    weight=concept.relevance,
                    metadata={"confidence": concept.confidence},
                )
                concept_ids[concept.normalized_name] = stored.id
            except LinkGraphError as e:
                logger.warning(f"Failed to save concept {concept.name!r}: {e.message}")

        for concept in concepts:
            if not concept.parent_concept:
                continue

            child_id = concept_ids.get(concept.normalized_name)
            parent_id = concept_ids.get(concept.parent_concept)
            if not child_id or not parent_id:
                logger.debug(
                    f"Cannot link {concept.name!r} -> {concept.parent_concept!r}: missing concept"
                )
                continue

            try:
                await self.store.set_concept_parent(child_id, parent_id, user_id)
                await self.store.upsert_relationship(
                    EdgeKey(
                        user_id=user_id,
                        source=ConceptRef(id=child_id),
                        target=ConceptRef(id=parent_id),
                        relationship_type=RelationshipType.RELATED_TO,
                    ),
                    weight=1.0,
                    metadata={"hierarchy_type": "parent-child"},
                )
            except LinkGraphError as e:
                logger.warning(f"Skipping hierarchy link for {concept.name!r}: {e.message}")

        if concept_ids:
            try:
                await self.cache.invalidate_concepts(user_id)
                await self.cache.invalidate_similar(user_id, bookmark_id)
            except CacheError as e:
                logger.warning(
                    f"Concepts saved for {bookmark_id} but cache invalidation failed: {e.message}"
                )

        logger.info(f"Saved {len(concept_ids)}/{len(concepts)} concepts for bookmark {bookmark_id}")
        return len(concept_ids)

    async def analyze_and_save(
        self,
        content: str,
        bookmark_id: str,
        user_id: str,
        embedding: list[float] | None = None,
    ) -> int:
        result = await self.analyze(content, embedding)
        return await self.save(result.concepts, bookmark_id, user_id)
