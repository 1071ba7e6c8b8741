"""
Entity extraction agent.

extract() asks the classifier for candidates, maps their types, normalizes
names and collapses duplicates within the call (summing in-text mention
counts). save() upserts each entity and its bookmark -> entity "mentions"
edge, skipping items that fail, then invalidates the affected caches.
"""

import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from linkgraph.agents.classifiers import EntityClassifier
from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.normalizer import count_mentions, map_entity_type, normalize
from linkgraph.models.extraction import EntityCandidate, EntityExtractionResult, ExtractedEntity
from linkgraph.models.graph import BookmarkRef, EdgeKey, EntityRef, EntityType, RelationshipType
from linkgraph.utils.exceptions import CacheError, LinkGraphError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class EntityExtractor:
    """Turns classifier output into deduplicated entities and mentions edges."""

    def __init__(
        self,
        classifier: EntityClassifier,
        store: GraphStore,
        cache: GraphCache,
        confidence: float = 0.85,
    ):
        """
        Args:
            classifier: Collaborator proposing raw entity candidates
            store: Graph store receiving entities and edges
            cache: Cache to invalidate after saving
            confidence: Weight given to each mentions edge
        """
        self.classifier = classifier
        self.store = store
        self.cache = cache
        self.confidence = confidence

    async def extract(self, content: str) -> EntityExtractionResult:
        """
        Extract entities from bookmark content.

        Never raises on collaborator failure: a failing or malformed
        classifier response yields an empty result.
        """
        start_time = time.time()

        try:
            candidates = await self.classifier.classify(content)
            entities = self.normalize_and_deduplicate(candidates, content)
        except Exception as e:
            logger.warning(f"Entity classification failed, continuing without entities: {e}")
            entities = []

        return EntityExtractionResult(
            entities=entities,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    def normalize_and_deduplicate(
        self, candidates: list[EntityCandidate | dict[str, Any]], content: str
    ) -> list[ExtractedEntity]:
        """Collapse candidates onto (normalized key, type), most mentioned first."""
        merged: dict[tuple[str, EntityType], ExtractedEntity] = {}

        for raw in candidates:
            try:
                candidate = EntityCandidate.model_validate(raw)
            except PydanticValidationError:
                logger.debug(f"Skipping malformed entity candidate: {raw!r}")
                continue

            entity_type = map_entity_type(candidate.type)
            normalized = normalize(candidate.text, entity_type)
            if normalized is None:
                continue

            mentions = count_mentions(candidate.text.strip(), content)
            key = (normalized.key, entity_type)

            if key in merged:
                merged[key].mentions += mentions
            else:
                merged[key] = ExtractedEntity(
                    text=candidate.text,
                    display_name=normalized.display,
                    normalized_name=normalized.key,
                    entity_type=entity_type,
                    confidence=self.confidence,
                    mentions=mentions,
                    context=candidate.context,
                )

        return sorted(merged.values(), key=lambda entity: entity.mentions, reverse=True)

    async def save(self, entities: list[ExtractedEntity], bookmark_id: str, user_id: str) -> int:
        """
        Persist entities and their mentions edges for one bookmark.

        Each entity counts as one occurrence per call; the summed in-text
        mention count goes on the edge metadata.

        Returns:
            Number of entities saved
        """
        if not entities:
            logger.debug(f"No entities to save for bookmark {bookmark_id}")
            return 0

        saved = 0
        for entity in entities:
            try:
                stored = await self.store.upsert_entity(
                    user_id,
                    entity.display_name,
                    entity.entity_type,
                    mention_delta=1,
                    context=entity.context,
                )
                await self.store.upsert_relationship(
                    EdgeKey(
                        user_id=user_id,
                        source=BookmarkRef(id=bookmark_id),
                        target=EntityRef(id=stored.id),
                        relationship_type=RelationshipType.MENTIONS,
                    ),
                    weight=entity.confidence,
                    metadata={"mentions": entity.mentions, "context": entity.context},
                )
                saved += 1
            except LinkGraphError as e:
                logger.warning(f"Failed to save entity {entity.display_name!r}: {e.message}")

        if saved:
            try:
                await self.cache.invalidate_entities(user_id)
                await self.cache.invalidate_similar(user_id, bookmark_id)
            except CacheError as e:
                logger.warning(
                    f"Entities saved for {bookmark_id} but cache invalidation failed: {e.message}"
                )

        logger.info(f"Saved {saved}/{len(entities)} entities for bookmark {bookmark_id}")
        return saved

    async def extract_and_save(self, content: str, bookmark_id: str, user_id: str) -> int:
        result = await self.extract(content)
        return await self.save(result.entities, bookmark_id, user_id)
