"""
Nearest-neighbor search over stored bookmark embeddings.

HybridNeighborSearch blends four signals:
- vector:   (1 + cosine) / 2
- tags:     Jaccard overlap of tag sets
- temporal: exp(-|days apart| / decay_days)
- domain:   1 when both bookmarks share a non-empty domain

Candidates are the top limit * 2 bookmarks by vector similarity (positive
cosine only); the blended score is then thresholded and truncated.
"""

import math
from abc import ABC, abstractmethod

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from linkgraph.config import SimilarityConfig
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.models.extraction import SimilarBookmark
from linkgraph.models.graph import Bookmark
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class NeighborSearch(ABC):
    """Collaborator returning ranked (bookmark, weight) pairs for a bookmark."""

    @abstractmethod
    async def find_neighbors(
        self, bookmark_id: str, user_id: str, threshold: float, limit: int
    ) -> list[SimilarBookmark]:
        pass


def tag_jaccard(left: list[str], right: list[str]) -> float:
    left_set, right_set = set(left), set(right)
    union = left_set | right_set
    if not union:
        return 0.0
    return len(left_set & right_set) / len(union)


def temporal_proximity(source: Bookmark, candidate: Bookmark, decay_days: float) -> float:
    days_apart = abs((source.created_at - candidate.created_at).total_seconds()) / 86400
    return math.exp(-days_apart / decay_days)


def hybrid_score(
    vector_similarity: float,
    source: Bookmark,
    candidate: Bookmark,
    config: SimilarityConfig,
) -> float:
    """Weighted blend of the four similarity signals, clamped to [0, 1]."""
    same_domain = 1.0 if source.domain and source.domain == candidate.domain else 0.0

    score = (
        config.vector_weight * vector_similarity
        + config.tag_weight * tag_jaccard(source.tags, candidate.tags)
        + config.temporal_weight
        * temporal_proximity(source, candidate, config.temporal_decay_days)
        + config.domain_weight * same_domain
    )
    return min(1.0, max(0.0, score))


class HybridNeighborSearch(NeighborSearch):
    """Hybrid similarity over the embeddings kept in the graph store."""

    def __init__(self, store: GraphStore, config: SimilarityConfig | None = None):
        self.store = store
        self.config = config or SimilarityConfig()

    async def find_neighbors(
        self, bookmark_id: str, user_id: str, threshold: float, limit: int
    ) -> list[SimilarBookmark]:
        source = await self.store.get_bookmark(bookmark_id, user_id)
        if source is None or not source.embedding:
            logger.warning(f"Bookmark {bookmark_id} not found or has no embedding")
            return []

        dimension = len(source.embedding)
        candidates = [
            bookmark
            for bookmark in await self.store.list_bookmarks(user_id, with_embedding=True)
            if bookmark.id != bookmark_id and len(bookmark.embedding) == dimension
        ]
        if not candidates:
            return []

        query = np.array(source.embedding, dtype=float).reshape(1, -1)
        matrix = np.array([candidate.embedding for candidate in candidates], dtype=float)
        cosines = cosine_similarity(query, matrix)[0]

        order = np.argsort(-cosines, kind="stable")
        pool = [index for index in order if cosines[index] > 0][: limit * 2]

        results = []
        for index in pool:
            candidate = candidates[index]
            score = hybrid_score((1 + float(cosines[index])) / 2, source, candidate, self.config)
            if score >= threshold:
                results.append(
                    SimilarBookmark(bookmark_id=candidate.id, similarity=round(score, 4))
                )

        results.sort(key=lambda result: result.similarity, reverse=True)
        return results[:limit]
