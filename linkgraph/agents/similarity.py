"""
Similarity computation agent.

Every pair found is stored as two similar_to edges (A -> B and B -> A)
with the same weight, written together in one store transaction.
"""

import time

from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.neighbors import NeighborSearch
from linkgraph.models.extraction import SimilarBookmark, SimilarityResult
from linkgraph.models.graph import BookmarkRef, RelationshipType
from linkgraph.utils.exceptions import CacheError, LinkGraphError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class SimilarityComputer:
    """Finds a bookmark's nearest neighbors and records symmetric similar_to edges."""

    def __init__(
        self,
        neighbors: NeighborSearch,
        store: GraphStore,
        cache: GraphCache,
        threshold: float = 0.65,
        limit: int = 20,
    ):
        self.neighbors = neighbors
        self.store = store
        self.cache = cache
        self.threshold = threshold
        self.limit = limit

    async def find_similar(
        self,
        bookmark_id: str,
        user_id: str,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> SimilarityResult:
        """
        Rank similar bookmarks above threshold, best first.

        The bookmark itself is never part of the result; a failing neighbor
        search yields an empty result.
        """
        start_time = time.time()
        threshold = self.threshold if threshold is None else threshold
        limit = self.limit if limit is None else limit

        try:
            found = await self.neighbors.find_neighbors(bookmark_id, user_id, threshold, limit)
        except Exception as e:
            logger.warning(f"Neighbor search failed for bookmark {bookmark_id}: {e}")
            found = []

        best: dict[str, SimilarBookmark] = {}
        for candidate in found:
            if candidate.bookmark_id == bookmark_id or candidate.similarity < threshold:
                continue
            current = best.get(candidate.bookmark_id)
            if current is None or candidate.similarity > current.similarity:
                best[candidate.bookmark_id] = candidate

        ranked = sorted(best.values(), key=lambda item: item.similarity, reverse=True)[:limit]

        return SimilarityResult(
            bookmark_id=bookmark_id,
            similar_bookmarks=ranked,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    async def save(
        self, bookmark_id: str, similar_bookmarks: list[SimilarBookmark], user_id: str
    ) -> int:
        """
        Store both directions of every similarity pair.

        Returns:
            Number of pairs saved
        """
        if not similar_bookmarks:
            logger.debug(f"No similarities to save for bookmark {bookmark_id}")
            return 0

        touched = []
        for similar in similar_bookmarks:
            try:
                await self.store.upsert_symmetric_relationship(
                    user_id,
                    BookmarkRef(id=bookmark_id),
                    BookmarkRef(id=similar.bookmark_id),
                    RelationshipType.SIMILAR_TO,
                    weight=similar.similarity,
                    metadata={"method": "hybrid"},
                )
                touched.append(similar.bookmark_id)
            except LinkGraphError as e:
                logger.warning(
                    f"Failed to save similarity {bookmark_id} <-> {similar.bookmark_id}: "
                    f"{e.message}"
                )

        if touched:
            try:
                for affected in [bookmark_id, *touched]:
                    await self.cache.invalidate_similar(user_id, affected)
                await self.cache.invalidate_stats(user_id)
            except CacheError as e:
                logger.warning(
                    f"Similarities saved for {bookmark_id} but cache invalidation failed: "
                    f"{e.message}"
                )

        logger.info(f"Saved {len(touched)} similarity pairs for bookmark {bookmark_id}")
        return len(touched)

    async def compute_and_save(self, bookmark_id: str, user_id: str) -> int:
        result = await self.find_similar(bookmark_id, user_id)
        return await self.save(bookmark_id, result.similar_bookmarks, user_id)
