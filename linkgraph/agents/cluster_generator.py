"""
Cluster generation agent.

Groups a user's embedded bookmarks with k-means (k = bookmarks //
min_cluster_size, capped at max_clusters), drops groups smaller than
min_cluster_size and asks the LLM to name each surviving group. Users with
fewer than 2 * min_cluster_size embedded bookmarks are left alone.

Creating a cluster moves its bookmarks out of any earlier cluster; earlier
clusters are kept with their remaining members.
"""

import re
from collections import Counter, defaultdict

import numpy as np
from sklearn.cluster import KMeans
from sklearn.metrics.pairwise import cosine_similarity

from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.llm.base import LLMProvider
from linkgraph.models.extraction import BookmarkGroup, ClusterName
from linkgraph.models.graph import Bookmark, Cluster
from linkgraph.utils.exceptions import CacheError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

NAMING_SYSTEM_PROMPT = (
    "You name collections of bookmarks. Names are short and specific to the "
    "shared theme; descriptions are a single sentence."
)

# Bookmarks shown to the LLM per group
REPRESENTATIVE_LIMIT = 10
SUMMARY_CHARS = 150


class ClusterGenerator:
    """Builds named clusters out of bookmark embeddings."""

    def __init__(
        self,
        llm: LLMProvider,
        store: GraphStore,
        cache: GraphCache,
        min_cluster_size: int = 3,
        max_clusters: int = 10,
        random_state: int = 42,
        temperature: float = 0.7,
        max_tokens: int = 200,
    ):
        self.llm = llm
        self.store = store
        self.cache = cache
        self.min_cluster_size = min_cluster_size
        self.max_clusters = max_clusters
        self.random_state = random_state
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, user_id: str) -> list[Cluster]:
        """
        Cluster every embedded bookmark of user_id and persist the groups.

        Returns:
            Created clusters, largest first (empty when there is too little to cluster)
        """
        bookmarks = await self.store.list_bookmarks(user_id, with_embedding=True)
        if len(bookmarks) < self.min_cluster_size * 2:
            logger.info(
                f"Not enough bookmarks ({len(bookmarks)}) to cluster for user {user_id}"
            )
            return []

        groups = self.group(bookmarks)

        clusters = []
        for group in groups:
            naming = await self.name_group(group.bookmarks)
            cluster = await self.store.create_cluster(
                user_id,
                naming.name,
                description=naming.description,
                bookmark_ids=[bookmark.id for bookmark in group.bookmarks],
                coherence_score=group.coherence_score,
                centroid=group.centroid,
            )
            logger.info(
                f"Created cluster {cluster.name!r} with {cluster.bookmark_count} bookmarks "
                f"(coherence: {group.coherence_score:.2f})"
            )
            clusters.append(cluster)

        if clusters:
            try:
                await self.cache.invalidate_user(user_id)
            except CacheError as e:
                logger.warning(
                    f"Clusters saved for {user_id} but cache invalidation failed: {e.message}"
                )

        return clusters

    def group(self, bookmarks: list[Bookmark]) -> list[BookmarkGroup]:
        """Run k-means over the embeddings and keep groups of at least min_cluster_size."""
        dimension = len(bookmarks[0].embedding)
        usable = [bookmark for bookmark in bookmarks if len(bookmark.embedding) == dimension]
        if len(usable) < len(bookmarks):
            logger.warning(
                f"Skipping {len(bookmarks) - len(usable)} bookmarks with mismatched embeddings"
            )

        n_clusters = min(len(usable) // self.min_cluster_size, self.max_clusters)
        if n_clusters < 1:
            return []

        embeddings = np.array([bookmark.embedding for bookmark in usable], dtype=float)
        kmeans = KMeans(n_clusters=n_clusters, random_state=self.random_state, n_init=10)
        labels = kmeans.fit_predict(embeddings)

        members: dict[int, list[int]] = defaultdict(list)
        for index, label in enumerate(labels):
            members[int(label)].append(index)

        groups = []
        for indices in members.values():
            if len(indices) < self.min_cluster_size:
                continue

            vectors = embeddings[indices]
            centroid = vectors.mean(axis=0)
            similarities = cosine_similarity(vectors, centroid.reshape(1, -1))[:, 0]
            coherence = float(np.clip(similarities.mean(), 0.0, 1.0))

            groups.append(
                BookmarkGroup(
                    bookmarks=[usable[index] for index in indices],
                    centroid=centroid.tolist(),
                    coherence_score=coherence,
                )
            )

        groups.sort(key=lambda group: len(group.bookmarks), reverse=True)
        return groups

    def _build_prompt(self, bookmarks: list[Bookmark]) -> str:
        lines = []
        for position, bookmark in enumerate(bookmarks[:REPRESENTATIVE_LIMIT], start=1):
            line = f"{position}. {bookmark.title or bookmark.url}"
            if bookmark.summary:
                line += f"\n   Summary: {bookmark.summary[:SUMMARY_CHARS]}"
            lines.append(line)
        listing = "\n\n".join(lines)

        return f"""Analyze these bookmarks and name the collection they form.

Bookmarks:
{listing}

Return:
- name: a short, descriptive name (2-5 words) capturing the common theme
- description: one sentence describing what these bookmarks are about"""

    async def name_group(self, bookmarks: list[Bookmark]) -> ClusterName:
        """Ask the LLM for a name; fall back to the most common title word."""
        try:
            result = await self.llm.complete(
                self._build_prompt(bookmarks),
                response_format=ClusterName,
                system_prompt=NAMING_SYSTEM_PROMPT,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            name = result.name.strip()
            if name:
                return ClusterName(
                    name=name,
                    description=result.description.strip()
                    or "A collection of related bookmarks",
                )
        except Exception as e:
            logger.warning(f"Cluster naming failed, using title words instead: {e}")

        return self.fallback_name(bookmarks)

    def fallback_name(self, bookmarks: list[Bookmark]) -> ClusterName:
        words = Counter(
            word
            for bookmark in bookmarks[:REPRESENTATIVE_LIMIT]
            for word in re.findall(r"[\w+#.-]+", bookmark.title)
            if len(word) > 3
        )
        top_word = words.most_common(1)[0][0] if words else "Bookmarks"
        return ClusterName(
            name=f"{top_word} Cluster",
            description=f"Collection of {len(bookmarks)} related bookmarks",
        )
