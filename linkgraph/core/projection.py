"""
2D projection of bookmark embeddings for graph visualisation.
"""

import asyncio
from abc import ABC, abstractmethod

import numpy as np
from sklearn.decomposition import PCA

from linkgraph.models.query import BookmarkPosition


class Projector(ABC):
    """Collaborator mapping (bookmark id, embedding) pairs onto a plane."""

    @abstractmethod
    async def project_2d(self, items: list[tuple[str, list[float]]]) -> list[BookmarkPosition]:
        pass


class PCAProjector(Projector):
    """
    Project with scikit-learn PCA and scale each axis into [-1, 1].

    Fewer than two points have nothing to spread out and land on the origin.
    """

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    async def project_2d(self, items: list[tuple[str, list[float]]]) -> list[BookmarkPosition]:
        if len(items) < 2:
            return [BookmarkPosition(bookmark_id=item_id, x=0.0, y=0.0) for item_id, _ in items]

        coords = await asyncio.to_thread(self._fit, [embedding for _, embedding in items])
        return [
            BookmarkPosition(bookmark_id=item_id, x=float(x), y=float(y))
            for (item_id, _), (x, y) in zip(items, coords, strict=True)
        ]

    def _fit(self, embeddings: list[list[float]]) -> np.ndarray:
        matrix = np.array(embeddings, dtype=float)
        n_components = min(2, matrix.shape[0], matrix.shape[1])

        coords = PCA(n_components=n_components, random_state=self.random_state).fit_transform(
            matrix
        )
        if coords.shape[1] < 2:
            coords = np.hstack([coords, np.zeros((coords.shape[0], 2 - coords.shape[1]))])

        extent = np.abs(coords).max(axis=0)
        extent[extent == 0] = 1.0
        return coords / extent
