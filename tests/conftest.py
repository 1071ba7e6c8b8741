"""
Shared test fixtures.

The SQLite store and job queue run against a database file in tmp_path;
the graph cache uses the in-memory backend with an injectable clock.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest

from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.cache.memory import InMemoryCacheBackend
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from linkgraph.models.graph import Bookmark, utcnow
from linkgraph.pipeline.job_queue import JobQueue

USER = "user-1"
OTHER_USER = "user-2"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_bookmark(bookmark_id: str, user_id: str = USER, days_ago: float = 0, **kwargs) -> Bookmark:
    """Create a bookmark with sensible defaults."""
    return Bookmark(
        id=bookmark_id,
        user_id=user_id,
        url=kwargs.pop("url", f"https://example.com/{bookmark_id}"),
        title=kwargs.pop("title", f"Bookmark {bookmark_id}"),
        created_at=utcnow() - timedelta(days=days_ago),
        **kwargs,
    )


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "graph.db")


@pytest.fixture
async def store(db_path) -> AsyncGenerator[SQLiteGraphStore, None]:
    """Initialized SQLite graph store."""
    graph_store = SQLiteGraphStore(db_path=db_path)
    await graph_store.initialize()
    yield graph_store
    await graph_store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_backend(clock) -> InMemoryCacheBackend:
    return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(cache_backend) -> GraphCache:
    return GraphCache(cache_backend)


@pytest.fixture
async def job_queue(db_path, clock) -> AsyncGenerator[JobQueue, None]:
    """Initialized job queue sharing the store's database file."""
    queue = JobQueue(db_path=db_path, max_attempts=3, clock=clock)
    await queue.initialize()
    yield queue
    await queue.close()
