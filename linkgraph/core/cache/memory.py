"""
In-process cache backend.
"""

import time
from collections.abc import Callable

from linkgraph.core.cache.base import CacheBackend


class InMemoryCacheBackend(CacheBackend):
    """
    Dict-backed TTL cache for a single process.

    Expired entries are dropped lazily on read and when counting.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None

        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (self._clock() + ttl, value)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def count_prefix(self, prefix: str) -> int:
        self._purge_expired()
        return sum(1 for key in self._entries if key.startswith(prefix))

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
