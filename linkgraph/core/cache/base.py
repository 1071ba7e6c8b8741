"""
Base interface for cache backends.

Backends are plain key/value stores for serialized strings with a
per-entry TTL and prefix-scoped deletion. Namespacing, serialization and
hit/miss accounting live in GraphCache.
"""

from abc import ABC, abstractmethod


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store value under key for ttl seconds."""
        pass

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix; returns how many were removed."""
        pass

    @abstractmethod
    async def count_prefix(self, prefix: str) -> int:
        """Count live keys starting with prefix."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass
