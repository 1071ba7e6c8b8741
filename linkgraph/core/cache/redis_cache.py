"""
Redis cache backend using redis.asyncio.

Shared across processes, so invalidations issued by a pipeline worker
are seen by every API process.
"""

import re

import redis.asyncio as redis

from linkgraph.core.cache.base import CacheBackend

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")

SCAN_BATCH_SIZE = 500


def escape_glob(text: str) -> str:
    """Escape Redis MATCH wildcards so user ids are matched literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisCacheBackend(CacheBackend):
    """Redis-backed TTL cache; every key is stored under key_prefix."""

    def __init__(self, client: redis.Redis, key_prefix: str = "graph:"):
        """
        Args:
            client: redis.asyncio client created with decode_responses=True
            key_prefix: Prefix isolating LinkGraph keys inside the database
        """
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "graph:") -> "RedisCacheBackend":
        return cls(redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def get(self, key: str) -> str | None:
        return await self.client.get(self.key_prefix + key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self.client.set(self.key_prefix + key, value, ex=ttl)

    async def delete_prefix(self, prefix: str) -> int:
        pattern = escape_glob(self.key_prefix + prefix) + "*"
        deleted = 0
        batch: list[str] = []

        async for key in self.client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= SCAN_BATCH_SIZE:
                deleted += await self.client.delete(*batch)
                batch = []

        if batch:
            deleted += await self.client.delete(*batch)

        return deleted

    async def count_prefix(self, prefix: str) -> int:
        pattern = escape_glob(self.key_prefix + prefix) + "*"
        count = 0
        async for _ in self.client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
            count += 1
        return count

    async def close(self) -> None:
        await self.client.aclose()
