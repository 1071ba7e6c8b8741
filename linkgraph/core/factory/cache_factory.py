"""
Factory for creating cache backends.
"""

from linkgraph.config import CacheConfig
from linkgraph.core.cache.base import CacheBackend
from linkgraph.core.cache.memory import InMemoryCacheBackend
from linkgraph.core.cache.redis_cache import RedisCacheBackend
from linkgraph.utils.exceptions import ConfigurationError


class CacheBackendFactory:
    """Factory for creating cache backends from configuration."""

    @staticmethod
    def create(config: CacheConfig) -> CacheBackend:
        """
        Create cache backend from configuration.

        Args:
            config: Cache configuration

        Returns:
            Cache backend instance

        Raises:
            ConfigurationError: If backend is not supported
        """
        if config.backend == "memory":
            return InMemoryCacheBackend()
        elif config.backend == "redis":
            return RedisCacheBackend.from_url(config.redis_url, key_prefix=config.key_prefix)
        else:
            raise ConfigurationError(
                f"Unsupported cache backend: {config.backend}", {"backend": config.backend}
            )
