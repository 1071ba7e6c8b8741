"""
Factory modules for creating LinkGraph components.

Provides modular factories for the LLM, the graph store and the cache backend.
"""

from linkgraph.core.factory.cache_factory import CacheBackendFactory
from linkgraph.core.factory.graph_factory import GraphStoreFactory
from linkgraph.core.factory.llm_factory import LLMFactory

__all__ = [
    "LLMFactory",
    "GraphStoreFactory",
    "CacheBackendFactory",
]
