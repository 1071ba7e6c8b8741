"""
Graph store implementations for LinkGraph.

Provides the abstract base and the SQLite implementation.
"""

from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore

__all__ = [
    "GraphStore",
    "SQLiteGraphStore",
]
