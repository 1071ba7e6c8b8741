"""Services: graph queries and engine composition."""

from linkgraph.services.engine import GraphEngine
from linkgraph.services.graph_service import GraphService

__all__ = ["GraphEngine", "GraphService"]
