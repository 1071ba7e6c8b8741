"""LinkGraph: knowledge graph construction and query pipeline for bookmarks."""

__version__ = "0.1.0"
