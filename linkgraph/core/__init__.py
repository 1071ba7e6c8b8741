"""
Core building blocks: normalization, graph storage, caching, LLM
providers, neighbor search and 2D projection.
"""
