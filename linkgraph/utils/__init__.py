"""Utility modules for LinkGraph."""

from linkgraph.utils.exceptions import (
    CacheError,
    ConfigurationError,
    GraphStoreError,
    JobQueueError,
    LeaseLostError,
    LinkGraphError,
    LLMError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from linkgraph.utils.id_generator import (
    generate_cluster_id,
    generate_concept_id,
    generate_entity_id,
    generate_job_id,
    generate_relationship_id,
    generate_worker_id,
)
from linkgraph.utils.logger import get_logger, setup_logging

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    # ID Generators
    "generate_entity_id",
    "generate_concept_id",
    "generate_relationship_id",
    "generate_cluster_id",
    "generate_worker_id",
    "generate_job_id",
    # Exceptions
    "LinkGraphError",
    "StoreError",
    "GraphStoreError",
    "JobQueueError",
    "LeaseLostError",
    "CacheError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "LLMError",
]
