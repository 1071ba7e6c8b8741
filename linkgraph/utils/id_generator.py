"""
ID generation utilities for LinkGraph.

Graph rows get random prefixed ids:
- Entities: ent_xxx
- Concepts: con_xxx
- Relationships: rel_xxx
- Clusters: clu_xxx
- Workers: wrk_xxx

Job ids are deterministic per (family, bookmark) so enqueueing the same
bookmark twice collapses onto one job row.
"""

from uuid import uuid4


def _short_hex() -> str:
    return uuid4().hex[:12]


def generate_entity_id() -> str:
    """Generate unique Entity ID ("ent_" + 12 hex characters)."""
    return f"ent_{_short_hex()}"


def generate_concept_id() -> str:
    """Generate unique Concept ID ("con_" + 12 hex characters)."""
    return f"con_{_short_hex()}"


def generate_relationship_id() -> str:
    """Generate unique Relationship ID ("rel_" + 12 hex characters)."""
    return f"rel_{_short_hex()}"


def generate_cluster_id() -> str:
    """Generate unique Cluster ID ("clu_" + 12 hex characters)."""
    return f"clu_{_short_hex()}"


def generate_worker_id() -> str:
    """Generate unique worker identity used as the lease owner."""
    return f"wrk_{_short_hex()}"


def generate_job_id(family: str, bookmark_id: str) -> str:
    """
    Build the deduplicating job ID for a bookmark in a job family.

    Args:
        family: Job family value (e.g. "entity")
        bookmark_id: Bookmark the job processes

    Returns:
        ID in format "family-bookmark_id"
    """
    return f"{family}-{bookmark_id}"
