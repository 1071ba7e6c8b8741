"""
Tests for ID generation utilities.

Tests cover:
1. Prefixed random IDs for graph rows
2. Worker IDs
3. Deterministic job IDs
4. Uniqueness guarantees
"""

import pytest

from linkgraph.utils import (
    generate_cluster_id,
    generate_concept_id,
    generate_entity_id,
    generate_job_id,
    generate_relationship_id,
    generate_worker_id,
)


@pytest.mark.unit
class TestPrefixedIds:
    """Tests for random, prefixed row IDs."""

    @pytest.mark.parametrize(
        "generator,prefix",
        [
            (generate_entity_id, "ent_"),
            (generate_concept_id, "con_"),
            (generate_relationship_id, "rel_"),
            (generate_cluster_id, "clu_"),
            (generate_worker_id, "wrk_"),
        ],
    )
    def test_format(self, generator, prefix):
        """Test ID format: prefix + 12 hex chars."""
        generated = generator()

        assert generated.startswith(prefix)
        assert len(generated) == len(prefix) + 12
        int(generated[len(prefix) :], 16)

    def test_uniqueness(self):
        """Test that generated IDs are unique."""
        ids = [generate_entity_id() for _ in range(1000)]
        assert len(ids) == len(set(ids))


@pytest.mark.unit
class TestGenerateJobId:
    """Tests for deduplicating job IDs."""

    def test_format(self):
        assert generate_job_id("entity", "bm-1") == "entity-bm-1"

    def test_deterministic(self):
        """Same family and bookmark always yield the same ID."""
        assert generate_job_id("similarity", "bm-9") == generate_job_id("similarity", "bm-9")

    def test_families_differ(self):
        assert generate_job_id("entity", "bm-1") != generate_job_id("concept", "bm-1")
