"""
Tests for entity and concept name normalization.
"""

import pytest

from linkgraph.core.normalizer import (
    count_mentions,
    map_entity_type,
    normalize,
    normalize_concept,
    to_title_case,
)
from linkgraph.models.graph import EntityType


@pytest.mark.unit
class TestNormalize:
    """Test entity normalization rules."""

    def test_person_is_title_cased(self):
        result = normalize("  ada   LOVELACE ", EntityType.PERSON)

        assert result.display == "Ada Lovelace"
        assert result.key == "ada lovelace"

    def test_location_is_title_cased(self):
        assert normalize("san francisco", EntityType.LOCATION).display == "San Francisco"

    @pytest.mark.parametrize(
        "entity_type", [EntityType.COMPANY, EntityType.TECHNOLOGY, EntityType.PRODUCT]
    )
    def test_other_types_keep_casing(self, entity_type):
        """Display keeps the mention, key is lower case."""
        result = normalize("OpenAI", entity_type)

        assert result.display == "OpenAI"
        assert result.key == "openai"

    def test_case_variants_share_key(self):
        assert (
            normalize("React", EntityType.TECHNOLOGY).key
            == normalize("react", EntityType.TECHNOLOGY).key
        )

    @pytest.mark.parametrize("name", ["", "x", " ", None])
    def test_too_short_rejected(self, name):
        assert normalize(name, EntityType.TECHNOLOGY) is None

    @pytest.mark.parametrize("name", ["user", "System", "DATA", "api"])
    def test_generic_terms_rejected(self, name):
        assert normalize(name, EntityType.TECHNOLOGY) is None

    def test_free_text_type_accepted(self):
        assert normalize("grace hopper", "people").display == "Grace Hopper"


@pytest.mark.unit
class TestNormalizeConcept:
    """Test concept normalization rules."""

    def test_collapses_whitespace_and_lowercases_key(self):
        result = normalize_concept("Machine   Learning")

        assert result.display == "Machine Learning"
        assert result.key == "machine learning"

    @pytest.mark.parametrize("name", ["topic", "Concept", "information", "stuff"])
    def test_generic_terms_rejected(self, name):
        assert normalize_concept(name) is None

    def test_short_rejected(self):
        assert normalize_concept("a") is None


@pytest.mark.unit
class TestMapEntityType:
    """Test mapping free-text classifier types onto EntityType."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("person", EntityType.PERSON),
            ("People", EntityType.PERSON),
            ("organization", EntityType.COMPANY),
            ("org", EntityType.COMPANY),
            ("framework", EntityType.TECHNOLOGY),
            ("language", EntityType.TECHNOLOGY),
            ("service", EntityType.PRODUCT),
            ("app", EntityType.PRODUCT),
            ("city", EntityType.LOCATION),
            (" Country ", EntityType.LOCATION),
        ],
    )
    def test_aliases(self, raw, expected):
        assert map_entity_type(raw) == expected

    @pytest.mark.parametrize("raw", ["unknown", "", None])
    def test_fallback_is_technology(self, raw):
        assert map_entity_type(raw) == EntityType.TECHNOLOGY

    def test_enum_passthrough(self):
        assert map_entity_type(EntityType.COMPANY) == EntityType.COMPANY


@pytest.mark.unit
class TestHelpers:
    def test_count_mentions_case_insensitive(self):
        assert count_mentions("React", "React hooks make react simpler. REACT!") == 3

    def test_count_mentions_escapes_regex(self):
        assert count_mentions("C++", "C++ and c++ but not C") == 2

    def test_count_mentions_empty(self):
        assert count_mentions("", "anything") == 0

    def test_to_title_case(self):
        assert to_title_case("mcDONALD o'neil") == "Mcdonald O'neil"
