"""
Name normalization for entities and concepts.

Every candidate is reduced to a NormalizedName: a display form (casing
depends on entity type) and a lower-cased key. The key is what the graph
store uses for uniqueness, so "OpenAI" and "openai" collapse onto the same
row while keeping whichever display form was seen last.
"""

import re
from typing import NamedTuple

from linkgraph.models.graph import EntityType

MIN_NAME_LENGTH = 2

GENERIC_ENTITY_TERMS = frozenset(
    {
        "user",
        "system",
        "data",
        "code",
        "app",
        "software",
        "website",
        "api",
        "database",
        "server",
        "client",
    }
)

GENERIC_CONCEPT_TERMS = frozenset(
    {
        "topic",
        "concept",
        "idea",
        "thing",
        "stuff",
        "content",
        "information",
        "data",
    }
)

_TITLE_CASED_TYPES = frozenset({EntityType.PERSON, EntityType.LOCATION})

_ENTITY_TYPE_ALIASES: dict[str, EntityType] = {
    "person": EntityType.PERSON,
    "people": EntityType.PERSON,
    "company": EntityType.COMPANY,
    "organization": EntityType.COMPANY,
    "organisation": EntityType.COMPANY,
    "org": EntityType.COMPANY,
    "technology": EntityType.TECHNOLOGY,
    "tech": EntityType.TECHNOLOGY,
    "framework": EntityType.TECHNOLOGY,
    "library": EntityType.TECHNOLOGY,
    "language": EntityType.TECHNOLOGY,
    "product": EntityType.PRODUCT,
    "software": EntityType.PRODUCT,
    "app": EntityType.PRODUCT,
    "service": EntityType.PRODUCT,
    "location": EntityType.LOCATION,
    "place": EntityType.LOCATION,
    "city": EntityType.LOCATION,
    "country": EntityType.LOCATION,
}

_WHITESPACE = re.compile(r"\s+")


class NormalizedName(NamedTuple):
    display: str
    key: str


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def to_title_case(text: str) -> str:
    """Upper-case the first letter of each word and lower-case the rest."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))


def map_entity_type(raw_type: str | EntityType | None) -> EntityType:
    """Map a free-text type proposed by a classifier onto EntityType (default: technology)."""
    if isinstance(raw_type, EntityType):
        return raw_type
    if not raw_type:
        return EntityType.TECHNOLOGY
    return _ENTITY_TYPE_ALIASES.get(raw_type.strip().lower(), EntityType.TECHNOLOGY)


def normalize(raw_name: str | None, entity_type: EntityType | str) -> NormalizedName | None:
    """
    Canonicalize an entity mention.

    Args:
        raw_name: Mention text as proposed by the classifier
        entity_type: Entity type (or a free-text alias of one)

    Returns:
        NormalizedName, or None when the name is too short or generic
    """
    if not raw_name:
        return None

    name = collapse_whitespace(raw_name)
    if len(name) < MIN_NAME_LENGTH:
        return None
    if name.lower() in GENERIC_ENTITY_TERMS:
        return None

    entity_type = map_entity_type(entity_type)
    display = to_title_case(name) if entity_type in _TITLE_CASED_TYPES else name

    return NormalizedName(display=display, key=display.lower())


def normalize_concept(raw_name: str | None) -> NormalizedName | None:
    """Canonicalize a concept name. Concepts keep the mention as display and key on lower case."""
    if not raw_name:
        return None

    name = collapse_whitespace(raw_name)
    if len(name) < MIN_NAME_LENGTH:
        return None

    key = name.lower()
    if key in GENERIC_CONCEPT_TERMS:
        return None

    return NormalizedName(display=name, key=key)


def count_mentions(text: str, content: str) -> int:
    """Case-insensitive, non-overlapping substring count of text in content."""
    if not text or not content:
        return 0
    return len(re.findall(re.escape(text), content, flags=re.IGNORECASE))
