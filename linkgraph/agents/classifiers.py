"""
Entity and concept classifiers.

A classifier is the external collaborator an extraction agent calls:
text in, raw candidates out. Output is untrusted; the agents normalize,
deduplicate and validate it before anything reaches the graph store.
"""

from abc import ABC, abstractmethod

from linkgraph.core.llm.base import LLMProvider
from linkgraph.models.extraction import (
    ConceptCandidate,
    ConceptCandidates,
    EntityCandidate,
    EntityCandidates,
)

ENTITY_SYSTEM_PROMPT = (
    "You identify named entities in technical and business content. "
    "Return only clear, specific entities that are central to the content."
)

CONCEPT_SYSTEM_PROMPT = (
    "You identify abstract concepts and organize them into topic hierarchies. "
    "Return only meaningful concepts that help group related content."
)


class EntityClassifier(ABC):
    @abstractmethod
    async def classify(self, text: str) -> list[EntityCandidate]:
        """Propose (text, type, context) entity candidates for text."""
        pass


class ConceptClassifier(ABC):
    @abstractmethod
    async def classify(
        self, text: str, embedding: list[float] | None = None
    ) -> list[ConceptCandidate]:
        """Propose (name, parent, relevance) concept candidates for text."""
        pass


class LLMEntityClassifier(EntityClassifier):
    """Entity classifier backed by an LLM with structured output."""

    def __init__(
        self,
        llm: LLMProvider,
        max_content_chars: int = 4000,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ):
        self.llm = llm
        self.max_content_chars = max_content_chars
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_prompt(self, text: str) -> str:
        return f"""Extract the key named entities from the content below.

Entity types:
- person: authors, researchers, founders, other notable people
- company: companies, organizations, institutions
- technology: languages, frameworks, libraries, databases, platforms
- product: software products, apps, hosted services
- location: cities, countries, regions (only when relevant to the topic)

Content:
\"\"\"
{text[: self.max_content_chars]}
\"\"\"

For every entity return:
- text: the name exactly as written in the content
- type: one of person, company, technology, product, location
- context: a short snippet (under 50 characters) around the mention

Skip generic words such as "user", "system" or "data" unless they name a
specific product or technology."""

    async def classify(self, text: str) -> list[EntityCandidate]:
        result = await self.llm.complete(
            self._build_prompt(text),
            response_format=EntityCandidates,
            system_prompt=ENTITY_SYSTEM_PROMPT,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return result.entities


class LLMConceptClassifier(ConceptClassifier):
    """Concept classifier backed by an LLM with structured output."""

    def __init__(
        self,
        llm: LLMProvider,
        max_content_chars: int = 4000,
        temperature: float = 0.2,
        max_tokens: int = 800,
    ):
        self.llm = llm
        self.max_content_chars = max_content_chars
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_prompt(self, text: str) -> str:
        return f"""Identify the main concepts and topics of the content below.

Content:
\"\"\"
{text[: self.max_content_chars]}
\"\"\"

For every concept return:
- name: a concise name of 2-4 words (e.g. "Machine Learning", "React Hooks")
- parent: the broader concept it belongs to, if it is a subtopic of another
  concept in your list, otherwise null
- relevance: 0-1, how central the concept is to the content

Guidelines:
- Return 3 to 8 concepts
- Prefer abstract topics; people and companies are handled separately
- Build parent links only between concepts you return"""

    async def classify(
        self, text: str, embedding: list[float] | None = None
    ) -> list[ConceptCandidate]:
        result = await self.llm.complete(
            self._build_prompt(text),
            response_format=ConceptCandidates,
            system_prompt=CONCEPT_SYSTEM_PROMPT,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return result.concepts
