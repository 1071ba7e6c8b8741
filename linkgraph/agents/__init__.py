"""
Extraction agents.

- EntityExtractor: named entities + bookmark -> entity "mentions" edges
- ConceptAnalyzer: concepts, "about" edges and the concept hierarchy
- SimilarityComputer: symmetric bookmark <-> bookmark "similar_to" edges
- ClusterGenerator: k-means clusters of bookmark embeddings, named by the LLM
- LLMEntityClassifier / LLMConceptClassifier: LLM-backed collaborators
"""

from linkgraph.agents.classifiers import (
    ConceptClassifier,
    EntityClassifier,
    LLMConceptClassifier,
    LLMEntityClassifier,
)
from linkgraph.agents.cluster_generator import ClusterGenerator
from linkgraph.agents.concept_analyzer import ConceptAnalyzer
from linkgraph.agents.entity_extractor import EntityExtractor
from linkgraph.agents.similarity import SimilarityComputer

__all__ = [
    "EntityClassifier",
    "ConceptClassifier",
    "LLMEntityClassifier",
    "LLMConceptClassifier",
    "EntityExtractor",
    "ConceptAnalyzer",
    "SimilarityComputer",
    "ClusterGenerator",
]
