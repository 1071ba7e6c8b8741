"""
Graph engine: wires every component together.

Brings together:
- LLM provider and the entity/concept classifiers built on it
- Graph store, job queue and cache service
- Extraction agents, cluster generator, job pipeline and graph query service
"""

from linkgraph.agents.classifiers import LLMConceptClassifier, LLMEntityClassifier
from linkgraph.agents.cluster_generator import ClusterGenerator
from linkgraph.agents.concept_analyzer import ConceptAnalyzer
from linkgraph.agents.entity_extractor import EntityExtractor
from linkgraph.agents.similarity import SimilarityComputer
from linkgraph.config import Config
from linkgraph.core.cache.base import CacheBackend
from linkgraph.core.cache.graph_cache import GraphCache
from linkgraph.core.factory import CacheBackendFactory, GraphStoreFactory, LLMFactory
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.llm.base import LLMProvider
from linkgraph.core.neighbors import HybridNeighborSearch
from linkgraph.pipeline.graph_pipeline import GraphPipeline
from linkgraph.pipeline.job_queue import JobQueue
from linkgraph.services.graph_service import GraphService
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class GraphEngine:
    """
    Owns the lifecycle of the knowledge graph components.

    The cache service is constructed here and handed to every component
    that reads or invalidates it; nothing holds it as a module global.
    """

    def __init__(
        self,
        llm: LLMProvider,
        graph_store: GraphStore,
        cache_backend: CacheBackend,
        config: Config,
        job_queue: JobQueue | None = None,
    ):
        """
        Initialize Graph Engine.

        Args:
            llm: LLM provider behind the entity and concept classifiers
            graph_store: Graph store (source of truth)
            cache_backend: Storage for the graph cache
            config: Configuration object
            job_queue: Job queue (default: SQLite queue in the store's database file)
        """
        self.llm = llm
        self.graph_store = graph_store
        self.config = config

        self.cache = GraphCache(cache_backend, config.cache.ttls())
        self.job_queue = job_queue or JobQueue(
            db_path=config.store.db_path,
            max_attempts=config.pipeline.max_attempts,
            busy_timeout=config.store.busy_timeout,
        )

        extraction = config.extraction
        self.entity_extractor = EntityExtractor(
            LLMEntityClassifier(
                llm,
                max_content_chars=extraction.max_content_chars,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
            ),
            graph_store,
            self.cache,
            confidence=extraction.entity_confidence,
        )
        self.concept_analyzer = ConceptAnalyzer(
            LLMConceptClassifier(llm, max_content_chars=extraction.max_content_chars),
            graph_store,
            self.cache,
            default_relevance=extraction.default_concept_relevance,
            confidence=extraction.entity_confidence,
        )
        self.similarity_computer = SimilarityComputer(
            HybridNeighborSearch(graph_store, config.similarity),
            graph_store,
            self.cache,
            threshold=config.similarity.threshold,
            limit=config.similarity.limit,
        )

        self.pipeline = GraphPipeline(
            self.job_queue,
            self.entity_extractor,
            self.concept_analyzer,
            self.similarity_computer,
            config.pipeline,
        )
        clustering = config.clustering
        self.cluster_generator = ClusterGenerator(
            llm,
            graph_store,
            self.cache,
            min_cluster_size=clustering.min_cluster_size,
            max_clusters=clustering.max_clusters,
            random_state=clustering.random_state,
            temperature=clustering.temperature,
            max_tokens=clustering.max_tokens,
        )

        self.service = GraphService(
            graph_store,
            self.cache,
            pipeline=self.pipeline,
            cluster_generator=self.cluster_generator,
        )

    @classmethod
    def from_config(cls, config: Config) -> "GraphEngine":
        """Create every component from configuration using the factories."""
        logger.info(
            f"Configuration: LLM={config.llm.provider}/{config.llm.model}, "
            f"Store={config.store.db_path}, Cache={config.cache.backend}"
        )
        return cls(
            llm=LLMFactory.create(config.llm),
            graph_store=GraphStoreFactory.create(config.store),
            cache_backend=CacheBackendFactory.create(config.cache),
            config=config,
        )

    async def initialize(self, start_workers: bool = True) -> None:
        """Create schemas and (optionally) start the worker pools."""
        logger.info("Initializing Graph Engine")

        await self.graph_store.initialize()
        logger.info("Graph store initialized")

        await self.job_queue.initialize()
        logger.info("Job queue initialized")

        if start_workers:
            self.pipeline.start()
            logger.info("Worker pools started")

        logger.info("Graph Engine ready")

    async def close(self) -> None:
        """Stop workers and close all connections."""
        logger.info("Shutting down Graph Engine")

        await self.pipeline.stop()
        await self.job_queue.close()
        await self.graph_store.close()
        await self.cache.close()
        await self.llm.close()

        logger.info("Graph Engine shutdown complete")
