"""
Graph pipeline: turns a bookmark into entity, concept and similarity jobs.

Three job families run in their own worker pools, so entity extraction,
concept analysis and similarity for the same bookmark never wait on each
other. Handlers only call the agents' idempotent upsert paths, which makes
re-delivery after an expired lease harmless.
"""

import asyncio

from linkgraph.agents.concept_analyzer import ConceptAnalyzer
from linkgraph.agents.entity_extractor import EntityExtractor
from linkgraph.agents.similarity import SimilarityComputer
from linkgraph.config import PipelineConfig
from linkgraph.models.jobs import Job, JobFamily, QueueMetrics
from linkgraph.models.query import ExtractAndSaveResult
from linkgraph.pipeline.job_queue import JobQueue
from linkgraph.pipeline.worker import WorkerPool
from linkgraph.utils.exceptions import ValidationError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

# Higher runs first.
EXTRACTION_PRIORITY = 70
SIMILARITY_PRIORITY = 80


class GraphPipeline:
    """Job producer plus the three per-family worker pools."""

    def __init__(
        self,
        queue: JobQueue,
        entity_extractor: EntityExtractor,
        concept_analyzer: ConceptAnalyzer,
        similarity_computer: SimilarityComputer,
        config: PipelineConfig | None = None,
    ):
        self.queue = queue
        self.entity_extractor = entity_extractor
        self.concept_analyzer = concept_analyzer
        self.similarity_computer = similarity_computer
        self.config = config or PipelineConfig()

        lease_durations = {
            JobFamily.ENTITY: self.config.entity_lease_duration,
            JobFamily.CONCEPT: self.config.concept_lease_duration,
            JobFamily.SIMILARITY: self.config.similarity_lease_duration,
        }
        handlers = {
            JobFamily.ENTITY: self._handle_entity_job,
            JobFamily.CONCEPT: self._handle_concept_job,
            JobFamily.SIMILARITY: self._handle_similarity_job,
        }

        self.pools: dict[JobFamily, WorkerPool] = {
            family: WorkerPool(
                queue,
                family,
                handlers[family],
                concurrency=self.config.concurrency,
                lease_duration=lease_durations[family],
                renew_interval=self.config.lease_renew_interval,
                backoff_delay=self.config.backoff_delay,
                poll_interval=self.config.poll_interval,
                job_timeout=self.config.job_timeout,
            )
            for family in JobFamily
        }

    # ═══════════════════════════════════════════════════════════
    # PRODUCER
    # ═══════════════════════════════════════════════════════════

    async def enqueue_bookmark(
        self,
        bookmark_id: str,
        user_id: str,
        content: str,
        embedding: list[float] | None = None,
    ) -> list[Job]:
        """
        Queue graph work for a bookmark.

        Entity and concept jobs are always queued; the similarity job only
        when the bookmark has an embedding to compare.

        Returns:
            The queued (or already queued) jobs
        """
        if not content or not content.strip():
            raise ValidationError(
                "Bookmark content must not be empty", {"bookmark_id": bookmark_id}
            )

        jobs = [
            await self.queue.enqueue(
                JobFamily.ENTITY,
                bookmark_id,
                user_id,
                {"content": content},
                priority=EXTRACTION_PRIORITY,
            ),
            await self.queue.enqueue(
                JobFamily.CONCEPT,
                bookmark_id,
                user_id,
                {"content": content, "embedding": embedding},
                priority=EXTRACTION_PRIORITY,
            ),
        ]
        if embedding:
            jobs.append(
                await self.queue.enqueue(
                    JobFamily.SIMILARITY,
                    bookmark_id,
                    user_id,
                    priority=SIMILARITY_PRIORITY,
                )
            )

        logger.info(f"Queued {len(jobs)} graph jobs for bookmark {bookmark_id}")
        return jobs

    async def extract_and_save(
        self, content: str, bookmark_id: str, user_id: str
    ) -> ExtractAndSaveResult:
        """Run entity extraction and concept analysis in-process, bypassing the queue."""
        entities_saved, concepts_saved = await asyncio.gather(
            self.entity_extractor.extract_and_save(content, bookmark_id, user_id),
            self.concept_analyzer.analyze_and_save(content, bookmark_id, user_id),
        )
        return ExtractAndSaveResult(
            bookmark_id=bookmark_id,
            entities_saved=entities_saved,
            concepts_saved=concepts_saved,
        )

    # ═══════════════════════════════════════════════════════════
    # HANDLERS
    # ═══════════════════════════════════════════════════════════

    async def _handle_entity_job(self, job: Job) -> int:
        return await self.entity_extractor.extract_and_save(
            job.payload.get("content", ""), job.bookmark_id, job.user_id
        )

    async def _handle_concept_job(self, job: Job) -> int:
        return await self.concept_analyzer.analyze_and_save(
            job.payload.get("content", ""),
            job.bookmark_id,
            job.user_id,
            embedding=job.payload.get("embedding"),
        )

    async def _handle_similarity_job(self, job: Job) -> int:
        return await self.similarity_computer.compute_and_save(job.bookmark_id, job.user_id)

    # ═══════════════════════════════════════════════════════════
    # LIFECYCLE & ADMINISTRATION
    # ═══════════════════════════════════════════════════════════

    def start(self) -> None:
        for pool in self.pools.values():
            pool.start()

    async def stop(self) -> None:
        await asyncio.gather(*(pool.stop() for pool in self.pools.values()))

    async def run_until_idle(self) -> dict[str, int]:
        """Drain all runnable jobs in every family; returns processed counts per family."""
        counts = await asyncio.gather(*(pool.run_until_idle() for pool in self.pools.values()))
        return {family.value: count for family, count in zip(self.pools, counts, strict=True)}

    async def get_metrics(self) -> dict[str, QueueMetrics]:
        return {family.value: await self.queue.metrics(family) for family in JobFamily}

    async def get_job(self, job_id: str) -> Job | None:
        return await self.queue.get_job(job_id)

    async def retry_job(self, job_id: str) -> Job:
        return await self.queue.requeue(job_id)
