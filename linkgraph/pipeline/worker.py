"""
Bounded worker pool for one job family.

Each worker loops claim -> handle -> complete/fail. While the handler runs
a heartbeat task renews the lease every renew_interval seconds; if the
lease is lost (the job was re-claimed elsewhere after expiry) the worker
logs it and drops its result. A handler running longer than job_timeout
is cancelled and the attempt recorded as failed.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from linkgraph.models.jobs import Job, JobFamily
from linkgraph.pipeline.job_queue import JobQueue
from linkgraph.utils.exceptions import LeaseLostError
from linkgraph.utils.id_generator import generate_worker_id
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[object]]


class WorkerPool:
    """Runs up to `concurrency` jobs of one family at a time."""

    def __init__(
        self,
        queue: JobQueue,
        family: JobFamily,
        handler: JobHandler,
        concurrency: int = 3,
        lease_duration: float = 300.0,
        renew_interval: float = 30.0,
        backoff_delay: float = 2.0,
        poll_interval: float = 1.0,
        job_timeout: float | None = None,
    ):
        self.queue = queue
        self.family = JobFamily(family)
        self.handler = handler
        self.concurrency = concurrency
        self.lease_duration = lease_duration
        self.renew_interval = renew_interval
        self.backoff_delay = backoff_delay
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout

        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def process_next(self, worker_id: str | None = None) -> Job | None:
        """
        Claim and run a single job.

        Returns:
            The claimed job (as claimed), or None if nothing was runnable
        """
        worker_id = worker_id or generate_worker_id()
        job = await self.queue.claim(self.family, worker_id, self.lease_duration)
        if job is None:
            return None

        job_log = get_logger(__name__, job_id=job.id, worker_id=worker_id)
        job_log.debug(f"Claimed by worker {worker_id} (attempt {job.attempts})")
        heartbeat = asyncio.create_task(self._heartbeat(job.id, worker_id))

        try:
            await self._run_handler(job)
        except Exception as e:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            try:
                await self.queue.fail(
                    job.id, worker_id, str(e) or type(e).__name__, self.backoff_delay
                )
            except LeaseLostError:
                job_log.warning("Lease lost before failure could be recorded")
            return job
        except asyncio.CancelledError:
            heartbeat.cancel()
            raise

        heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeat

        try:
            await self.queue.complete(job.id, worker_id)
            job_log.info("Job completed")
        except LeaseLostError:
            job_log.warning("Lease lost before completion, result discarded")

        return job

    async def _run_handler(self, job: Job) -> None:
        if self.job_timeout is None:
            await self.handler(job)
            return

        try:
            await asyncio.wait_for(self.handler(job), timeout=self.job_timeout)
        except TimeoutError as e:
            raise TimeoutError(f"Job {job.id} timed out after {self.job_timeout}s") from e

    async def _heartbeat(self, job_id: str, worker_id: str) -> None:
        while True:
            await asyncio.sleep(self.renew_interval)
            try:
                await self.queue.renew(job_id, worker_id, self.lease_duration)
            except LeaseLostError:
                logger.warning(f"Worker {worker_id} lost lease on {job_id}")
                return
            except Exception as e:
                logger.warning(f"Lease renewal for {job_id} failed: {e}")

    async def run_until_idle(self) -> int:
        """
        Drain every job that is runnable now, `concurrency` at a time.

        Jobs rescheduled with a backoff are not waited for.

        Returns:
            Number of jobs processed
        """
        processed = 0
        while True:
            results = await asyncio.gather(
                *(self.process_next() for _ in range(self.concurrency))
            )
            claimed = sum(1 for job in results if job is not None)
            processed += claimed
            if claimed == 0:
                return processed

    # ═══════════════════════════════════════════════════════════
    # BACKGROUND MODE
    # ═══════════════════════════════════════════════════════════

    def start(self) -> None:
        if self._tasks:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(generate_worker_id()))
            for _ in range(self.concurrency)
        ]
        logger.info(f"Started {self.concurrency} {self.family.value} workers")

    async def stop(self) -> None:
        if not self._tasks:
            return
        self._stopping.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info(f"Stopped {self.family.value} workers")

    async def _worker_loop(self, worker_id: str) -> None:
        while not self._stopping.is_set():
            try:
                job = await self.process_next(worker_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Worker {worker_id} error: {e}")
                job = None

            if job is None:
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
