"""
Durable job queue with leases, stored in SQLite next to the graph.

Lifecycle of a job row:

    pending --claim--> active --complete--> completed
                         |
                         +--fail (attempts left)--> pending (run_at = now + backoff)
                         +--fail (no attempts left)--> failed
                         +--lease expired--> claimable again (or failed when
                                             the last attempt was the one lost)

Claiming is a single UPDATE ... RETURNING, so two workers can never hold
the same job; a worker that stops renewing loses the job once its lease
expires (at-least-once delivery).
"""

import json
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from linkgraph.models.graph import utcnow
from linkgraph.models.jobs import Job, JobFamily, JobStatus, QueueMetrics
from linkgraph.utils.exceptions import JobQueueError, LeaseLostError, NotFoundError
from linkgraph.utils.id_generator import generate_job_id
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS graph_jobs (
        id TEXT PRIMARY KEY,
        family TEXT NOT NULL,
        bookmark_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL,
        priority INTEGER NOT NULL DEFAULT 0,
        attempts INTEGER NOT NULL DEFAULT 0,
        max_attempts INTEGER NOT NULL,
        run_at REAL NOT NULL,
        lease_owner TEXT,
        lease_expires_at REAL,
        last_error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_graph_jobs_claim ON graph_jobs(family, status, run_at)",
]


class JobQueue:
    """
    SQLite-backed job queue shared by the three job families.

    Args:
        db_path: SQLite database file (may be the graph store's file)
        max_attempts: Attempts before a job is marked failed
        busy_timeout: Seconds to wait on a locked database
        clock: Wall-clock source in epoch seconds (injectable for tests)
    """

    def __init__(
        self,
        db_path: str = "data/linkgraph.db",
        max_attempts: int = 3,
        busy_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = db_path
        self.max_attempts = max_attempts
        self.busy_timeout = busy_timeout
        self.clock = clock
        self.connection: aiosqlite.Connection | None = None

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        if self.connection is None:
            self.connection = await aiosqlite.connect(
                self.db_path, timeout=self.busy_timeout, isolation_level=None
            )
            self.connection.row_factory = aiosqlite.Row

    async def initialize(self) -> None:
        await self.connect()
        await self.connection.execute("PRAGMA journal_mode = WAL")
        for statement in _SCHEMA:
            await self.connection.execute(statement)

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    async def _fetchall(self, query: str, params: tuple = ()) -> list[aiosqlite.Row]:
        await self.connect()
        try:
            cursor = await self.connection.execute(query, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise JobQueueError(f"Job queue query failed: {e}", {"query": query}) from e

    async def _fetchone(self, query: str, params: tuple = ()) -> aiosqlite.Row | None:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    # ═══════════════════════════════════════════════════════════
    # PRODUCER SIDE
    # ═══════════════════════════════════════════════════════════

    async def enqueue(
        self,
        family: JobFamily,
        bookmark_id: str,
        user_id: str,
        payload: dict[str, Any] | None = None,
        priority: int = 0,
        delay: float = 0.0,
    ) -> Job:
        """
        Add the (family, bookmark) job.

        Deduplicated on the job id: while the job is pending or active this
        is a no-op returning the existing job; a completed or failed job is
        reset to pending with fresh attempts.
        """
        family = JobFamily(family)
        job_id = generate_job_id(family.value, bookmark_id)
        now = utcnow().isoformat()

        row = await self._fetchone(
            """
            INSERT INTO graph_jobs (
                id, family, bookmark_id, user_id, payload, status, priority,
                attempts, max_attempts, run_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, 'pending', ?, 0, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                user_id = excluded.user_id,
                payload = excluded.payload,
                status = 'pending',
                priority = excluded.priority,
                attempts = 0,
                max_attempts = excluded.max_attempts,
                run_at = excluded.run_at,
                lease_owner = NULL,
                lease_expires_at = NULL,
                last_error = NULL,
                updated_at = excluded.updated_at
            WHERE graph_jobs.status IN ('completed', 'failed')
            RETURNING *
            """,
            (
                job_id,
                family.value,
                bookmark_id,
                user_id,
                json.dumps(payload or {}),
                priority,
                self.max_attempts,
                self.clock() + delay,
                now,
                now,
            ),
        )

        if row is None:
            logger.debug(f"Job {job_id} already queued, skipping duplicate")
            return await self.get_job(job_id)

        logger.debug(f"Enqueued job {job_id}")
        return self._row_to_job(row)

    async def requeue(self, job_id: str) -> Job:
        """
        Explicitly retry a failed job.

        Raises:
            NotFoundError: If the job doesn't exist
        """
        job = await self.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", {"job_id": job_id})

        return await self.enqueue(
            job.family, job.bookmark_id, job.user_id, job.payload, priority=job.priority
        )

    # ═══════════════════════════════════════════════════════════
    # CONSUMER SIDE
    # ═══════════════════════════════════════════════════════════

    async def claim(self, family: JobFamily, worker_id: str, lease_duration: float) -> Job | None:
        """
        Lease the next runnable job of a family to worker_id.

        Runnable means pending and due, or active with an expired lease.
        Expired jobs that already used their last attempt are failed first.
        """
        family = JobFamily(family)
        now = self.clock()
        stamp = utcnow().isoformat()

        abandoned = await self._fetchall(
            """
            UPDATE graph_jobs SET
                status = 'failed',
                last_error = COALESCE(last_error, 'lease expired on final attempt'),
                lease_owner = NULL,
                lease_expires_at = NULL,
                updated_at = ?
            WHERE family = ? AND status = 'active'
              AND lease_expires_at <= ? AND attempts >= max_attempts
            RETURNING id
            """,
            (stamp, family.value, now),
        )
        for row in abandoned:
            logger.error(f"Job {row['id']} failed: lease expired on its final attempt")

        row = await self._fetchone(
            """
            UPDATE graph_jobs SET
                status = 'active',
                lease_owner = ?,
                lease_expires_at = ?,
                attempts = attempts + 1,
                updated_at = ?
            WHERE id = (
                SELECT id FROM graph_jobs
                WHERE family = ?
                  AND ((status = 'pending' AND run_at <= ?)
                    OR (status = 'active' AND lease_expires_at <= ?))
                ORDER BY priority DESC, run_at, created_at
                LIMIT 1
            )
            RETURNING *
            """,
            (worker_id, now + lease_duration, stamp, family.value, now, now),
        )
        return self._row_to_job(row) if row else None

    async def renew(self, job_id: str, worker_id: str, lease_duration: float) -> float:
        """
        Extend the lease held by worker_id.

        Returns:
            New lease expiry (epoch seconds)

        Raises:
            LeaseLostError: If worker_id no longer holds the job
        """
        expires_at = self.clock() + lease_duration
        row = await self._fetchone(
            """
            UPDATE graph_jobs SET lease_expires_at = ?, updated_at = ?
            WHERE id = ? AND status = 'active' AND lease_owner = ?
            RETURNING lease_expires_at
            """,
            (expires_at, utcnow().isoformat(), job_id, worker_id),
        )
        if row is None:
            raise LeaseLostError(
                f"Lease on job {job_id} lost", {"job_id": job_id, "worker_id": worker_id}
            )
        return row["lease_expires_at"]

    async def complete(self, job_id: str, worker_id: str) -> Job:
        """
        Mark a leased job completed.

        Raises:
            LeaseLostError: If worker_id no longer holds the job
        """
        row = await self._fetchone(
            """
            UPDATE graph_jobs SET
                status = 'completed',
                lease_owner = NULL,
                lease_expires_at = NULL,
                last_error = NULL,
                updated_at = ?
            WHERE id = ? AND status = 'active' AND lease_owner = ?
            RETURNING *
            """,
            (utcnow().isoformat(), job_id, worker_id),
        )
        if row is None:
            raise LeaseLostError(
                f"Lease on job {job_id} lost", {"job_id": job_id, "worker_id": worker_id}
            )
        return self._row_to_job(row)

    async def fail(self, job_id: str, worker_id: str, error: str, backoff_delay: float) -> Job:
        """
        Record a failed attempt.

        With attempts left the job goes back to pending and becomes due after
        backoff_delay * 2 ** (attempts - 1) seconds; otherwise it is failed
        for good.

        Raises:
            LeaseLostError: If worker_id no longer holds the job
        """
        current = await self._fetchone(
            "SELECT * FROM graph_jobs WHERE id = ? AND status = 'active' AND lease_owner = ?",
            (job_id, worker_id),
        )
        if current is None:
            raise LeaseLostError(
                f"Lease on job {job_id} lost", {"job_id": job_id, "worker_id": worker_id}
            )

        attempts = current["attempts"]
        if attempts >= current["max_attempts"]:
            status = JobStatus.FAILED
            run_at = current["run_at"]
        else:
            status = JobStatus.PENDING
            run_at = self.clock() + backoff_delay * 2 ** (attempts - 1)

        row = await self._fetchone(
            """
            UPDATE graph_jobs SET
                status = ?,
                run_at = ?,
                lease_owner = NULL,
                lease_expires_at = NULL,
                last_error = ?,
                updated_at = ?
            WHERE id = ? AND status = 'active' AND lease_owner = ?
            RETURNING *
            """,
            (status.value, run_at, error, utcnow().isoformat(), job_id, worker_id),
        )
        if row is None:
            raise LeaseLostError(
                f"Lease on job {job_id} lost", {"job_id": job_id, "worker_id": worker_id}
            )

        job = self._row_to_job(row)
        if job.status == JobStatus.FAILED:
            logger.error(f"Job {job_id} failed after {attempts} attempts: {error}")
        else:
            logger.warning(f"Job {job_id} attempt {attempts} failed, retrying: {error}")
        return job

    # ═══════════════════════════════════════════════════════════
    # INSPECTION
    # ═══════════════════════════════════════════════════════════

    async def get_job(self, job_id: str) -> Job | None:
        row = await self._fetchone("SELECT * FROM graph_jobs WHERE id = ?", (job_id,))
        return self._row_to_job(row) if row else None

    async def metrics(self, family: JobFamily) -> QueueMetrics:
        family = JobFamily(family)
        rows = await self._fetchall(
            "SELECT status, COUNT(*) AS n FROM graph_jobs WHERE family = ? GROUP BY status",
            (family.value,),
        )
        counts = {row["status"]: row["n"] for row in rows}
        return QueueMetrics(family=family, **counts)

    def _row_to_job(self, row: aiosqlite.Row) -> Job:
        return Job(
            id=row["id"],
            family=JobFamily(row["family"]),
            bookmark_id=row["bookmark_id"],
            user_id=row["user_id"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
            status=JobStatus(row["status"]),
            priority=row["priority"],
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            run_at=row["run_at"],
            lease_owner=row["lease_owner"],
            lease_expires_at=row["lease_expires_at"],
            last_error=row["last_error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
