"""Job pipeline models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobFamily(str, Enum):
    """Independent job families, each served by its own worker pool."""

    ENTITY = "entity"
    CONCEPT = "concept"
    SIMILARITY = "similarity"


class JobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """
    A unit of graph work for one bookmark.

    While ACTIVE the job is leased to lease_owner until lease_expires_at;
    an expired lease makes the job claimable again.
    """

    id: str
    family: JobFamily
    bookmark_id: str
    user_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    priority: int = 0
    attempts: int = 0
    max_attempts: int = 3
    run_at: float = 0.0
    lease_owner: str | None = None
    lease_expires_at: float | None = None
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


class QueueMetrics(BaseModel):
    family: JobFamily
    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.active + self.completed + self.failed
