"""
Job system records: jobs, dead-letter entries and their enumerations.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SCHEDULED = "scheduled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class JobPriority(str, Enum):
    """Job priority levels."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    JobPriority.CRITICAL: 4,
    JobPriority.HIGH: 3,
    JobPriority.NORMAL: 2,
    JobPriority.LOW: 1,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def epoch_ms() -> int:
    """Current time in milliseconds since the epoch, used in derived job ids."""
    return int(utcnow().timestamp() * 1000)


class CamelModel(BaseModel):
    """Base model exposing camelCase names on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe dict with camelCase keys and unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(CamelModel):
    """
    Job record as persisted by the job store.

    Scheduled jobs carry ``cron_expression`` and ``next_run``; jobs waiting
    out a retry backoff carry ``run_after``.
    """

    id: str
    name: str
    data: Any = Field(default_factory=dict)
    status: JobStatus
    priority: JobPriority = JobPriority.NORMAL

    attempts: int = 0
    max_retries: int
    retry_delay: int = Field(description="Base retry backoff in milliseconds")
    timeout: int = Field(description="Handler timeout in milliseconds")

    cron_expression: str | None = None
    next_run: datetime | None = None
    run_after: datetime | None = None

    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None

    error: str | None = None
    result: Any = None

    def is_active(self) -> bool:
        """Check if job is pending or running."""
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING)

    def can_retry(self) -> bool:
        """Check if another attempt is allowed after the current one failed."""
        return self.attempts <= self.max_retries

    def is_ready(self, now: datetime | None = None) -> bool:
        """Check if a pending job is past its retry backoff."""
        if self.status != JobStatus.PENDING:
            return False
        if self.run_after is None:
            return True
        return self.run_after <= (now or utcnow())

    def is_due(self, now: datetime | None = None) -> bool:
        """Check if a scheduled job's next run has arrived."""
        return (
            self.status == JobStatus.SCHEDULED
            and self.next_run is not None
            and self.next_run <= (now or utcnow())
        )


class DeadLetterEntry(CamelModel):
    """Snapshot of a job that exhausted its retries."""

    id: str
    original_job_id: str
    name: str
    data: Any = None
    error: str
    failed_at: datetime
    retry_count: int


class JobQueueStats(CamelModel):
    """Job counts per status."""

    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    scheduled: int = 0
