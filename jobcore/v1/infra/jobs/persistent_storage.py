"""
Key/value backed job store with a dead-letter queue.

Jobs live at ``job:<id>`` and dead-letter entries at ``dlq:<id>`` in a single
flat namespace provided by any ``StorageBackend``. Records are stored as JSON
documents with camelCase keys and ISO-8601 datetimes.
"""

import asyncio
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from jobcore.config.logging import get_logger
from jobcore.infra.kv import StorageBackend
from jobcore.v1.core.exceptions import NotFoundError
from jobcore.v1.infra.jobs.models import (
    DeadLetterEntry,
    Job,
    JobPriority,
    JobQueueStats,
    JobStatus,
    epoch_ms,
    utcnow,
)
from jobcore.v1.infra.jobs.schemas import JobQueryOptions
from jobcore.v1.infra.jobs.storage import (
    apply_query,
    check_expected_status,
    compute_stats,
    select_next_pending,
    select_scheduled_due,
)

logger = get_logger(__name__)

JOB_PREFIX = "job:"
DLQ_PREFIX = "dlq:"


def serialize_job(job: Job) -> dict[str, Any]:
    """Convert a job into a JSON-safe document."""
    return job.to_wire()


def deserialize_job(raw: dict[str, Any]) -> Job:
    """Rebuild a job from its stored document."""
    return Job.model_validate(raw)


class PersistentJobStorage:
    """
    Job store over a ``StorageBackend``.

    Implements both ``JobStorage`` and ``DeadLetterStorage``. Replayed
    dead letters get the defaults passed at construction.
    """

    def __init__(
        self,
        backend: StorageBackend,
        default_max_retries: int = 3,
        default_retry_delay: int = 1000,
        default_timeout: int = 60000,
    ):
        self.backend = backend
        self.default_max_retries = default_max_retries
        self.default_retry_delay = default_retry_delay
        self.default_timeout = default_timeout
        self._lock = asyncio.Lock()

    # Job records

    async def save(self, job: Job) -> None:
        await self.backend.set(f"{JOB_PREFIX}{job.id}", serialize_job(job))

    async def get(self, job_id: str) -> Job | None:
        raw = await self.backend.get(f"{JOB_PREFIX}{job_id}")
        return deserialize_job(raw) if raw else None

    async def update(
        self,
        job_id: str,
        updates: dict[str, Any],
        expected_status: JobStatus | tuple[JobStatus, ...] | None = None,
    ) -> Job:
        """Merge updates onto a job, optionally only from the expected status."""
        async with self._lock:
            existing = await self.get(job_id)
            if existing is None:
                raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
            check_expected_status(existing, expected_status)
            merged = existing.model_copy(update=updates)
            await self.save(merged)
            return merged

    async def delete(self, job_id: str) -> None:
        await self.backend.delete(f"{JOB_PREFIX}{job_id}")

    async def _load_jobs(self) -> list[Job]:
        jobs = []
        for key in await self.backend.keys(f"{JOB_PREFIX}*"):
            raw = await self.backend.get(key)
            if not raw:
                continue
            try:
                jobs.append(deserialize_job(raw))
            except PydanticValidationError as e:
                logger.warning("Skipping undecodable job record", key=key, error=str(e))
        return jobs

    async def query(self, options: JobQueryOptions | None = None) -> list[Job]:
        return apply_query(await self._load_jobs(), options)

    async def get_stats(self) -> JobQueueStats:
        return compute_stats(await self._load_jobs())

    async def get_next_pending(self) -> Job | None:
        pending = await self.query(JobQueryOptions(status=JobStatus.PENDING))
        return select_next_pending(pending)

    async def get_scheduled_due(self) -> list[Job]:
        scheduled = await self.query(JobQueryOptions(status=JobStatus.SCHEDULED))
        return select_scheduled_due(scheduled)

    # Dead letter queue

    async def move_to_dead_letter(self, job: Job, error: str) -> DeadLetterEntry:
        """Record a permanently failed job in the dead-letter queue."""
        entry = DeadLetterEntry(
            id=f"dlq_{job.id}_{epoch_ms()}",
            original_job_id=job.id,
            name=job.name,
            data=job.data,
            error=error,
            failed_at=utcnow(),
            retry_count=job.attempts,
        )
        await self.backend.set(f"{DLQ_PREFIX}{entry.id}", entry.to_wire())
        logger.info(
            "Job moved to dead letter queue",
            job_id=job.id,
            entry_id=entry.id,
            retry_count=job.attempts,
        )
        return entry

    async def _load_dead_letters(self) -> list[tuple[str, DeadLetterEntry]]:
        entries = []
        for key in await self.backend.keys(f"{DLQ_PREFIX}*"):
            raw = await self.backend.get(key)
            if not raw:
                continue
            try:
                entries.append((key, DeadLetterEntry.model_validate(raw)))
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping undecodable dead letter record", key=key, error=str(e)
                )
        return entries

    async def get_dead_letters(
        self, limit: int | None = None, offset: int = 0
    ) -> list[DeadLetterEntry]:
        """List dead-letter entries, newest first."""
        entries = [entry for _, entry in await self._load_dead_letters()]
        entries.sort(key=lambda entry: entry.failed_at, reverse=True)
        entries = entries[offset:]
        if limit is not None:
            entries = entries[:limit]
        return entries

    async def replay_dead_letter(self, entry_id: str) -> str:
        """Re-create a dead letter as a fresh pending job and return its id."""
        raw = await self.backend.get(f"{DLQ_PREFIX}{entry_id}")
        if not raw:
            raise NotFoundError(
                f"Dead letter entry {entry_id} not found",
                details={"entry_id": entry_id},
            )
        entry = DeadLetterEntry.model_validate(raw)

        new_job_id = f"{entry.name}_replay_{epoch_ms()}"
        await self.save(
            Job(
                id=new_job_id,
                name=entry.name,
                data=entry.data if entry.data is not None else {},
                status=JobStatus.PENDING,
                priority=JobPriority.NORMAL,
                attempts=0,
                max_retries=self.default_max_retries,
                retry_delay=self.default_retry_delay,
                timeout=self.default_timeout,
                created_at=utcnow(),
            )
        )
        await self.backend.delete(f"{DLQ_PREFIX}{entry_id}")

        logger.info("Dead letter replayed", entry_id=entry_id, job_id=new_job_id)
        return new_job_id

    async def purge_dead_letters(self, older_than: datetime) -> int:
        """Delete entries that failed before ``older_than``."""
        purged = 0
        for key, entry in await self._load_dead_letters():
            if entry.failed_at < older_than:
                await self.backend.delete(key)
                purged += 1
        if purged:
            logger.info("Dead letters purged", purged=purged)
        return purged

    # Helpers

    async def clear(self) -> None:
        """Remove every record from the backend."""
        await self.backend.clear()

    async def get_all(self) -> list[Job]:
        return await self.query()

    async def close(self) -> None:
        await self.backend.close()
