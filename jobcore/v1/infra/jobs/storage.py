"""
Job storage contracts and the in-memory implementation.

``JobStorage`` is what the queue and scheduler consume. Stores that can keep
permanently failed jobs for inspection also satisfy ``DeadLetterStorage``.
"""

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from jobcore.v1.core.exceptions import InvalidStateError, NotFoundError
from jobcore.v1.infra.jobs.models import (
    DeadLetterEntry,
    Job,
    JobQueueStats,
    JobStatus,
    utcnow,
)
from jobcore.v1.infra.jobs.schemas import JobQueryOptions

_EPOCH = datetime.fromtimestamp(0, UTC)


@runtime_checkable
class JobStorage(Protocol):
    """Persistence contract for job records."""

    async def save(self, job: Job) -> None: ...

    async def get(self, job_id: str) -> Job | None: ...

    async def update(
        self,
        job_id: str,
        updates: dict[str, Any],
        expected_status: JobStatus | tuple[JobStatus, ...] | None = None,
    ) -> Job: ...

    async def delete(self, job_id: str) -> None: ...

    async def query(self, options: JobQueryOptions | None = None) -> list[Job]: ...

    async def get_stats(self) -> JobQueueStats: ...

    async def get_next_pending(self) -> Job | None: ...

    async def get_scheduled_due(self) -> list[Job]: ...


@runtime_checkable
class DeadLetterStorage(Protocol):
    """Dead-letter extension implemented by persistent stores."""

    async def move_to_dead_letter(self, job: Job, error: str) -> DeadLetterEntry: ...

    async def get_dead_letters(
        self, limit: int | None = None, offset: int = 0
    ) -> list[DeadLetterEntry]: ...

    async def replay_dead_letter(self, entry_id: str) -> str: ...

    async def purge_dead_letters(self, older_than: datetime) -> int: ...


# Shared query semantics. Both stores run their records through these helpers
# so filtering, ordering and counting behave identically.


def _sort_key(sort_by: str):
    if sort_by == "created_at":
        return lambda job: job.created_at
    if sort_by == "priority":
        return lambda job: job.priority.rank
    if sort_by == "next_run":
        return lambda job: job.next_run or _EPOCH
    raise ValueError(f"Unsupported sort field: {sort_by}")


def apply_query(jobs: Iterable[Job], options: JobQueryOptions | None) -> list[Job]:
    """Filter, sort and paginate jobs. Sorting is stable."""
    results = list(jobs)
    if options is None:
        return results

    if options.name:
        results = [job for job in results if job.name == options.name]

    statuses = options.statuses
    if statuses:
        results = [job for job in results if job.status in statuses]

    if options.priority:
        results = [job for job in results if job.priority == options.priority]

    if options.sort_by:
        results.sort(
            key=_sort_key(options.sort_by), reverse=options.sort_order == "desc"
        )

    if options.skip:
        results = results[options.skip :]
    if options.limit is not None:
        results = results[: options.limit]

    return results


def check_expected_status(
    job: Job, expected_status: JobStatus | tuple[JobStatus, ...] | None
) -> None:
    """Raise ``InvalidStateError`` unless the job is in one of the expected statuses."""
    if expected_status is None:
        return
    allowed = (
        expected_status if isinstance(expected_status, tuple) else (expected_status,)
    )
    if job.status not in allowed:
        raise InvalidStateError(
            f"Job {job.id} is {job.status.value}",
            details={
                "job_id": job.id,
                "status": job.status.value,
                "expected": [status.value for status in allowed],
            },
        )


def compute_stats(jobs: Iterable[Job]) -> JobQueueStats:
    """Count jobs per status."""
    stats = JobQueueStats()
    for job in jobs:
        stats.total += 1
        field = job.status.value
        setattr(stats, field, getattr(stats, field) + 1)
    return stats


def select_next_pending(jobs: Iterable[Job], now: datetime | None = None) -> Job | None:
    """Highest priority first, then oldest ``created_at``."""
    now = now or utcnow()
    ready = [job for job in jobs if job.is_ready(now)]
    if not ready:
        return None
    return min(ready, key=lambda job: (-job.priority.rank, job.created_at))


def select_scheduled_due(jobs: Iterable[Job], now: datetime | None = None) -> list[Job]:
    now = now or utcnow()
    return [job for job in jobs if job.is_due(now)]


class InMemoryJobStorage:
    """
    Dict-backed job store.

    Records are copied on the way in and out, so callers never share mutable
    state with the store. ``update`` is serialized by a lock.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()

    async def save(self, job: Job) -> None:
        self._jobs[job.id] = job.model_copy(deep=True)

    async def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update(
        self,
        job_id: str,
        updates: dict[str, Any],
        expected_status: JobStatus | tuple[JobStatus, ...] | None = None,
    ) -> Job:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
            check_expected_status(job, expected_status)
            merged = job.model_copy(update=updates, deep=True)
            self._jobs[job_id] = merged
            return merged.model_copy(deep=True)

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def query(self, options: JobQueryOptions | None = None) -> list[Job]:
        return [
            job.model_copy(deep=True)
            for job in apply_query(self._jobs.values(), options)
        ]

    async def get_stats(self) -> JobQueueStats:
        return compute_stats(self._jobs.values())

    async def get_next_pending(self) -> Job | None:
        job = select_next_pending(self._jobs.values())
        return job.model_copy(deep=True) if job else None

    async def get_scheduled_due(self) -> list[Job]:
        return [job.model_copy(deep=True) for job in select_scheduled_due(self._jobs.values())]

    async def clear(self) -> None:
        """Remove all jobs."""
        self._jobs.clear()

    async def get_all(self) -> list[Job]:
        return await self.query()
