"""
Job service: the host-facing facade over storage, queue and scheduler.
"""

import asyncio
import inspect
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings, StorageBackendType, get_settings
from jobcore.infra.database import Database, SQLKeyValueBackend
from jobcore.v1.core.exceptions import InvalidStateError, NotFoundError
from jobcore.v1.infra.jobs.cron import validate_cron_expression
from jobcore.v1.infra.jobs.models import (
    DeadLetterEntry,
    Job,
    JobQueueStats,
    JobStatus,
    epoch_ms,
    utcnow,
)
from jobcore.v1.infra.jobs.persistent_storage import PersistentJobStorage
from jobcore.v1.infra.jobs.registry_init import register_builtin_jobs
from jobcore.v1.infra.jobs.scheduler import JobScheduler
from jobcore.v1.infra.jobs.schemas import (
    HealthCheckItem,
    JobConfig,
    JobContext,
    JobDefinition,
    JobExecution,
    JobQueryOptions,
    JobServiceHealth,
)
from jobcore.v1.infra.jobs.storage import DeadLetterStorage, InMemoryJobStorage, JobStorage
from jobcore.v1.infra.jobs.worker import JobQueue

logger = get_logger(__name__)

EventEmitter = Callable[[str, Any], Any]

_EXECUTION_STATUS = {
    JobStatus.COMPLETED: "success",
    JobStatus.RUNNING: "running",
    JobStatus.FAILED: "failed",
    JobStatus.PENDING: "pending",
    JobStatus.SCHEDULED: "pending",
    JobStatus.CANCELLED: "cancelled",
}


def build_storage(settings: Settings) -> JobStorage:
    """Create the job store selected by ``storage_backend``."""
    if settings.storage_backend == StorageBackendType.PERSISTENT:
        backend = SQLKeyValueBackend(Database(settings))
        return PersistentJobStorage(
            backend,
            default_max_retries=settings.job_default_max_retries,
            default_retry_delay=settings.job_default_retry_delay_ms,
            default_timeout=settings.job_default_timeout_ms,
        )
    return InMemoryJobStorage()


class JobService:
    """Service for managing background jobs."""

    def __init__(
        self,
        settings: Settings | None = None,
        storage: JobStorage | None = None,
        event_emitter: EventEmitter | None = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or build_storage(self.settings)
        self.queue = JobQueue(
            storage=self.storage,
            settings=self.settings,
            auto_start=self.settings.job_enabled,
        )
        self.scheduler = JobScheduler(self.storage, self.queue, self.settings)
        self.event_emitter = event_emitter
        self._started_at: float | None = None

        if self.settings.enable_builtin_jobs:
            register_builtin_jobs(self.queue)

    async def _emit_event(self, event: str, payload: Any) -> None:
        """Deliver a host event. Emitter failures are logged, never raised."""
        if self.event_emitter is None:
            return
        try:
            result = self.event_emitter(event, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Event emitter failed", event_name=event, error=str(e))

    # Lifecycle

    async def start(self) -> None:
        """Recover interrupted jobs, then start the scheduler and worker loop."""
        self._started_at = time.monotonic()
        await self.queue.recover_stale_jobs()
        if self.settings.job_enabled:
            self.scheduler.start()
            self.queue.start_processing()
        logger.info(
            "Job service started",
            storage_backend=self.settings.storage_backend.value,
            job_enabled=self.settings.job_enabled,
        )

    async def stop(self) -> None:
        """Stop the sweep, drain in-flight jobs and close the store."""
        await self.scheduler.stop()
        await self.queue.stop_processing()
        close = getattr(self.storage, "close", None)
        if close is not None:
            await close()
        logger.info("Job service stopped")

    # Registration and enqueueing

    def register_handler(self, definition: JobDefinition) -> None:
        self.queue.register_handler(definition)

    async def enqueue(self, config: JobConfig | dict[str, Any]) -> Job:
        job = await self.queue.enqueue(config)
        await self._emit_event("job.enqueued", job.to_wire())
        return job

    async def enqueue_batch(self, configs: list[JobConfig | dict[str, Any]]) -> list[Job]:
        """Enqueue several jobs in order. Stops at the first rejected config."""
        return [await self.enqueue(config) for config in configs]

    async def schedule(self, config: JobConfig | dict[str, Any]) -> Job:
        job = await self.scheduler.schedule_job(config)
        await self._emit_event("job.scheduled", job.to_wire())
        return job

    async def schedule_handler(
        self,
        name: str,
        cron_expression: str,
        handler: Callable[[str, Any], Any],
    ) -> Job:
        """
        Register ``handler`` under ``name`` and run it on a cron schedule.

        The handler is called as ``handler(job_id, data)`` and may be a
        coroutine function; plain callables run in a worker thread.

        Raises:
            ValidationError: if the cron expression is missing or invalid
            InvalidStateError: if a handler is already registered under ``name``
        """
        expression = validate_cron_expression(cron_expression)

        async def run_scheduled(context: JobContext) -> None:
            if inspect.iscoroutinefunction(handler):
                await handler(context.job_id, context.data)
            else:
                await asyncio.to_thread(handler, context.job_id, context.data)

        self.register_handler(JobDefinition(name=name, handler=run_scheduled))
        job = await self.scheduler.schedule_job(
            JobConfig(id=f"{name}_{epoch_ms()}", name=name, cron_expression=expression)
        )
        await self._emit_event("job.scheduled", {"name": name})
        return job

    async def unschedule(self, job_id: str) -> Job:
        return await self.scheduler.unschedule_job(job_id)

    async def update_schedule(self, job_id: str, cron_expression: str) -> Job:
        return await self.scheduler.update_schedule(job_id, cron_expression)

    async def trigger(self, name: str, data: Any = None) -> Job:
        """Run a registered job immediately."""
        job = await self.enqueue(
            JobConfig(id=f"{name}_trigger_{epoch_ms()}", name=name, data=data)
        )
        await self._emit_event("job.triggered", {"name": name, "jobId": job.id})
        return job

    async def cancel(self, job_id: str) -> Job:
        job = await self.queue.cancel(job_id)
        await self._emit_event("job.cancelled", {"jobId": job_id})
        return job

    async def retry_job(self, job_id: str) -> Job:
        """
        Re-enqueue a failed job under a new id.

        Raises:
            NotFoundError: if the job does not exist
            InvalidStateError: if the job is not failed
        """
        job = await self.queue.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found", details={"job_id": job_id})
        if job.status != JobStatus.FAILED:
            raise InvalidStateError(
                "Only failed jobs can be retried",
                details={"job_id": job_id, "status": job.status.value},
            )

        retried = await self.enqueue(
            JobConfig(
                id=f"{job.id}_retry_{epoch_ms()}",
                name=job.name,
                data=job.data,
                priority=job.priority,
            )
        )
        logger.info("Job retried", job_id=job_id, retry_job_id=retried.id)
        return retried

    # Reads

    async def get_job(self, job_id: str) -> Job | None:
        return await self.queue.get_job(job_id)

    async def query_jobs(self, options: JobQueryOptions | None = None) -> list[Job]:
        return await self.queue.query_jobs(options)

    async def get_stats(self) -> JobQueueStats:
        return await self.queue.get_stats()

    async def get_executions(self, name: str, limit: int = 10) -> list[JobExecution]:
        """Recent runs of a named job."""
        executions = []
        for job in await self.query_jobs(JobQueryOptions(name=name, limit=limit)):
            started = job.started_at or job.created_at
            duration_ms = None
            if job.started_at and job.completed_at:
                duration_ms = int(
                    (job.completed_at - job.started_at).total_seconds() * 1000
                )
            executions.append(
                JobExecution(
                    job_id=job.id,
                    status=_EXECUTION_STATUS[job.status],
                    started_at=started.isoformat(),
                    completed_at=job.completed_at.isoformat() if job.completed_at else None,
                    error=job.error,
                    duration_ms=duration_ms,
                )
            )
        return executions

    async def list_job_names(self) -> list[str]:
        """Distinct names of stored jobs, in first-seen order."""
        names = dict.fromkeys(job.name for job in await self.query_jobs())
        return list(names)

    # Dead letter queue

    def _dead_letters(self) -> DeadLetterStorage:
        if not isinstance(self.storage, DeadLetterStorage):
            raise InvalidStateError(
                "Dead letter queue is not supported by the configured storage"
            )
        return self.storage

    async def get_dead_letters(
        self, limit: int | None = None, offset: int = 0
    ) -> list[DeadLetterEntry]:
        return await self._dead_letters().get_dead_letters(limit=limit, offset=offset)

    async def replay_dead_letter(self, entry_id: str) -> str:
        store = self._dead_letters()
        job_id = await store.replay_dead_letter(entry_id)
        # The replayed job is written straight to the store
        self.queue.notify()
        return job_id

    async def purge_dead_letters(
        self, older_than: datetime | None = None, older_than_days: int | None = None
    ) -> int:
        """Purge entries older than a cutoff (default: the retention window)."""
        store = self._dead_letters()
        if older_than is None:
            days = (
                older_than_days
                if older_than_days is not None
                else self.settings.dead_letter_retention_days
            )
            older_than = utcnow() - timedelta(days=days)
        return await store.purge_dead_letters(older_than)

    # Health

    async def health_check(self) -> JobServiceHealth:
        start = time.perf_counter()
        status = "healthy" if self.settings.job_enabled else "degraded"

        try:
            stats = await self.get_stats()
            message = f"Queue: {stats.pending} pending, {stats.running} running"
            check_status = "passed" if status == "healthy" else "warning"
        except Exception as e:
            logger.warning("Job stats unavailable for health check", error=str(e))
            status = "unhealthy"
            message = "Job store unavailable"
            check_status = "failed"

        uptime_ms = (
            int((time.monotonic() - self._started_at) * 1000) if self._started_at else 0
        )
        return JobServiceHealth(
            status=status,
            timestamp=utcnow().isoformat(),
            message=message,
            uptime_ms=uptime_ms,
            response_time_ms=round((time.perf_counter() - start) * 1000, 2),
            checks=[HealthCheckItem(name="job-queue", status=check_status, message=message)],
        )
