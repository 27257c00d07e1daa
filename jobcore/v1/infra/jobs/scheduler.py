"""
Cron-driven scheduler that turns recurring jobs into queued executions.
"""

import asyncio
from typing import Any

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings, get_settings
from jobcore.v1.core.exceptions import InvalidStateError, NotFoundError
from jobcore.v1.infra.jobs.cron import get_next_run_time, validate_cron_expression
from jobcore.v1.infra.jobs.models import Job, JobStatus, utcnow
from jobcore.v1.infra.jobs.schemas import JobConfig, JobQueryOptions
from jobcore.v1.infra.jobs.storage import JobStorage
from jobcore.v1.infra.jobs.worker import JobQueue

logger = get_logger(__name__)


class JobScheduler:
    """Persists scheduled jobs and periodically enqueues the ones that are due."""

    def __init__(
        self,
        storage: JobStorage,
        queue: JobQueue,
        settings: Settings | None = None,
    ):
        self.storage = storage
        self.queue = queue
        self.settings = settings or get_settings()
        self._sweep_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None

    async def schedule_job(self, config: JobConfig | dict[str, Any]) -> Job:
        """
        Persist a recurring job and make sure the sweep is running.

        Raises:
            ValidationError: if the cron expression is missing or invalid
        """
        if isinstance(config, dict):
            config = JobConfig.model_validate(config)

        expression = validate_cron_expression(config.cron_expression)
        next_run = get_next_run_time(expression)

        job = Job(
            id=config.id,
            name=config.name,
            data=config.data if config.data is not None else {},
            status=JobStatus.SCHEDULED,
            attempts=0,
            cron_expression=expression,
            next_run=next_run,
            created_at=utcnow(),
            **self.queue.resolve_defaults(config),
        )
        await self.storage.save(job)

        logger.info(
            "Job scheduled",
            job_id=job.id,
            name=job.name,
            cron_expression=expression,
            next_run=next_run.isoformat(),
        )

        if not self.is_running:
            self.start()
        return job

    async def _get_scheduled(self, job_id: str) -> Job:
        job = await self.storage.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
        if job.status != JobStatus.SCHEDULED:
            raise InvalidStateError(
                f"Job {job_id} is not scheduled",
                details={"job_id": job_id, "status": job.status.value},
            )
        return job

    async def unschedule_job(self, job_id: str) -> Job:
        await self._get_scheduled(job_id)
        job = await self.storage.update(
            job_id, {"status": JobStatus.CANCELLED}, expected_status=JobStatus.SCHEDULED
        )
        logger.info("Job unscheduled", job_id=job_id)
        return job

    async def update_schedule(self, job_id: str, cron_expression: str) -> Job:
        """Replace the cron expression of a scheduled job and recompute its next run."""
        await self._get_scheduled(job_id)
        expression = validate_cron_expression(cron_expression)
        next_run = get_next_run_time(expression)

        job = await self.storage.update(
            job_id,
            {"cron_expression": expression, "next_run": next_run},
            expected_status=JobStatus.SCHEDULED,
        )
        logger.info(
            "Job schedule updated",
            job_id=job_id,
            cron_expression=expression,
            next_run=next_run.isoformat(),
        )
        return job

    async def get_scheduled_jobs(self) -> list[Job]:
        return await self.storage.query(JobQueryOptions(status=JobStatus.SCHEDULED))

    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Scheduler started", interval_ms=self.settings.scheduler_interval_ms
        )

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("Scheduler stopped")

    async def _sweep_loop(self) -> None:
        interval = self.settings.scheduler_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_scheduled_jobs()
            except Exception:
                logger.exception("Error checking scheduled jobs")

    async def check_scheduled_jobs(self) -> list[Job]:
        """Enqueue one execution for every due scheduled job. Returns the executions."""
        enqueued = []
        for job in await self.storage.get_scheduled_due():
            execution = await self._execute_scheduled_job(job)
            if execution is not None:
                enqueued.append(execution)
        return enqueued

    async def _execute_scheduled_job(self, job: Job) -> Job | None:
        now = utcnow()
        execution_id = f"{job.id}_{int(now.timestamp() * 1000)}"

        try:
            execution = await self.queue.enqueue(
                JobConfig(
                    id=execution_id,
                    name=job.name,
                    data=job.data,
                    priority=job.priority,
                    max_retries=job.max_retries,
                    retry_delay=job.retry_delay,
                    timeout=job.timeout,
                )
            )

            # Never fire the same slot twice, even when the sweep runs late
            after = max(now, job.next_run) if job.next_run else now
            next_run = get_next_run_time(job.cron_expression, after=after)
            await self.storage.update(
                job.id, {"next_run": next_run}, expected_status=JobStatus.SCHEDULED
            )
        except Exception:
            logger.exception("Error executing scheduled job", job_id=job.id)
            return None

        logger.info(
            "Scheduled job enqueued",
            job_id=job.id,
            execution_id=execution_id,
            next_run=next_run.isoformat(),
        )
        return execution
