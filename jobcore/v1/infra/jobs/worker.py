"""
In-process job queue with a bounded worker pool.
"""

import asyncio
import inspect
from datetime import timedelta
from typing import Any

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings, get_settings
from jobcore.v1.core.exceptions import (
    HandlerNotFoundError,
    InvalidStateError,
    JobTimeoutError,
    NotFoundError,
)
from jobcore.v1.core.registries import JobRegistry
from jobcore.v1.infra.jobs.models import (
    Job,
    JobPriority,
    JobQueueStats,
    JobStatus,
    utcnow,
)
from jobcore.v1.infra.jobs.schemas import (
    JobConfig,
    JobContext,
    JobDefaults,
    JobDefinition,
    JobQueryOptions,
)
from jobcore.v1.infra.jobs.storage import (
    DeadLetterStorage,
    InMemoryJobStorage,
    JobStorage,
)

logger = get_logger(__name__)

# Cancelling any of these is an error; cancelling a cancelled job is a no-op
_UNCANCELLABLE = (JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED)


def compute_backoff_ms(retry_delay: int, attempts: int) -> int:
    """Exponential backoff: ``retry_delay * 2 ** (attempts - 1)``."""
    return retry_delay * (2 ** max(attempts - 1, 0))


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


class JobQueue:
    """
    Job queue with retries, timeouts and bounded concurrency.

    Features:
    - Priority then FIFO dequeue order
    - Execution slots held by a semaphore; retries wait out their backoff
      without holding a slot
    - Per-job timeout with cooperative cancellation for thread handlers
    - Dead-lettering of permanently failed jobs when the store supports it
    - Graceful drain on shutdown
    """

    def __init__(
        self,
        storage: JobStorage | None = None,
        settings: Settings | None = None,
        registry: JobRegistry | None = None,
        auto_start: bool = True,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or InMemoryJobStorage()
        self.registry = registry or JobRegistry()
        self.auto_start = auto_start

        self.concurrency = self.settings.job_concurrency
        self._slots = asyncio.Semaphore(self.concurrency)
        self._wakeup = asyncio.Event()
        self._active: set[asyncio.Task] = set()
        self._loop_task: asyncio.Task | None = None
        self._processing = False

    # Handler registration

    def register_handler(self, definition: JobDefinition) -> None:
        """Register a handler. Names are unique."""
        self.registry.register(definition.name, definition)
        logger.info("Registered job handler", name=definition.name)

    def unregister_handler(self, name: str) -> bool:
        removed = self.registry.unregister(name)
        if removed:
            logger.info("Unregistered job handler", name=name)
        return removed

    def list_handlers(self) -> list[str]:
        return self.registry.list()

    # Enqueue

    def resolve_defaults(self, config: JobConfig) -> dict[str, Any]:
        """Resolve priority/retry/timeout settings for a new job.

        Caller values win, then the handler's ``default_config``, then the
        queue settings.
        """
        definition = self.registry.find(config.name)
        defaults = (
            definition.default_config
            if definition and definition.default_config
            else JobDefaults()
        )
        return {
            "priority": _first_set(
                config.priority, defaults.priority, JobPriority.NORMAL
            ),
            "max_retries": _first_set(
                config.max_retries,
                defaults.max_retries,
                self.settings.job_default_max_retries,
            ),
            "retry_delay": _first_set(
                config.retry_delay,
                defaults.retry_delay,
                self.settings.job_default_retry_delay_ms,
            ),
            "timeout": _first_set(
                config.timeout, defaults.timeout, self.settings.job_default_timeout_ms
            ),
        }

    async def enqueue(self, config: JobConfig | dict[str, Any]) -> Job:
        """
        Persist a new pending job and wake the worker loop.

        Raises:
            HandlerNotFoundError: if no handler is registered for the name
        """
        if isinstance(config, dict):
            config = JobConfig.model_validate(config)

        if config.name not in self.registry:
            raise HandlerNotFoundError(config.name)

        job = Job(
            id=config.id,
            name=config.name,
            data=config.data if config.data is not None else {},
            status=JobStatus.PENDING,
            attempts=0,
            cron_expression=config.cron_expression,
            created_at=utcnow(),
            **self.resolve_defaults(config),
        )
        await self.storage.save(job)

        logger.info(
            "Job enqueued", job_id=job.id, name=job.name, priority=job.priority.value
        )

        self.notify()
        return job

    def notify(self) -> None:
        """Signal that new pending work exists, starting the loop if allowed."""
        self._wakeup.set()
        if self.auto_start and not self._processing:
            self.start_processing()

    # Lifecycle

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def active_count(self) -> int:
        """Number of executions currently holding a slot."""
        return len(self._active)

    def start_processing(self) -> None:
        """Start the worker loop. Must be called from a running event loop."""
        if self._processing:
            return
        self._processing = True
        self._loop_task = asyncio.create_task(self._worker_loop())
        logger.info("Job queue started", concurrency=self.concurrency)

    async def stop_processing(self) -> None:
        """Stop pulling new jobs and wait for in-flight executions to finish."""
        if not self._processing and self._loop_task is None:
            return

        self._processing = False
        self._wakeup.set()

        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        if self._active:
            logger.info("Draining in-flight jobs", active_jobs=len(self._active))
            await asyncio.gather(*self._active, return_exceptions=True)

        logger.info("Job queue stopped")

    async def _wait_for_signal(self) -> None:
        """Sleep until woken, bounded by the poll interval."""
        try:
            await asyncio.wait_for(
                self._wakeup.wait(), timeout=self.settings.job_poll_interval_ms / 1000
            )
        except TimeoutError:
            pass
        self._wakeup.clear()

    async def _worker_loop(self) -> None:
        """Main loop that claims pending jobs and dispatches them."""
        while self._processing:
            try:
                if self._slots.locked():
                    await self._wait_for_signal()
                    continue

                job = await self.storage.get_next_pending()
                if job is None:
                    await self._wait_for_signal()
                    continue

                definition = self.registry.find(job.name)
                if definition is None:
                    logger.error("No handler for job", job_id=job.id, name=job.name)
                    try:
                        await self._fail_job(
                            job,
                            HandlerNotFoundError(job.name).message,
                            expected_status=JobStatus.PENDING,
                        )
                    except InvalidStateError:
                        # Cancelled before it could be failed
                        pass
                    continue

                claimed = await self._claim_job(job)
                if claimed is None:
                    continue

                await self._slots.acquire()
                task = asyncio.create_task(self._process_job(claimed, definition))
                self._active.add(task)
                task.add_done_callback(self._release_slot)

            except Exception:
                logger.exception("Error in worker loop")
                await asyncio.sleep(self.settings.job_error_backoff_s)

    def _release_slot(self, task: asyncio.Task) -> None:
        self._active.discard(task)
        self._slots.release()
        self._wakeup.set()

    async def _claim_job(self, job: Job) -> Job | None:
        """Mark a pending job as running. Returns None if it changed meanwhile."""
        try:
            return await self.storage.update(
                job.id,
                {
                    "status": JobStatus.RUNNING,
                    "attempts": job.attempts + 1,
                    "started_at": utcnow(),
                    "run_after": None,
                },
                expected_status=JobStatus.PENDING,
            )
        except (NotFoundError, InvalidStateError):
            return None

    # Execution

    async def _process_job(self, job: Job, definition: JobDefinition) -> None:
        """Run one attempt of a claimed job and record the outcome."""
        job_logger = logger.bind(job_id=job.id, job_name=job.name, attempt=job.attempts)
        job_logger.info(
            "Processing job started", max_attempts=job.max_retries + 1
        )

        context = JobContext(
            job_id=job.id,
            name=job.name,
            data=job.data,
            attempt=job.attempts,
            logger=job_logger,
        )

        try:
            try:
                result = await self._execute_with_timeout(
                    definition.handler, context, job.timeout
                )
            except Exception as e:
                error = str(e) or e.__class__.__name__
                job_logger.warning("Job attempt failed", error=error)
                if job.can_retry():
                    await self._schedule_retry(job, error)
                else:
                    await self._fail_job(job, error)
                return

            await self.storage.update(
                job.id,
                {
                    "status": JobStatus.COMPLETED,
                    "completed_at": utcnow(),
                    "result": result,
                },
                expected_status=JobStatus.RUNNING,
            )
            job_logger.info("Processing job completed successfully")

        except InvalidStateError as e:
            job_logger.warning("Job changed state while running", error=e.message)
        except Exception:
            job_logger.exception("Failed to record job outcome")

    async def _execute_with_timeout(
        self, handler: Any, context: JobContext, timeout_ms: int
    ) -> Any:
        """Run the handler, raising ``JobTimeoutError`` past the deadline."""
        try:
            return await asyncio.wait_for(
                self._invoke(handler, context), timeout=timeout_ms / 1000
            )
        except TimeoutError as e:
            context.cancel_event.set()
            raise JobTimeoutError(timeout_ms) from e

    @staticmethod
    async def _invoke(handler: Any, context: JobContext) -> Any:
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
            getattr(handler, "__call__", None)
        ):
            return await handler(context)

        # Plain callables run off the event loop
        result = await asyncio.to_thread(handler, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _schedule_retry(self, job: Job, error: str) -> None:
        """Return the job to pending once its backoff has elapsed."""
        backoff_ms = compute_backoff_ms(job.retry_delay, job.attempts)
        run_after = utcnow() + timedelta(milliseconds=backoff_ms)
        await self.storage.update(
            job.id,
            {"status": JobStatus.PENDING, "error": error, "run_after": run_after},
            expected_status=JobStatus.RUNNING,
        )
        logger.info(
            "Job scheduled for retry",
            job_id=job.id,
            attempt=job.attempts,
            backoff_ms=backoff_ms,
            run_after=run_after.isoformat(),
        )

    async def _fail_job(
        self,
        job: Job,
        error: str,
        expected_status: JobStatus = JobStatus.RUNNING,
    ) -> None:
        """Mark a job as permanently failed and dead-letter it if supported.

        Raises:
            InvalidStateError: if the job left ``expected_status`` meanwhile
        """
        failed = await self.storage.update(
            job.id,
            {"status": JobStatus.FAILED, "failed_at": utcnow(), "error": error},
            expected_status=expected_status,
        )

        if isinstance(self.storage, DeadLetterStorage):
            await self.storage.move_to_dead_letter(failed, error)

        logger.error("Job failed permanently", job_id=job.id, error=error)

    # Admin operations

    async def cancel(self, job_id: str) -> Job:
        """
        Cancel a pending or scheduled job.

        Raises:
            NotFoundError: if the job does not exist
            InvalidStateError: if the job is running or already finished
        """
        job = await self.storage.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})

        if job.status == JobStatus.CANCELLED:
            return job

        if job.status in _UNCANCELLABLE:
            raise InvalidStateError(
                f"Cannot cancel a {job.status.value} job",
                details={"job_id": job_id, "status": job.status.value},
            )

        try:
            cancelled = await self.storage.update(
                job_id,
                {"status": JobStatus.CANCELLED},
                expected_status=(JobStatus.PENDING, JobStatus.SCHEDULED),
            )
        except InvalidStateError:
            # Claimed or cancelled between the read and the write
            current = await self.storage.get(job_id)
            if current is not None and current.status == JobStatus.CANCELLED:
                return current
            status = current.status.value if current else "missing"
            raise InvalidStateError(
                f"Cannot cancel a {status} job",
                details={"job_id": job_id, "status": status},
            ) from None
        logger.info("Job cancelled", job_id=job_id)
        return cancelled

    async def get_job(self, job_id: str) -> Job | None:
        return await self.storage.get(job_id)

    async def query_jobs(self, options: JobQueryOptions | None = None) -> list[Job]:
        return await self.storage.query(options)

    async def get_stats(self) -> JobQueueStats:
        return await self.storage.get_stats()

    async def recover_stale_jobs(self, stale_after_s: int | None = None) -> list[Job]:
        """
        Requeue jobs left ``running`` by a previous process.

        Jobs that already used their final attempt are failed instead. Call
        this before ``start_processing``.
        """
        if stale_after_s is None:
            stale_after_s = self.settings.job_stale_running_after_s
        cutoff = utcnow() - timedelta(seconds=stale_after_s)

        recovered = []
        for job in await self.storage.query(JobQueryOptions(status=JobStatus.RUNNING)):
            if job.started_at is not None and job.started_at > cutoff:
                continue

            if job.can_retry():
                recovered.append(
                    await self.storage.update(
                        job.id,
                        {
                            "status": JobStatus.PENDING,
                            "error": "Job interrupted before completion",
                            "run_after": None,
                        },
                        expected_status=JobStatus.RUNNING,
                    )
                )
            else:
                await self._fail_job(job, "Job interrupted on its final attempt")

        if recovered:
            logger.warning(
                "Recovered stale running jobs",
                job_count=len(recovered),
                job_ids=[job.id for job in recovered],
            )
        return recovered
