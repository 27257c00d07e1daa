import asyncio
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from jobcore.config.settings import Settings
from jobcore.infra.kv import MemoryKeyValueBackend
from jobcore.main import create_app
from jobcore.v1.infra.jobs.persistent_storage import PersistentJobStorage
from jobcore.v1.infra.jobs.service import JobService
from jobcore.v1.infra.jobs.storage import InMemoryJobStorage
from jobcore.v1.infra.jobs.worker import JobQueue


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast tests."""
    return Settings(
        _env_file=None,
        environment="development",
        debug=False,
        job_poll_interval_ms=10,
        job_default_retry_delay_ms=10,
        job_error_backoff_s=0.01,
        scheduler_interval_ms=50,
        enable_builtin_jobs=False,
    )


@pytest.fixture
def memory_storage() -> InMemoryJobStorage:
    return InMemoryJobStorage()


@pytest.fixture
def persistent_storage() -> PersistentJobStorage:
    return PersistentJobStorage(MemoryKeyValueBackend())


@pytest.fixture
async def queue(settings, memory_storage) -> AsyncGenerator[JobQueue, None]:
    """Queue over the in-memory store; the worker loop starts on first enqueue."""
    job_queue = JobQueue(storage=memory_storage, settings=settings)
    yield job_queue
    await job_queue.stop_processing()


@pytest.fixture
async def idle_queue(settings, memory_storage) -> AsyncGenerator[JobQueue, None]:
    """Queue that never starts its worker loop on its own."""
    job_queue = JobQueue(storage=memory_storage, settings=settings, auto_start=False)
    yield job_queue
    await job_queue.stop_processing()


@pytest.fixture
def wait_for_status():
    """Poll a store until a job reaches one of the given statuses."""

    async def _wait(store, job_id, *statuses, timeout: float = 3.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await store.get(job_id)
            if job is not None and job.status in statuses:
                return job
            if loop.time() > deadline:
                raise AssertionError(
                    f"Job {job_id} did not reach {statuses}; last seen: "
                    f"{job.status if job else None}"
                )
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
async def service(settings) -> AsyncGenerator[JobService, None]:
    """Job service over a persistent store backed by the in-process KV backend."""
    job_service = JobService(
        settings, storage=PersistentJobStorage(MemoryKeyValueBackend())
    )
    yield job_service
    await job_service.stop()


@pytest.fixture
async def client(settings, service) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the API."""
    app = create_app(settings, service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
