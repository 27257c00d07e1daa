"""Job store behaviour shared by the in-memory and persistent implementations."""

from datetime import timedelta

import pytest

from jobcore.infra.kv import MemoryKeyValueBackend
from jobcore.v1.core.exceptions import InvalidStateError, NotFoundError
from jobcore.v1.infra.jobs.models import Job, JobPriority, JobStatus, epoch_ms, utcnow
from jobcore.v1.infra.jobs.persistent_storage import PersistentJobStorage
from jobcore.v1.infra.jobs.schemas import JobQueryOptions
from jobcore.v1.infra.jobs.storage import (
    DeadLetterStorage,
    InMemoryJobStorage,
    JobStorage,
)


@pytest.fixture(params=["memory", "persistent"])
def store(request):
    if request.param == "memory":
        return InMemoryJobStorage()
    return PersistentJobStorage(MemoryKeyValueBackend())


def make_job(job_id: str, **overrides) -> Job:
    fields = {
        "id": job_id,
        "name": "echo",
        "status": JobStatus.PENDING,
        "max_retries": 3,
        "retry_delay": 1000,
        "timeout": 60000,
        "created_at": utcnow(),
    }
    fields.update(overrides)
    return Job(**fields)


def test_stores_satisfy_protocols():
    assert isinstance(InMemoryJobStorage(), JobStorage)
    assert isinstance(PersistentJobStorage(MemoryKeyValueBackend()), JobStorage)
    assert not isinstance(InMemoryJobStorage(), DeadLetterStorage)
    assert isinstance(PersistentJobStorage(MemoryKeyValueBackend()), DeadLetterStorage)


def test_epoch_ms_tracks_utcnow():
    before = int(utcnow().timestamp() * 1000)
    assert before <= epoch_ms() <= before + 1000


async def test_save_and_get(store):
    await store.save(make_job("j1", data={"x": 1}))

    job = await store.get("j1")
    assert job is not None
    assert job.data == {"x": 1}
    assert job.status == JobStatus.PENDING
    assert await store.get("missing") is None


async def test_update_merges_and_returns_job(store):
    await store.save(make_job("j1"))

    updated = await store.update("j1", {"status": JobStatus.RUNNING, "attempts": 1})

    assert updated.status == JobStatus.RUNNING
    assert updated.attempts == 1
    assert updated.name == "echo"
    assert (await store.get("j1")).attempts == 1


async def test_update_unknown_job_raises(store):
    with pytest.raises(NotFoundError, match="Job nope not found"):
        await store.update("nope", {"status": JobStatus.RUNNING})


async def test_update_with_expected_status(store):
    await store.save(make_job("j1"))

    claimed = await store.update(
        "j1", {"status": JobStatus.RUNNING}, expected_status=JobStatus.PENDING
    )
    assert claimed.status == JobStatus.RUNNING

    with pytest.raises(InvalidStateError, match="Job j1 is running"):
        await store.update(
            "j1",
            {"status": JobStatus.CANCELLED},
            expected_status=(JobStatus.PENDING, JobStatus.SCHEDULED),
        )

    assert (await store.get("j1")).status == JobStatus.RUNNING


async def test_delete(store):
    await store.save(make_job("j1"))
    await store.delete("j1")
    assert await store.get("j1") is None


async def test_returned_jobs_are_copies(store):
    await store.save(make_job("j1", data={"x": 1}))

    job = await store.get("j1")
    job.data["x"] = 99

    assert (await store.get("j1")).data == {"x": 1}


async def test_query_filters(store):
    await store.save(make_job("a", name="echo", priority=JobPriority.HIGH))
    await store.save(make_job("b", name="other", status=JobStatus.COMPLETED))
    await store.save(make_job("c", name="echo", status=JobStatus.FAILED))

    by_name = await store.query(JobQueryOptions(name="echo"))
    assert [job.id for job in by_name] == ["a", "c"]

    by_status = await store.query(
        JobQueryOptions(status=[JobStatus.COMPLETED, JobStatus.FAILED])
    )
    assert [job.id for job in by_status] == ["b", "c"]

    by_priority = await store.query(JobQueryOptions(priority=JobPriority.HIGH))
    assert [job.id for job in by_priority] == ["a"]


async def test_query_sort_and_paging(store):
    now = utcnow()
    await store.save(make_job("low", priority=JobPriority.LOW, created_at=now))
    await store.save(
        make_job("crit", priority=JobPriority.CRITICAL, created_at=now + timedelta(seconds=1))
    )
    await store.save(
        make_job("norm", priority=JobPriority.NORMAL, created_at=now + timedelta(seconds=2))
    )

    by_priority = await store.query(JobQueryOptions(sort_by="priority", sort_order="desc"))
    assert [job.id for job in by_priority] == ["crit", "norm", "low"]

    by_created = await store.query(JobQueryOptions(sort_by="created_at", skip=1, limit=1))
    assert [job.id for job in by_created] == ["crit"]

    assert await store.query(JobQueryOptions(limit=0)) == []


async def test_query_sort_by_next_run_treats_missing_as_earliest(store):
    now = utcnow()
    await store.save(make_job("later", next_run=now + timedelta(hours=1)))
    await store.save(make_job("none"))
    await store.save(make_job("sooner", next_run=now + timedelta(minutes=1)))

    jobs = await store.query(JobQueryOptions(sort_by="next_run"))
    assert [job.id for job in jobs] == ["none", "sooner", "later"]


async def test_stats(store):
    await store.save(make_job("a"))
    await store.save(make_job("b", status=JobStatus.RUNNING))
    await store.save(make_job("c", status=JobStatus.COMPLETED))
    await store.save(make_job("d", status=JobStatus.SCHEDULED))

    stats = await store.get_stats()

    assert stats.total == 4
    assert stats.pending == 1
    assert stats.running == 1
    assert stats.completed == 1
    assert stats.scheduled == 1
    assert stats.failed == 0
    assert stats.cancelled == 0


async def test_next_pending_prefers_priority_then_age(store):
    now = utcnow()
    await store.save(make_job("old-normal", created_at=now))
    await store.save(
        make_job("new-high", priority=JobPriority.HIGH, created_at=now + timedelta(seconds=1))
    )
    await store.save(
        make_job("old-high", priority=JobPriority.HIGH, created_at=now - timedelta(seconds=1))
    )
    await store.save(
        make_job("running", priority=JobPriority.CRITICAL, status=JobStatus.RUNNING)
    )

    job = await store.get_next_pending()
    assert job.id == "old-high"


async def test_next_pending_skips_jobs_in_backoff(store):
    await store.save(
        make_job("backoff", priority=JobPriority.CRITICAL, run_after=utcnow() + timedelta(hours=1))
    )
    assert await store.get_next_pending() is None

    await store.save(make_job("ready"))
    assert (await store.get_next_pending()).id == "ready"


async def test_next_pending_empty(store):
    assert await store.get_next_pending() is None


async def test_scheduled_due(store):
    now = utcnow()
    await store.save(
        make_job("due", status=JobStatus.SCHEDULED, next_run=now - timedelta(seconds=1))
    )
    await store.save(
        make_job("future", status=JobStatus.SCHEDULED, next_run=now + timedelta(hours=1))
    )
    await store.save(make_job("pending", next_run=now - timedelta(seconds=1)))

    due = await store.get_scheduled_due()
    assert [job.id for job in due] == ["due"]
