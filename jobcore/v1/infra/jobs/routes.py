"""
Job management API endpoints.

Provides admin endpoints for job monitoring, retry, cancellation and the
dead-letter queue.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import NotFoundError, create_success_response
from jobcore.v1.infra.jobs.models import JobStatus
from jobcore.v1.infra.jobs.schemas import JobQueryOptions
from jobcore.v1.infra.jobs.service import JobService

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_service(request: Request) -> JobService:
    """Dependency returning the application's job service."""
    return request.app.state.job_service


JobServiceDep = Depends(get_job_service)


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(default=None, description="Filter by status"),
    name: str | None = Query(default=None, description="Filter by job name"),
    limit: int | None = Query(default=None, ge=1, le=1000, description="Maximum results"),
    skip: int | None = Query(default=None, ge=0, description="Results to skip"),
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""
    options = JobQueryOptions(name=name, status=status, limit=limit, skip=skip)
    jobs = await service.query_jobs(options)
    return create_success_response(data=[job.to_wire() for job in jobs])


@router.get("/stats", response_model=dict)
async def get_job_stats(service: JobService = JobServiceDep) -> dict[str, Any]:
    """Get job counts per status."""
    stats = await service.get_stats()
    return create_success_response(data=stats.to_wire())


@router.get("/dead-letters", response_model=dict)
async def list_dead_letters(
    limit: int | None = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """List dead-letter entries, newest first."""
    entries = await service.get_dead_letters(limit=limit, offset=offset)
    return create_success_response(data=[entry.to_wire() for entry in entries])


@router.post("/dead-letters/purge", response_model=dict)
async def purge_dead_letters(
    older_than_days: int | None = Query(
        default=None, ge=0, description="Defaults to the configured retention"
    ),
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Delete dead-letter entries older than a number of days."""
    purged = await service.purge_dead_letters(older_than_days=older_than_days)

    logger.info("Dead letters purged via API", purged=purged)

    return create_success_response(data={"purged": purged})


@router.post("/dead-letters/{entry_id}/replay", response_model=dict)
async def replay_dead_letter(
    entry_id: str, service: JobService = JobServiceDep
) -> dict[str, Any]:
    """Re-enqueue a dead-letter entry as a new job."""
    job_id = await service.replay_dead_letter(entry_id)

    logger.info("Dead letter replayed via API", entry_id=entry_id, job_id=job_id)

    return create_success_response(data={"jobId": job_id})


@router.get("/{job_id}", response_model=dict)
async def get_job(job_id: str, service: JobService = JobServiceDep) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await service.get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found", details={"job_id": job_id})
    return create_success_response(data=job.to_wire())


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(job_id: str, service: JobService = JobServiceDep) -> dict[str, Any]:
    """Retry a failed job under a new id."""
    retried = await service.retry_job(job_id)

    logger.info("Job retried via API", job_id=job_id, retry_job_id=retried.id)

    return create_success_response(data=retried.to_wire())


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(job_id: str, service: JobService = JobServiceDep) -> dict[str, Any]:
    """Cancel a pending or scheduled job."""
    await service.cancel(job_id)

    logger.info("Job cancelled via API", job_id=job_id)

    return create_success_response(message="Job cancelled")
