from datetime import UTC, datetime

from fastapi import APIRouter, Request

from jobcore.config.settings import Settings, SettingsDep
from jobcore.v1.core.exceptions import create_success_response

router = APIRouter()


@router.get("/healthz", response_model=dict)
async def health_check(request: Request, settings: Settings = SettingsDep):
    """Health check with job queue status."""

    service = request.app.state.job_service
    jobs = await service.health_check()

    health_data = {
        "ok": jobs.status != "unhealthy",
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "storageBackend": service.settings.storage_backend.value,
        "jobs": jobs.model_dump(),
        "worker": {
            "processing": service.queue.is_processing,
            "activeJobs": service.queue.active_count,
            "concurrency": service.queue.concurrency,
            "schedulerRunning": service.scheduler.is_running,
        },
    }

    return create_success_response(data=health_data)
