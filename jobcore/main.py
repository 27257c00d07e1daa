from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from jobcore.config.logging import setup_logging
from jobcore.config.settings import Settings, settings as default_settings
from jobcore.v1.core.exceptions import (
    JobsException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    jobs_exception_handler,
)
from jobcore.v1.healthz import router as health_router
from jobcore.v1.infra.jobs.routes import router as jobs_router
from jobcore.v1.infra.jobs.service import JobService


@asynccontextmanager
async def lifespan(app: FastAPI):
    service: JobService = app.state.job_service
    await service.start()
    try:
        yield
    finally:
        await service.stop()


def create_app(
    settings: Settings | None = None, service: JobService | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Background job queue and cron scheduler",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/api/v1/openapi.json" if settings.debug else None,
        docs_url="/api/v1/docs" if settings.debug else None,
        redoc_url="/api/v1/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # The service exists before startup so requests never see a missing one
    app.state.job_service = service or JobService(settings)

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(JobsException, jobs_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /api/v1 prefix
    app.include_router(health_router, prefix="/api/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/api/v1")

    # Freeze the handler registry outside development to prevent runtime changes
    if settings.environment != "development":
        app.state.job_service.queue.registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobcore.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
