import uuid
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobcore.config.logging import get_logger

logger = get_logger(__name__)


class JobsException(Exception):
    """Base exception for the job system."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(JobsException):
    """Raised when input is rejected before anything is persisted."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class HandlerNotFoundError(ValidationError):
    """Raised when a job is enqueued for a name with no registered handler."""

    def __init__(self, name: str):
        super().__init__(
            f"No handler registered for job: {name}", details={"name": name}
        )


class NotFoundError(JobsException):
    """Raised when a job or dead-letter entry is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class InvalidStateError(JobsException):
    """Raised when an operation is not legal for the current state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class HandlerExecutionError(JobsException):
    """Raised when a job handler fails while executing."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, details)


class JobTimeoutError(HandlerExecutionError):
    """Raised when a handler exceeds the job timeout."""

    def __init__(self, timeout_ms: int):
        super().__init__(
            f"Job timeout after {timeout_ms}ms", details={"timeout_ms": timeout_ms}
        )


def create_error_response(message: str) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {"success": False, "error": message}


def create_success_response(
    data: Any = None, message: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    response: dict[str, Any] = {"success": True}
    if data is not None:
        response["data"] = data
    if message is not None:
        response["message"] = message
    return response


async def jobs_exception_handler(request: Request, exc: JobsException) -> JSONResponse:
    """Handle job system exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.warning(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail)),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    logger.error(
        "Unhandled exception",
        exception=exc.__class__.__name__,
        message=str(exc),
        request_id=request_id,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(str(exc) or "Internal server error"),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to add request context and correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        from jobcore.config.logging import add_request_context

        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response
