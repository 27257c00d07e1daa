"""
Job system input schemas: enqueue/schedule config, handler definitions,
execution context and query options.
"""

import threading
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from jobcore.v1.infra.jobs.models import JobPriority, JobStatus


class JobConfig(BaseModel):
    """Schema for enqueueing or scheduling a job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique job ID")
    name: str = Field(..., min_length=1, description="Job name, selects the handler")
    data: Any = Field(default=None, description="Job payload")
    priority: JobPriority | None = Field(default=None, description="Job priority")
    max_retries: int | None = Field(default=None, ge=0, description="Retry limit")
    retry_delay: int | None = Field(
        default=None, ge=0, description="Base retry backoff in milliseconds"
    )
    timeout: int | None = Field(
        default=None, ge=1, description="Handler timeout in milliseconds"
    )
    cron_expression: str | None = Field(
        default=None, description="Cron expression for scheduled jobs"
    )


class JobDefaults(BaseModel):
    """Per-handler defaults applied when the caller leaves a field unset."""

    priority: JobPriority | None = None
    max_retries: int | None = Field(default=None, ge=0)
    retry_delay: int | None = Field(default=None, ge=0)
    timeout: int | None = Field(default=None, ge=1)


class JobContext(BaseModel):
    """Execution context handed to a job handler."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    job_id: str
    name: str
    data: Any = None
    attempt: int
    logger: Any
    cancel_event: threading.Event = Field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        """True once the job deadline has passed."""
        return self.cancel_event.is_set()


JobHandler = Callable[[JobContext], Any]


class JobDefinition(BaseModel):
    """Handler registration input."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    handler: Callable[..., Any]
    default_config: JobDefaults | None = None


class JobQueryOptions(BaseModel):
    """Schema for job listing filters."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str | None = Field(default=None, description="Filter by job name")
    status: JobStatus | list[JobStatus] | None = Field(
        default=None, description="Filter by one or several statuses"
    )
    priority: JobPriority | None = Field(default=None, description="Filter by priority")
    limit: int | None = Field(default=None, ge=0, description="Maximum results")
    skip: int | None = Field(default=None, ge=0, description="Results to skip")
    sort_by: Literal["created_at", "priority", "next_run"] | None = None
    sort_order: Literal["asc", "desc"] = "asc"

    @property
    def statuses(self) -> list[JobStatus] | None:
        if self.status is None:
            return None
        if isinstance(self.status, list):
            return self.status
        return [self.status]


class DataCleanupJobConfig(BaseModel):
    """Options for the built-in data cleanup job."""

    objects: list[str] = Field(default_factory=list)
    retention_days: int = Field(default=90, ge=0)


class ReportJobConfig(BaseModel):
    """Options for the built-in report generation job."""

    report_type: str = "default"
    parameters: dict[str, Any] | None = None
    format: Literal["json", "csv", "pdf"] = "json"
    destination: str | None = None


class BackupJobConfig(BaseModel):
    """Options for the built-in backup job."""

    destination: str
    objects: list[str] | None = None
    compress: bool = False
    include_metadata: bool = True


class JobExecution(BaseModel):
    """Summary of one run of a named job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    status: Literal["success", "running", "failed", "pending", "cancelled"]
    started_at: str
    completed_at: str | None = None
    error: str | None = None
    duration_ms: int | None = None


class HealthCheckItem(BaseModel):
    name: str
    status: Literal["passed", "warning", "failed"]
    message: str


class JobServiceHealth(BaseModel):
    """Health report for the job service."""

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: str
    message: str
    uptime_ms: int
    response_time_ms: float
    checks: list[HealthCheckItem] = Field(default_factory=list)
