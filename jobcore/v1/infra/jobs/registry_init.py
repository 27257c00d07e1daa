"""
Built-in job registration.
"""

from jobcore.config.logging import get_logger
from jobcore.v1.infra.jobs.handlers import (
    create_backup_job,
    create_data_cleanup_job,
    create_report_job,
)
from jobcore.v1.infra.jobs.schemas import (
    BackupJobConfig,
    DataCleanupJobConfig,
    ReportJobConfig,
)
from jobcore.v1.infra.jobs.worker import JobQueue

logger = get_logger(__name__)


def register_builtin_jobs(queue: JobQueue) -> None:
    """Register the built-in job handlers on a queue."""

    logger.info("Registering built-in job handlers")

    queue.register_handler(
        create_data_cleanup_job(DataCleanupJobConfig(objects=[], retention_days=90))
    )
    queue.register_handler(create_report_job(ReportJobConfig(report_type="default")))
    queue.register_handler(create_backup_job(BackupJobConfig(destination="/tmp/backups")))

    logger.info("Built-in job handlers registered", registered_handlers=queue.list_handlers())
