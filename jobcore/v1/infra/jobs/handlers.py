"""
Built-in job handlers.

These are placeholders that show the handler contract: each takes a
``JobContext``, logs through ``context.logger`` and returns a summary dict.
"""

from datetime import timedelta
from typing import Any

from jobcore.v1.infra.jobs.models import epoch_ms, utcnow
from jobcore.v1.infra.jobs.schemas import (
    BackupJobConfig,
    DataCleanupJobConfig,
    JobContext,
    JobDefaults,
    JobDefinition,
    ReportJobConfig,
)


class DataCleanupHandler:
    """
    Deletes records older than the retention window.

    Payload is ignored; the objects and retention come from the config.
    """

    def __init__(self, config: DataCleanupJobConfig):
        self.config = config

    async def __call__(self, context: JobContext) -> dict[str, int]:
        context.logger.info(
            "Starting data cleanup", objects=self.config.objects
        )

        cutoff = utcnow() - timedelta(days=self.config.retention_days)
        results: dict[str, int] = {}

        for object_name in self.config.objects:
            context.logger.info(
                "Cleaning object", object=object_name, cutoff=cutoff.isoformat()
            )
            deleted_count = 0
            results[object_name] = deleted_count
            context.logger.info(
                "Deleted records", object=object_name, deleted=deleted_count
            )

        context.logger.info("Data cleanup completed", results=results)
        return results


class ReportGenerationHandler:
    """Generates a report and returns where it was written."""

    def __init__(self, config: ReportJobConfig):
        self.config = config

    async def __call__(self, context: JobContext) -> dict[str, Any]:
        context.logger.info("Generating report", report_type=self.config.report_type)

        report_data = {
            "reportType": self.config.report_type,
            "parameters": self.config.parameters,
            "format": self.config.format,
            "generatedAt": utcnow().isoformat(),
        }
        destination = self.config.destination or (
            f"/tmp/reports/{self.config.report_type}_{epoch_ms()}.{self.config.format}"
        )

        context.logger.info("Report generated", destination=destination)
        return {"destination": destination, "reportData": report_data, "status": "success"}


class BackupHandler:
    """Backs up the configured objects to a destination directory."""

    def __init__(self, config: BackupJobConfig):
        self.config = config

    async def __call__(self, context: JobContext) -> dict[str, Any]:
        context.logger.info("Starting backup", destination=self.config.destination)

        backup_info = {
            "destination": self.config.destination,
            "objects": self.config.objects or ["all"],
            "compress": self.config.compress,
            "includeMetadata": self.config.include_metadata,
            "timestamp": utcnow().isoformat(),
        }
        context.logger.info("Backing up objects", objects=backup_info["objects"])

        extension = "tar.gz" if self.config.compress else "json"
        backup_file = f"{self.config.destination}/backup_{epoch_ms()}.{extension}"

        context.logger.info("Backup completed", backup_file=backup_file)
        return {
            "backupFile": backup_file,
            "backupInfo": backup_info,
            "status": "success",
            "size": "0 KB",
        }


def create_data_cleanup_job(config: DataCleanupJobConfig) -> JobDefinition:
    return JobDefinition(
        name="data-cleanup",
        handler=DataCleanupHandler(config),
        default_config=JobDefaults(max_retries=2, timeout=300_000),
    )


def create_report_job(config: ReportJobConfig) -> JobDefinition:
    return JobDefinition(
        name="report-generation",
        handler=ReportGenerationHandler(config),
        default_config=JobDefaults(max_retries=1, timeout=600_000),
    )


def create_backup_job(config: BackupJobConfig) -> JobDefinition:
    return JobDefinition(
        name="backup",
        handler=BackupHandler(config),
        default_config=JobDefaults(max_retries=2, timeout=1_800_000),
    )


BUILTIN_JOBS = {
    "data-cleanup": create_data_cleanup_job,
    "report-generation": create_report_job,
    "backup": create_backup_job,
}
