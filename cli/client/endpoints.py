"""API Endpoint Wrappers"""

from typing import Any

from ..utils.config_manager import config
from .base import APIClient, JobCoreError

__all__ = ["JobCoreClient", "JobCoreError"]


class JobCoreClient:
    """High-level client with one method per admin endpoint"""

    def __init__(self, base_url: str | None = None, headers: dict[str, str] | None = None):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=api_config.get("timeout", 30),
            headers=final_headers,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def list_jobs(
        self,
        status: list[str] | None = None,
        name: str | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[dict[str, Any]]:
        """List jobs with filters"""
        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        if name:
            params["name"] = name
        if limit is not None:
            params["limit"] = limit
        if skip is not None:
            params["skip"] = skip
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}")

    def get_stats(self) -> dict[str, Any]:
        return self.api.get("/jobs/stats")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Re-enqueue a failed job; returns the new job"""
        return self.api.post(f"/jobs/{job_id}/retry")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/{job_id}/cancel")

    # Dead Letter Endpoints
    def list_dead_letters(self, limit: int | None = None, offset: int = 0) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"offset": offset}
        if limit is not None:
            params["limit"] = limit
        return self.api.get("/jobs/dead-letters", params)

    def replay_dead_letter(self, entry_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/dead-letters/{entry_id}/replay")

    def purge_dead_letters(self, older_than_days: int | None = None) -> dict[str, Any]:
        params = {"older_than_days": older_than_days} if older_than_days is not None else None
        return self.api.post("/jobs/dead-letters/purge", params)
