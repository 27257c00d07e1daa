"""Tests for CLI commands"""

from unittest.mock import Mock, patch

import httpx
import pytest
from typer.testing import CliRunner

from cli.client.base import APIClient, JobCoreError
from cli.main import app
from cli.utils.config_manager import ConfigManager


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


def make_mock_client():
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


SAMPLE_JOB = {
    "id": "job-1",
    "name": "backup",
    "status": "failed",
    "priority": "normal",
    "attempts": 3,
    "maxRetries": 2,
    "timeout": 1000,
    "createdAt": "2024-01-01T00:00:00Z",
    "error": "disk full",
}


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Job Core CLI v0.1.0" in result.stdout

    @patch("cli.main.JobCoreClient")
    def test_status_success(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.health_check.return_value = {
            "version": "0.1.0",
            "environment": "development",
            "jobs": {"status": "healthy", "message": "Queue: 0 pending, 0 running"},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.stdout
        assert "Queue: 0 pending" in result.stdout

    @patch("cli.main.JobCoreClient")
    def test_status_failure(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.health_check.side_effect = JobCoreError("Connection failed")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout


class TestJobCommands:
    """Test job commands"""

    @patch("cli.commands.jobs.JobCoreClient")
    def test_list_jobs(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.list_jobs.return_value = [SAMPLE_JOB]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["list", "--status", "failed", "--name", "backup"])
        assert result.exit_code == 0
        assert "job-1" in result.stdout
        assert "3/3" in result.stdout
        mock_client.list_jobs.assert_called_once_with(
            status=["failed"], name="backup", limit=20, skip=0
        )

    @patch("cli.commands.jobs.JobCoreClient")
    def test_list_jobs_empty(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.list_jobs.return_value = []
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No jobs found" in result.stdout

    @patch("cli.commands.jobs.JobCoreClient")
    def test_show_job(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.get_job.return_value = SAMPLE_JOB
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["show", "job-1"])
        assert result.exit_code == 0
        assert "Job Details" in result.stdout
        assert "disk full" in result.stdout

    @patch("cli.commands.jobs.JobCoreClient")
    def test_show_missing_job(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.get_job.side_effect = JobCoreError("API Error 404: Job not found")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["show", "missing"])
        assert result.exit_code == 1
        assert "Failed to get job" in result.stdout

    @patch("cli.commands.jobs.JobCoreClient")
    def test_stats(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.get_stats.return_value = {"total": 4, "failed": 1, "completed": 3}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["stats"])
        assert result.exit_code == 0
        assert "Queue Statistics" in result.stdout
        assert "Total:" in result.stdout

    @patch("cli.commands.jobs.JobCoreClient")
    def test_retry(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.retry_job.return_value = {"id": "job-1_retry_1700000000000"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["retry", "job-1"])
        assert result.exit_code == 0
        assert "job-1_retry_1700000000000" in result.stdout

    @patch("cli.commands.jobs.JobCoreClient")
    def test_cancel_rejected(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.cancel_job.side_effect = JobCoreError(
            "API Error 400: Cannot cancel a running job"
        )
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["cancel", "job-1"])
        assert result.exit_code == 1
        assert "Failed to cancel job" in result.stdout


class TestDeadLetterCommands:
    """Test dead-letter queue commands"""

    @patch("cli.commands.dlq.JobCoreClient")
    def test_list(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.list_dead_letters.return_value = [
            {
                "id": "dlq_1",
                "originalJobId": "job-1",
                "name": "backup",
                "retryCount": 3,
                "failedAt": "2024-01-01T00:00:00Z",
                "error": "disk full",
            }
        ]
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["dlq", "list"])
        assert result.exit_code == 0
        assert "dlq_1" in result.stdout

    @patch("cli.commands.dlq.JobCoreClient")
    def test_list_empty(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.list_dead_letters.return_value = []
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["dlq", "list"])
        assert result.exit_code == 0
        assert "Dead-letter queue is empty" in result.stdout

    @patch("cli.commands.dlq.JobCoreClient")
    def test_replay(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.replay_dead_letter.return_value = {"jobId": "backup_replay_1"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["dlq", "replay", "dlq_1"])
        assert result.exit_code == 0
        assert "backup_replay_1" in result.stdout

    @patch("cli.commands.dlq.JobCoreClient")
    def test_purge_with_confirmation_flag(self, mock_client_class, runner):
        mock_client = make_mock_client()
        mock_client.purge_dead_letters.return_value = {"purged": 2}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["dlq", "purge", "--older-than-days", "7", "--yes"])
        assert result.exit_code == 0
        assert "Purged 2 dead-letter entries" in result.stdout
        mock_client.purge_dead_letters.assert_called_once_with(older_than_days=7)

    @patch("cli.commands.dlq.JobCoreClient")
    def test_purge_declined(self, mock_client_class, runner):
        result = runner.invoke(app, ["dlq", "purge"], input="n\n")
        assert result.exit_code == 0
        assert "Purge cancelled" in result.stdout
        mock_client_class.assert_not_called()


class TestConfigCommands:
    """Test configuration commands"""

    def test_set_rejects_bad_url(self, runner):
        result = runner.invoke(app, ["config", "set", "api.base_url", "localhost:8000"])
        assert result.exit_code == 1
        assert "must start with http" in result.stdout

    def test_config_manager_round_trip(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path / "jobcore")

        assert manager.get("api.timeout") == 30
        manager.set("api.base_url", "http://jobs.internal:9000")

        assert manager.get("api.base_url") == "http://jobs.internal:9000"
        assert manager.get("display.jobs_per_page") == 20
        assert manager.get("missing.key", "fallback") == "fallback"

        manager.reset()
        assert manager.get("api.base_url") == "http://localhost:8000"

    def test_env_overrides_default_url(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JOBCORE_API_URL", "http://from-env:8000")
        manager = ConfigManager(config_dir=tmp_path / "jobcore")

        assert manager.get("api.base_url") == "http://from-env:8000"


class TestAPIClient:
    """Test response envelope handling"""

    def make_client(self, handler):
        client = APIClient(base_url="http://test")
        client.client = httpx.Client(
            base_url="http://test", transport=httpx.MockTransport(handler)
        )
        return client

    def test_returns_data(self):
        def handler(request):
            assert request.url.path == "/api/v1/jobs/stats"
            return httpx.Response(200, json={"success": True, "data": {"total": 1}})

        with self.make_client(handler) as client:
            assert client.get("/jobs/stats") == {"total": 1}

    def test_returns_message_without_data(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "message": "Job cancelled"})

        with self.make_client(handler) as client:
            assert client.post("/jobs/j1/cancel") == {"message": "Job cancelled"}

    def test_raises_on_error_envelope(self):
        def handler(request):
            return httpx.Response(404, json={"success": False, "error": "Job not found"})

        with self.make_client(handler) as client:
            with pytest.raises(JobCoreError, match="Job not found"):
                client.get("/jobs/missing")

    def test_raises_on_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.make_client(handler) as client:
            with pytest.raises(JobCoreError, match="Connection failed"):
                client.get("/healthz")
