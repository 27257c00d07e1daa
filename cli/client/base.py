"""Base HTTP Client for the Job Core API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()


class JobCoreError(Exception):
    """Base exception for Job Core API errors"""

    pass


class APIClient:
    """HTTP client for the Job Core API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: int = 30,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = headers or {}
        self.client = httpx.Client(
            base_url=self.base_url, timeout=timeout, headers=self.default_headers
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle API response and extract data"""
        try:
            data = response.json()
        except ValueError:
            console.print(f"[red]Failed to parse response: {response.text}[/red]")
            raise JobCoreError(f"Invalid JSON response: {response.status_code}") from None

        if response.status_code >= 400 or not data.get("success", False):
            error_msg = data.get("error") or data.get("detail") or "Unknown error"
            console.print(Panel(f"[red]{error_msg}[/red]", title="API Error"))
            raise JobCoreError(f"API Error {response.status_code}: {error_msg}")

        # Action endpoints answer with a message and no data
        if "data" not in data:
            return {"message": data.get("message")}
        return data["data"]

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request"""
        try:
            response = self.client.get(f"/api/v1{path}", params=params)
            return self._handle_response(response)
        except httpx.RequestError as e:
            console.print(f"[red]Connection error: {e}[/red]")
            raise JobCoreError(f"Connection failed: {e}") from None

    def post(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make POST request"""
        try:
            response = self.client.post(f"/api/v1{path}", params=params)
            return self._handle_response(response)
        except httpx.RequestError as e:
            console.print(f"[red]Connection error: {e}[/red]")
            raise JobCoreError(f"Connection failed: {e}") from None
