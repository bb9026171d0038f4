"""API Endpoint Wrappers - Typed API calls"""

from typing import Any

from ..utils.config_manager import config
from .base import APIClient, TextStreamClientError

CONNECTION_HEADER = "X-Connection-ID"

__all__ = ["TextStreamClient", "TextStreamClientError"]


class TextStreamClient:
    """High-level client with typed endpoint methods"""

    def __init__(self, base_url: str | None = None, connection_id: str | None = None):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        self.connection_id = connection_id or config.get_connection_id()

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers={CONNECTION_HEADER: self.connection_id},
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

    # Job Endpoints
    def process_text(self, text: str) -> dict[str, Any]:
        """Submit text for background processing"""
        return self.api.post("/jobs", {"text": text})

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}")

    def list_jobs(self) -> dict[str, Any]:
        """List jobs owned by this CLI's connection"""
        return self.api.get("/jobs")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/{job_id}/cancel")

    def get_job_stats(self) -> dict[str, Any]:
        return self.api.get("/jobs/stats/overview")
