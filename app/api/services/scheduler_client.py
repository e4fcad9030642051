"""Discovery scheduler API client."""

import logging
from enum import Enum
from typing import Any

import httpx

from app.core.config import Settings
from app.core.retry import SCHEDULER_API_POLICY, is_not_found_error, retry_with_backoff

logger = logging.getLogger(__name__)


class DescribeAllJobsStatus(str, Enum):
    """Overall discovery progress reported by the scheduler."""

    NO_JOB_TO_RUN = "NO_JOB_TO_RUN"
    JOBS_RUNNING = "JOBS_RUNNING"
    JOBS_FINISHED = "JOBS_FINISHED"
    RESOURCES_PUBLISHED = "RESOURCES_PUBLISHED"


class AnalyticsJobStatus(str, Enum):
    CREATED = "CREATED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_FAILURE = "COMPLETED_WITH_FAILURE"


FINISHED_ANALYTICS_STATUSES = frozenset({
    AnalyticsJobStatus.COMPLETED,
    AnalyticsJobStatus.COMPLETED_WITH_FAILURE,
})


class SchedulerClient:
    """Client for one scheduler deployment, addressed by namespace."""

    def __init__(self, settings: Settings, namespace: str):
        self.settings = settings
        self.namespace = namespace
        self.base_url = settings.scheduler_base_url.replace("%NAMESPACE%", namespace).rstrip("/")

    @retry_with_backoff(SCHEDULER_API_POLICY)
    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
    ) -> Any:
        """Make request to the scheduler as an internal caller."""
        headers = {"X-User-Role": "internal", "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
            response = await client.request(
                method=method,
                url=f"{self.base_url}{endpoint}",
                headers=headers,
                params=params,
            )
            response.raise_for_status()
            return response.json() if response.content else None

    async def get_describe_all_jobs_status(self) -> DescribeAllJobsStatus | None:
        """Discovery progress across all of the workspace's connections."""
        data = await self._request("GET", "/api/v1/describe/status")
        if not data:
            return None
        value = data if isinstance(data, str) else data.get("status")
        try:
            return DescribeAllJobsStatus(value)
        except ValueError:
            logger.warning(f"Unknown describe status '{value}' from {self.namespace} scheduler")
            return None

    async def trigger_analytics_job(self) -> int:
        """Start an analytics run and return its job ID."""
        data = await self._request("PUT", "/api/v1/analytics/trigger")
        job_id = data if isinstance(data, int) else (data or {}).get("id")
        if not job_id:
            raise ValueError(f"Scheduler returned no analytics job ID: {data!r}")
        logger.info(f"Triggered analytics job {job_id} in {self.namespace}")
        return int(job_id)

    async def get_analytics_job(self, job_id: int) -> dict[str, Any] | None:
        """Get an analytics job, or None if the scheduler does not know it."""
        try:
            return await self._request("GET", f"/api/v1/analytics/jobs/{job_id}")
        except httpx.HTTPStatusError as e:
            if is_not_found_error(e):
                return None
            raise

    async def get_analytics_job_status(self, job_id: int) -> AnalyticsJobStatus | None:
        job = await self.get_analytics_job(job_id)
        if not job:
            return None
        try:
            return AnalyticsJobStatus(job.get("status"))
        except ValueError:
            return None
