"""Scheduler-backed transactions: first discovery and analytics run."""

import logging
from collections.abc import Callable

from app.api.services.scheduler_client import (
    FINISHED_ANALYTICS_STATUSES,
    DescribeAllJobsStatus,
    SchedulerClient,
)
from app.orchestrator.base import BaseTransaction
from app.orchestrator.models import TransactionResult
from app.schemas.workspace import TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)

SchedulerFactory = Callable[[WorkspaceRecord], SchedulerClient]


class EnsureDiscoveryFinished(BaseTransaction):
    """Wait until discovery has published resources for every connection."""

    transaction_id = TransactionID.ENSURE_DISCOVERY_FINISHED
    description = "Wait for first discovery"

    def __init__(self, scheduler_for: SchedulerFactory):
        self.scheduler_for = scheduler_for

    def requirements(self) -> list[TransactionID]:
        return [
            TransactionID.ENSURE_WORKSPACE_PODS_RUNNING,
            TransactionID.ENSURE_CREDENTIAL_ONBOARDED,
        ]

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        try:
            status = await self.scheduler_for(workspace).get_describe_all_jobs_status()
        except Exception as e:
            return self.result_from_error(e, "reading discovery status")

        if status != DescribeAllJobsStatus.RESOURCES_PUBLISHED:
            return TransactionResult.needs_time(
                f"discovery status is {status.value if status else 'unknown'}"
            )
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        return None


class EnsureJobsRunning(BaseTransaction):
    """Start the first analytics run, once."""

    transaction_id = TransactionID.ENSURE_JOBS_RUNNING
    description = "Trigger first analytics run"

    def __init__(self, scheduler_for: SchedulerFactory):
        self.scheduler_for = scheduler_for

    def requirements(self) -> list[TransactionID]:
        return [TransactionID.ENSURE_DISCOVERY_FINISHED]

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        scheduler = self.scheduler_for(workspace)
        try:
            if workspace.analytics_job_id:
                job = await scheduler.get_analytics_job(workspace.analytics_job_id)
                if job is not None:
                    return TransactionResult.success()
                logger.warning(
                    f"Analytics job {workspace.analytics_job_id} of workspace "
                    f"{workspace.id} is unknown to the scheduler, triggering again"
                )
            job_id = await scheduler.trigger_analytics_job()
        except Exception as e:
            return self.result_from_error(e, "triggering analytics job")
        return TransactionResult.success(analytics_job_id=job_id)

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        return None


class EnsureJobsFinished(BaseTransaction):
    """Wait for the first analytics run to finish."""

    transaction_id = TransactionID.ENSURE_JOBS_FINISHED
    description = "Wait for first analytics run"

    def __init__(self, scheduler_for: SchedulerFactory):
        self.scheduler_for = scheduler_for

    def requirements(self) -> list[TransactionID]:
        return [TransactionID.ENSURE_JOBS_RUNNING]

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        if not workspace.analytics_job_id:
            return TransactionResult.failed("analytics job was never triggered")
        try:
            status = await self.scheduler_for(workspace).get_analytics_job_status(
                workspace.analytics_job_id
            )
        except Exception as e:
            return self.result_from_error(e, "reading analytics job")

        if status in FINISHED_ANALYTICS_STATUSES:
            return TransactionResult.success()
        return TransactionResult.needs_time(
            f"analytics job {workspace.analytics_job_id} is {status.value if status else 'unknown'}"
        )

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        return None
