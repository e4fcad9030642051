"""Reconciler loop.

One tick lists every workspace sitting in a processing status, advances
each of them as far as its transactions allow (bounded concurrency), then
tops up the reservation pool. Ticks never overlap.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from app.core.config import Settings
from app.core.monitoring import ReconcilerMetrics, reconciler_metrics
from app.core.notifications import notify_workspace_failed
from app.orchestrator.exceptions import RegistryError
from app.orchestrator.executor import TransactionExecutor
from app.orchestrator.models import TickSummary
from app.orchestrator.registry import WorkspaceRegistry
from app.orchestrator.reservation import ReservationPoolManager
from app.orchestrator.states import StateCatalog
from app.orchestrator.transactions.registry import TransactionRegistry
from app.schemas.workspace import WorkspaceRecord

logger = logging.getLogger(__name__)

FailureNotifier = Callable[[str, str], Awaitable[bool]]

# Per-workspace outcomes of one pass
ADVANCED = "advanced"
WAITING = "waiting"
FAILED = "failed"
SKIPPED = "skipped"


class Reconciler:
    """Drives every non-terminal workspace toward its next stable status."""

    def __init__(
        self,
        registry: WorkspaceRegistry,
        catalog: StateCatalog,
        transactions: TransactionRegistry,
        settings: Settings,
        pool: ReservationPoolManager | None = None,
        metrics: ReconcilerMetrics | None = None,
        notifier: FailureNotifier | None = None,
    ):
        self.registry = registry
        self.catalog = catalog
        self.transactions = transactions
        self.settings = settings
        self.pool = pool or ReservationPoolManager(registry, settings)
        self.metrics = metrics or reconciler_metrics
        self.notifier = notifier or (
            lambda workspace_id, reason: notify_workspace_failed(settings, workspace_id, reason)
        )
        self.executor = TransactionExecutor(
            registry, transactions, metrics=self.metrics, should_stop=lambda: self.stopping
        )
        self._tick_lock = asyncio.Lock()
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def tick(self) -> TickSummary:
        """Run one reconcile pass over all processing workspaces."""
        async with self._tick_lock:
            summary = TickSummary()
            try:
                if self._stopping:
                    summary.aborted = True
                    summary.abort_reason = "reconciler is stopping"
                    return summary
                await self._run(summary)
            finally:
                summary.complete()
                self.metrics.record_tick(summary)
                logger.info(
                    f"Reconciler tick finished in {summary.duration_seconds:.2f}s: "
                    f"{summary.workspaces_seen} seen, {summary.advanced} advanced, "
                    f"{summary.waiting} waiting, {summary.failed} failed, "
                    f"{summary.errors} errors"
                    + (f" (aborted: {summary.abort_reason})" if summary.aborted else "")
                )
            return summary

    async def _run(self, summary: TickSummary) -> None:
        try:
            workspaces = self.registry.list_by_status(self.catalog.processing_state_ids())
        except RegistryError as e:
            logger.error(f"Reconciler tick aborted, could not list workspaces: {e}")
            summary.aborted = True
            summary.abort_reason = str(e)
            return

        summary.workspaces_seen = len(workspaces)
        semaphore = asyncio.Semaphore(self.settings.reconciler_max_concurrency)
        registry_failures: list[RegistryError] = []

        # Registry calls are synchronous; a slow database stalls every worker
        async def _bounded(workspace: WorkspaceRecord) -> str:
            async with semaphore:
                if registry_failures:
                    return SKIPPED
                try:
                    return await self.reconcile_workspace(workspace)
                except RegistryError as e:
                    registry_failures.append(e)
                    raise

        results = await asyncio.gather(
            *(_bounded(workspace) for workspace in workspaces),
            return_exceptions=True,
        )

        for workspace, result in zip(workspaces, results):
            if isinstance(result, asyncio.CancelledError) or result == SKIPPED:
                continue
            if isinstance(result, BaseException):
                summary.errors += 1
                logger.error(
                    f"Reconciling workspace {workspace.id} raised: {result}",
                    exc_info=result,
                )
            elif result == ADVANCED:
                summary.advanced += 1
            elif result == FAILED:
                summary.failed += 1
            else:
                summary.waiting += 1

        if registry_failures:
            logger.error(f"Reconciler tick aborted, registry failed: {registry_failures[0]}")
            summary.aborted = True
            summary.abort_reason = str(registry_failures[0])
            return

        if self.settings.reservation_enabled and not self._stopping:
            try:
                summary.reservation_created = await self.pool.ensure_reservation() is not None
            except RegistryError as e:
                logger.error(f"Reconciler tick aborted, could not top up reservation pool: {e}")
                summary.aborted = True
                summary.abort_reason = str(e)

    async def reconcile_workspace(self, workspace: WorkspaceRecord) -> str:
        """Advance one workspace; returns advanced, waiting or failed."""
        state = self.catalog.get_state(workspace.status)
        ordered = self.transactions.resolve(state.requirements(workspace))

        satisfied, error = await self.executor.execute(workspace, ordered)

        if satisfied:
            moved = self.registry.update_status(
                workspace.id,
                state.finished_state_id,
                expected_status=state.processing_state_id,
            )
            if moved:
                logger.info(
                    f"Workspace {workspace.id} moved "
                    f"{state.processing_state_id.value} -> {state.finished_state_id.value}"
                )
                return ADVANCED
            return WAITING

        if error is not None:
            await self._notify_failure(workspace)
            return FAILED

        return WAITING

    async def _notify_failure(self, workspace: WorkspaceRecord) -> None:
        try:
            current = self.registry.find(workspace.id)
            reason = (current.failure_reason if current else None) or "unknown failure"
            await self.notifier(workspace.id, reason)
        except Exception as e:
            logger.warning(f"Failure notification for workspace {workspace.id} not sent: {e}")

    async def stop(self) -> None:
        """Ask the in-flight tick to wind down and wait for it."""
        if not self._stopping:
            logger.info("Stopping reconciler")
        self._stopping = True
        async with self._tick_lock:
            pass
        logger.info("Reconciler stopped")
