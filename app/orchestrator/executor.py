"""Transaction executor.

Applies a workspace's pending transactions strictly in resolved order:

- completed transactions are skipped and never re-applied;
- NEEDS_TIME stops the pass without error, the next tick resumes there;
- FAILED stops the pass, rolls back every completed transaction before it
  in reverse order (best effort) and moves the workspace to FAILED.
"""

import logging
from collections.abc import Callable

from app.core.monitoring import ReconcilerMetrics, reconciler_metrics
from app.orchestrator.exceptions import HardFailureError
from app.orchestrator.models import ExecutionResult, Outcome, TransactionResult
from app.orchestrator.registry import WorkspaceRegistry
from app.orchestrator.transactions.registry import TransactionRegistry
from app.schemas.workspace import StateID, TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)


class TransactionExecutor:
    """Runs transactions for one workspace at a time."""

    def __init__(
        self,
        registry: WorkspaceRegistry,
        transactions: TransactionRegistry,
        metrics: ReconcilerMetrics | None = None,
        should_stop: Callable[[], bool] | None = None,
    ):
        self.registry = registry
        self.transactions = transactions
        self.metrics = metrics or reconciler_metrics
        self._should_stop = should_stop or (lambda: False)

    async def execute(
        self,
        workspace: WorkspaceRecord,
        ordered_ids: list[TransactionID],
    ) -> ExecutionResult:
        """Apply every not-yet-completed transaction in ``ordered_ids``."""
        completed = self.registry.completed_transactions(workspace.id)
        applied_in_order: list[TransactionID] = []

        for transaction_id in ordered_ids:
            if transaction_id in completed:
                applied_in_order.append(transaction_id)
                continue

            if self._should_stop():
                logger.info(
                    f"Stop requested; leaving workspace {workspace.id} before "
                    f"{transaction_id.value}"
                )
                return ExecutionResult(all_satisfied=False)

            transaction = self.transactions.get(transaction_id)
            try:
                result = await transaction.apply_idempotent(workspace)
            except Exception as e:
                logger.error(
                    f"{transaction_id.value} raised for workspace {workspace.id}: {e}",
                    exc_info=True,
                )
                result = TransactionResult.failed(e)

            self.metrics.record_transaction(transaction_id.value, result.outcome)

            if result.outcome == Outcome.SUCCESS:
                if result.markers:
                    workspace = self.registry.update_markers(workspace.id, **result.markers)
                self.registry.mark_completed(workspace.id, transaction_id)
                completed.add(transaction_id)
                applied_in_order.append(transaction_id)
                logger.info(f"{transaction_id.value} applied to workspace {workspace.id}")
                continue

            if result.outcome == Outcome.NEEDS_TIME:
                logger.info(
                    f"Workspace {workspace.id} waiting on {transaction_id.value}: "
                    f"{result.reason or 'not ready'}"
                )
                return ExecutionResult(all_satisfied=False)

            error = result.error or HardFailureError(result.reason or "transaction failed")
            await self._rollback(workspace, applied_in_order)
            self.registry.update_status(
                workspace.id,
                StateID.FAILED,
                failure_reason=f"{transaction_id.value}: {result.reason or error}",
            )
            logger.error(
                f"Workspace {workspace.id} failed at {transaction_id.value}: {error}"
            )
            return ExecutionResult(all_satisfied=False, error=error)

        return ExecutionResult(all_satisfied=True)

    async def _rollback(
        self, workspace: WorkspaceRecord, applied_in_order: list[TransactionID]
    ) -> None:
        """Compensate applied transactions newest first; keep going on errors."""
        rolled_back: list[TransactionID] = []
        for transaction_id in reversed(applied_in_order):
            transaction = self.transactions.get(transaction_id)
            try:
                await transaction.rollback_idempotent(workspace)
            except Exception as e:
                self.metrics.record_rollback(transaction_id.value, succeeded=False)
                logger.error(
                    f"Rollback of {transaction_id.value} for workspace {workspace.id} "
                    f"failed: {e}",
                    exc_info=True,
                )
                continue
            self.metrics.record_rollback(transaction_id.value, succeeded=True)
            rolled_back.append(transaction_id)
            logger.info(f"Rolled back {transaction_id.value} for workspace {workspace.id}")

        self.registry.clear_completed(workspace.id, rolled_back)
