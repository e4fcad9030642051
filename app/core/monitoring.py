"""Reconciler metrics collection.

Provides:
- Tick counters (completed, aborted) and recent tick history
- Transaction outcome counters per transaction ID
- Workspace lifecycle counters (advanced, failed, reservations created)
"""

import logging
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from app.orchestrator.models import Outcome, TickSummary

logger = logging.getLogger(__name__)


class ReconcilerMetrics:
    """In-process counters for the reconciler and executor."""

    def __init__(self, max_history: int = 100):
        self._tick_history: list[TickSummary] = []
        self._max_history = max_history
        self._transaction_outcomes: Counter[tuple[str, str]] = Counter()
        self._rollbacks: Counter[tuple[str, bool]] = Counter()
        self.ticks_total = 0
        self.ticks_aborted = 0
        self.workspaces_advanced = 0
        self.workspaces_failed = 0
        self.reservations_created = 0

    def record_transaction(self, transaction_id: str, outcome: Outcome | str) -> None:
        """Count one apply_idempotent outcome."""
        self._transaction_outcomes[(str(transaction_id), Outcome(outcome).value)] += 1

    def record_rollback(self, transaction_id: str, succeeded: bool) -> None:
        """Count one compensating rollback call."""
        self._rollbacks[(str(transaction_id), succeeded)] += 1

    def record_tick(self, summary: TickSummary) -> None:
        """Record a finished tick."""
        if summary.finished_at is None:
            summary.complete()

        self.ticks_total += 1
        if summary.aborted:
            self.ticks_aborted += 1
        self.workspaces_advanced += summary.advanced
        self.workspaces_failed += summary.failed
        if summary.reservation_created:
            self.reservations_created += 1

        self._tick_history.append(summary)
        if len(self._tick_history) > self._max_history:
            self._tick_history = self._tick_history[-self._max_history:]

        logger.debug(f"Recorded tick #{self.ticks_total} ({len(self._tick_history)} in history)")

    def transaction_count(self, transaction_id: str, outcome: Outcome | str) -> int:
        return self._transaction_outcomes[(str(transaction_id), Outcome(outcome).value)]

    @property
    def last_tick(self) -> TickSummary | None:
        return self._tick_history[-1] if self._tick_history else None

    def get_recent_ticks(self, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent tick summaries, oldest first."""
        return [t.to_dict() for t in self._tick_history[-limit:]]

    def get_summary(self) -> dict[str, Any]:
        """Get all counters for the monitoring endpoint."""
        outcomes: dict[str, dict[str, int]] = {}
        for (transaction_id, outcome), count in sorted(self._transaction_outcomes.items()):
            outcomes.setdefault(transaction_id, {})[outcome] = count

        rollbacks: dict[str, dict[str, int]] = {}
        for (transaction_id, succeeded), count in sorted(self._rollbacks.items()):
            key = "succeeded" if succeeded else "failed"
            rollbacks.setdefault(transaction_id, {})[key] = count

        return {
            "ticks": {
                "total": self.ticks_total,
                "aborted": self.ticks_aborted,
                "last": self.last_tick.to_dict() if self.last_tick else None,
            },
            "workspaces": {
                "advanced": self.workspaces_advanced,
                "failed": self.workspaces_failed,
                "reservations_created": self.reservations_created,
            },
            "transactions": outcomes,
            "rollbacks": rollbacks,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._tick_history.clear()
        self._transaction_outcomes.clear()
        self._rollbacks.clear()
        self.ticks_total = 0
        self.ticks_aborted = 0
        self.workspaces_advanced = 0
        self.workspaces_failed = 0
        self.reservations_created = 0
        logger.info("Reconciler metrics reset")


# Global metrics instance
reconciler_metrics = ReconcilerMetrics()
