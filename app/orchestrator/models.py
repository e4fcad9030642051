"""Result types exchanged between transactions, executor and reconciler."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.orchestrator.exceptions import HardFailureError


class Outcome(str, Enum):
    """Outcome of a single apply_idempotent call."""

    SUCCESS = "success"
    NEEDS_TIME = "needs_time"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionResult:
    """Tagged result returned by Transaction.apply_idempotent.

    NEEDS_TIME is not an error: the executor stops for this tick and the
    next tick retries the same transaction.
    """

    outcome: Outcome
    reason: str | None = None
    error: BaseException | None = None
    markers: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **markers: Any) -> "TransactionResult":
        """Transaction is satisfied; markers are persisted on the workspace."""
        return cls(outcome=Outcome.SUCCESS, markers=markers)

    @classmethod
    def needs_time(cls, reason: str) -> "TransactionResult":
        return cls(outcome=Outcome.NEEDS_TIME, reason=reason)

    @classmethod
    def failed(cls, error: BaseException | str) -> "TransactionResult":
        if isinstance(error, str):
            error = HardFailureError(error)
        return cls(outcome=Outcome.FAILED, reason=str(error), error=error)

    @property
    def is_success(self) -> bool:
        return self.outcome == Outcome.SUCCESS


@dataclass(frozen=True)
class ExecutionResult:
    """What one Executor pass over a workspace achieved."""

    all_satisfied: bool
    error: BaseException | None = None

    def __iter__(self):
        # Allows `satisfied, error = await executor.execute(...)`
        return iter((self.all_satisfied, self.error))


@dataclass
class TickSummary:
    """Counters for one reconciler tick."""

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    workspaces_seen: int = 0
    advanced: int = 0
    waiting: int = 0
    failed: int = 0
    errors: int = 0
    reservation_created: bool = False
    aborted: bool = False
    abort_reason: str | None = None

    def complete(self) -> None:
        self.finished_at = datetime.now(UTC)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "workspaces_seen": self.workspaces_seen,
            "advanced": self.advanced,
            "waiting": self.waiting,
            "failed": self.failed,
            "errors": self.errors,
            "reservation_created": self.reservation_created,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
        }
