"""Abstract base classes for lifecycle states and provisioning transactions."""

import logging
from abc import ABC, abstractmethod

from app.core.retry import is_transient_error
from app.orchestrator.models import TransactionResult
from app.schemas.workspace import StateID, TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)


class BaseTransaction(ABC):
    """A named, idempotent unit of provisioning work.

    Subclasses set ``transaction_id`` and implement ``apply_idempotent`` and
    ``rollback_idempotent``. Both must be safe to call any number of times,
    including after a partial earlier attempt.
    """

    transaction_id: TransactionID
    description: str = ""

    def requirements(self) -> list[TransactionID]:
        """Transactions that must have completed before this one runs."""
        return []

    @abstractmethod
    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        """Bring the external system to the state this transaction promises."""
        pass

    @abstractmethod
    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        """Undo ``apply_idempotent``; missing entities are not an error."""
        pass

    def result_from_error(self, error: Exception, action: str) -> TransactionResult:
        """Map an external error onto NEEDS_TIME or FAILED."""
        if is_transient_error(error):
            logger.info(f"{self.transaction_id.value}: transient error while {action}: {error}")
            return TransactionResult.needs_time(f"{action}: {error}")
        logger.error(f"{self.transaction_id.value}: failed while {action}: {error}")
        return TransactionResult.failed(error)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.transaction_id.value})>"


class BaseState(ABC):
    """A lifecycle phase: the status it processes, where it ends, what it needs."""

    processing_state_id: StateID
    finished_state_id: StateID

    @abstractmethod
    def requirements(self, workspace: WorkspaceRecord | None = None) -> list[TransactionID]:
        """Transactions a workspace needs before reaching ``finished_state_id``."""
        pass

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}({self.processing_state_id.value} -> "
            f"{self.finished_state_id.value})>"
        )
