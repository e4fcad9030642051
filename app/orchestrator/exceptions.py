"""Exceptions raised by the workspace orchestrator."""


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""

    pass


class CycleError(OrchestratorError):
    """Transaction requirements form a cycle. Fatal at startup."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Transaction dependency cycle detected: {' -> '.join(cycle)}")


class StateAliasError(OrchestratorError):
    """Two States claim the same processing status."""

    pass


class StateNotFoundError(OrchestratorError):
    """No State is registered for a status."""

    pass


class TransactionNotFoundError(OrchestratorError):
    """A requirement names a transaction that was never registered."""

    pass


class RegistryError(OrchestratorError):
    """Workspace registry persistence failure; aborts the current tick."""

    pass


class WorkspaceNotFoundError(OrchestratorError):
    """Workspace does not exist in the registry."""

    pass


class HardFailureError(OrchestratorError):
    """Unrecoverable external misconfiguration; the workspace fails."""

    pass


class TransientExternalError(OrchestratorError):
    """Retryable external error (rate limit, 5xx, timeout)."""

    pass
