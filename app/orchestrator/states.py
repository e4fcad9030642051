"""Lifecycle states and the catalog that maps a status to its state."""

import logging

from app.orchestrator.base import BaseState
from app.orchestrator.exceptions import StateAliasError, StateNotFoundError
from app.schemas.workspace import StateID, TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)


class ReservedState(BaseState):
    """Pre-provision the slow infrastructure of the spare workspace."""

    processing_state_id = StateID.RESERVING
    finished_state_id = StateID.RESERVED

    def requirements(self, workspace: WorkspaceRecord | None = None) -> list[TransactionID]:
        return [
            TransactionID.CREATE_WORKSPACE_KEY_ID,
            TransactionID.CREATE_MASTER_CREDENTIAL,
            TransactionID.CREATE_SERVICE_ACCOUNT_ROLES,
            TransactionID.CREATE_HELM_RELEASE,
        ]


class ProvisioningState(BaseState):
    """Finish a claimed workspace: release, onboarding, discovery, analytics."""

    processing_state_id = StateID.PROVISIONING
    finished_state_id = StateID.PROVISIONED

    def requirements(self, workspace: WorkspaceRecord | None = None) -> list[TransactionID]:
        return [
            TransactionID.CREATE_RESOURCE_GROUP,
            TransactionID.CREATE_MASTER_CREDENTIAL,
            TransactionID.CREATE_SERVICE_ACCOUNT_ROLES,
            TransactionID.CREATE_HELM_RELEASE,
            TransactionID.CREATE_ROLE_BINDING,
            TransactionID.ENSURE_WORKSPACE_PODS_RUNNING,
            TransactionID.ENSURE_CREDENTIAL_ONBOARDED,
            TransactionID.ENSURE_DISCOVERY_FINISHED,
            TransactionID.ENSURE_JOBS_RUNNING,
            TransactionID.ENSURE_JOBS_FINISHED,
        ]


class StateCatalog:
    """Maps a processing status to the State that drives it."""

    def __init__(self, states: list[BaseState] | None = None):
        self._states: dict[StateID, BaseState] = {}
        for state in states or []:
            self.register(state)

    def register(self, state: BaseState) -> None:
        """Register a state; its processing status must be unclaimed."""
        existing = self._states.get(state.processing_state_id)
        if existing is not None:
            raise StateAliasError(
                f"{state!r} and {existing!r} both process "
                f"{state.processing_state_id.value}"
            )
        if state.processing_state_id == state.finished_state_id:
            raise StateAliasError(
                f"{state!r} finishes in its own processing status"
            )
        self._states[state.processing_state_id] = state
        logger.debug(f"Registered lifecycle state {state!r}")

    def get_state(self, state_id: StateID | str) -> BaseState:
        """Get the state processing ``state_id``."""
        try:
            return self._states[StateID(state_id)]
        except (KeyError, ValueError):
            raise StateNotFoundError(f"No state registered for status {state_id}") from None

    def processing_state_ids(self) -> list[StateID]:
        """Statuses the reconciler should pick up."""
        return list(self._states)

    def states(self) -> list[BaseState]:
        return list(self._states.values())

    def __contains__(self, state_id: object) -> bool:
        try:
            return StateID(state_id) in self._states
        except ValueError:
            return False


def build_state_catalog() -> StateCatalog:
    """Catalog with every lifecycle state this service drives."""
    return StateCatalog([ReservedState(), ProvisioningState()])
