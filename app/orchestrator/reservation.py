"""Reservation pool: keep one unclaimed, pre-provisioned workspace around.

Signup claims the spare (owner set, status moved on) and only has to wait
for the provisioning steps that depend on the owner; the slow keys, roles
and release were done ahead of time. The next tick notices the gap and
starts a replacement.
"""

import logging
import uuid

from app.core.config import Settings
from app.orchestrator.registry import WorkspaceRegistry
from app.orchestrator.states import ReservedState
from app.schemas.workspace import (
    StateID,
    WorkspaceRecord,
    WorkspaceSize,
    WorkspaceTier,
)

logger = logging.getLogger(__name__)


def new_workspace_id() -> str:
    """Collision-resistant, DNS-label-safe workspace ID."""
    return f"ws-{uuid.uuid4().hex[:16]}"


def new_unique_handle() -> str:
    return f"azure-uid-{uuid.uuid4().hex[:16]}"


class ReservationPoolManager:
    """Backfills the pool of unclaimed workspaces up to exactly one."""

    def __init__(self, registry: WorkspaceRegistry, settings: Settings):
        self.registry = registry
        self.settings = settings
        state = ReservedState()
        # An in-flight reservation counts too, otherwise every tick would
        # start another one while the first is still RESERVING.
        self._pool_statuses = [state.processing_state_id, state.finished_state_id]

    async def ensure_reservation(self) -> WorkspaceRecord | None:
        """Create a spare workspace if none is unclaimed.

        Returns the created workspace, or None when the pool is already full.
        Surplus spares left by races are kept, never deleted.
        """
        existing = self.registry.get_unclaimed_reservation(self._pool_statuses)
        if existing is not None:
            logger.debug(f"Reservation pool satisfied by {existing.id} ({existing.status.value})")
            return None

        record = WorkspaceRecord(
            id=new_workspace_id(),
            name="",
            owner_id=None,
            organization_id=None,
            status=StateID.RESERVING,
            unique_handle=new_unique_handle(),
            size=WorkspaceSize(self.settings.default_workspace_size),
            tier=WorkspaceTier(self.settings.default_workspace_tier),
        )
        created = self.registry.create(record)
        logger.info(f"Reserved new spare workspace {created.id}")
        return created
