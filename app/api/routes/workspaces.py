"""Workspace API routes.

Thin surface over the registry: read a workspace and its bootstrap
progress, claim the reserved workspace at signup, and record that the
owner finished the bootstrap input.
"""

import re

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.scheduler import get_reconciler
from app.orchestrator.base import BaseState
from app.orchestrator.exceptions import RegistryError, StateNotFoundError
from app.orchestrator.reconciler import Reconciler
from app.orchestrator.registry import WorkspaceRegistry
from app.schemas.workspace import (
    BootstrapProgress,
    BootstrapStatusResponse,
    ClaimWorkspaceRequest,
    StateID,
    WorkspaceRecord,
    WorkspaceResponse,
)

WORKSPACE_ID_PATTERN = re.compile(r"^ws-[0-9a-f]{1,32}$")


def get_registry() -> WorkspaceRegistry:
    return WorkspaceRegistry()


def require_reconciler() -> Reconciler:
    reconciler = get_reconciler()
    if reconciler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reconciler is not running",
        )
    return reconciler


def validate_workspace_id(workspace_id: str) -> str:
    """Reject IDs that cannot belong to a workspace before hitting the database."""
    if not WORKSPACE_ID_PATTERN.match(workspace_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="workspace_id must look like 'ws-<hex>'",
        )
    return workspace_id


def load_workspace(registry: WorkspaceRegistry, workspace_id: str) -> WorkspaceRecord:
    validate_workspace_id(workspace_id)
    try:
        workspace = registry.find(workspace_id)
    except RegistryError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workspace {workspace_id} not found",
        )
    return workspace


def phase_of(workspace: WorkspaceRecord, reconciler: Reconciler) -> BaseState | None:
    """The lifecycle state a workspace is in, was finished by, or failed in."""
    catalog = reconciler.catalog
    try:
        return catalog.get_state(workspace.status)
    except StateNotFoundError:
        pass
    if workspace.status == StateID.FAILED:
        failed_in = StateID.PROVISIONING if workspace.owner_id else StateID.RESERVING
        return catalog.get_state(failed_in) if failed_in in catalog else None
    for state in catalog.states():
        if state.finished_state_id == workspace.status:
            return state
    return None


router = APIRouter(
    prefix="/api/v1/workspaces",
    tags=["workspaces"],
)


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: str,
    registry: WorkspaceRegistry = Depends(get_registry),
):
    """Get a workspace."""
    return load_workspace(registry, workspace_id)


@router.get("/{workspace_id}/bootstrap", response_model=BootstrapStatusResponse)
async def get_bootstrap_status(
    workspace_id: str,
    registry: WorkspaceRegistry = Depends(get_registry),
    reconciler: Reconciler = Depends(require_reconciler),
):
    """Provisioning progress as completed over total transactions.

    The failure reason is only exposed once the workspace is FAILED.
    """
    workspace = load_workspace(registry, workspace_id)
    completed = registry.completed_transactions(workspace.id)

    state = phase_of(workspace, reconciler)
    ordered = reconciler.transactions.resolve(state.requirements(workspace)) if state else []
    done = [transaction_id for transaction_id in ordered if transaction_id in completed]

    return BootstrapStatusResponse(
        workspace_id=workspace.id,
        status=workspace.status,
        progress=BootstrapProgress(done=len(done), total=len(ordered)),
        completed_transactions=done,
        failure_reason=workspace.failure_reason if workspace.status == StateID.FAILED else None,
    )


@router.post(
    "/claim",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_workspace(
    request: ClaimWorkspaceRequest,
    registry: WorkspaceRegistry = Depends(get_registry),
):
    """Hand the reserved workspace to a new owner."""
    try:
        workspace = registry.claim_reserved(
            owner_id=request.owner_id,
            name=request.name,
            organization_id=request.organization_id,
        )
    except RegistryError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No reserved workspace is available, try again shortly",
        )
    return workspace


@router.post("/{workspace_id}/bootstrap/finish", response_model=WorkspaceResponse)
async def finish_bootstrap(
    workspace_id: str,
    registry: WorkspaceRegistry = Depends(get_registry),
):
    """Record that the owner finished entering bootstrap input."""
    workspace = load_workspace(registry, workspace_id)
    if workspace.status != StateID.PROVISIONING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Workspace {workspace_id} is {workspace.status.value}, not PROVISIONING",
        )
    if workspace.is_bootstrap_input_finished:
        return workspace
    return registry.update_markers(workspace.id, is_bootstrap_input_finished=True)
