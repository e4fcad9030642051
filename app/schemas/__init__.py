"""Pydantic schemas for API request/response validation."""

from app.schemas.workspace import (
    BootstrapProgress,
    BootstrapStatusResponse,
    ClaimWorkspaceRequest,
    StateID,
    TransactionID,
    WorkspaceRecord,
    WorkspaceResponse,
    WorkspaceSize,
    WorkspaceTier,
)

__all__ = [
    # Lifecycle
    "StateID",
    "TransactionID",
    "WorkspaceSize",
    "WorkspaceTier",
    "WorkspaceRecord",
    # API
    "WorkspaceResponse",
    "BootstrapProgress",
    "BootstrapStatusResponse",
    "ClaimWorkspaceRequest",
]
