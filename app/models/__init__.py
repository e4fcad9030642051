"""Database models module."""

from app.models.workspace import Workspace, WorkspaceTransaction

__all__ = [
    "Workspace",
    "WorkspaceTransaction",
]
