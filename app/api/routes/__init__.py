"""API routes module."""

from app.api.routes.monitoring import router as monitoring_router
from app.api.routes.workspaces import router as workspaces_router

__all__ = [
    "monitoring_router",
    "workspaces_router",
]
