"""Reconciler monitoring API routes."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.routes.workspaces import require_reconciler
from app.core.monitoring import reconciler_metrics
from app.core.scheduler import trigger_manual_tick
from app.orchestrator.reconciler import Reconciler

router = APIRouter(
    prefix="/api/v1/monitoring",
    tags=["monitoring"],
)


@router.get("/reconciler")
async def get_reconciler_metrics(limit: int = 20) -> dict[str, Any]:
    """Get reconciler counters and the most recent ticks.

    Args:
        limit: Maximum number of recent ticks to return
    """
    return {
        **reconciler_metrics.get_summary(),
        "recent_ticks": reconciler_metrics.get_recent_ticks(limit),
    }


@router.post("/reconciler/tick")
async def trigger_reconciler_tick(
    reconciler: Reconciler = Depends(require_reconciler),
) -> dict[str, Any]:
    """Run one reconciler tick now and return its summary."""
    if reconciler.stopping:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Reconciler is stopping",
        )
    summary = await trigger_manual_tick()
    return summary.to_dict() if summary else {}


@router.post("/reset")
async def reset_reconciler_metrics() -> dict[str, str]:
    """Reset reconciler counters and tick history."""
    reconciler_metrics.reset()
    return {"status": "Metrics reset successfully"}
