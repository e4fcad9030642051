"""Workspace Orchestrator - Main Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import monitoring_router, workspaces_router
from app.core.config import get_settings
from app.core.database import check_connection
from app.core.monitoring import reconciler_metrics
from app.core.scheduler import (
    build_reconciler,
    get_reconciler,
    get_scheduler,
    init_scheduler,
    shutdown_scheduler,
    start_reconciler,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Workspace Orchestrator...")

    # Database, vault and transaction DAG; any failure aborts startup
    reconciler = build_reconciler(settings)

    if settings.reconciler_enabled:
        start_reconciler(reconciler, settings)
    else:
        init_scheduler(reconciler, settings)
        logger.warning("Reconciler disabled; ticks only run when triggered manually")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await shutdown_scheduler()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Declarative lifecycle orchestrator that provisions, reserves "
                "and advances tenant workspaces.",
    lifespan=lifespan,
)

# Include routers
app.include_router(workspaces_router)
app.include_router(monitoring_router)


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


@app.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with component status."""
    components = {
        "database": "unknown",
        "scheduler": "unknown",
        "reconciler": "unknown",
        "azure_configured": settings.is_configured,
    }

    # Check database
    try:
        check_connection()
        components["database"] = "healthy"
    except Exception as e:
        components["database"] = f"unhealthy: {str(e)}"

    # Check scheduler
    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        components["scheduler"] = "running"
    else:
        components["scheduler"] = "not_running"

    reconciler = get_reconciler()
    if reconciler is None:
        components["reconciler"] = "not_initialized"
    elif reconciler.stopping:
        components["reconciler"] = "stopping"
    else:
        components["reconciler"] = "ready"

    last_tick = reconciler_metrics.last_tick
    degraded = (
        components["database"] != "healthy"
        or components["reconciler"] != "ready"
        or (settings.reconciler_enabled and components["scheduler"] != "running")
    )

    return {
        "status": "degraded" if degraded else "healthy",
        "version": settings.app_version,
        "components": components,
        "last_tick": last_tick.to_dict() if last_tick else None,
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
