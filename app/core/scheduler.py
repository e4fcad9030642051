"""Background scheduler that drives the reconciler."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.api.services.azure_client import AzureClientManager
from app.api.services.vault_client import VaultClient
from app.core.config import Settings, get_settings
from app.core.database import check_connection, init_db
from app.orchestrator.models import TickSummary
from app.orchestrator.reconciler import Reconciler
from app.orchestrator.registry import WorkspaceRegistry
from app.orchestrator.states import build_state_catalog
from app.orchestrator.transactions import build_transaction_registry

logger = logging.getLogger(__name__)

RECONCILER_JOB_ID = "reconcile_workspaces"

# Global scheduler and reconciler instances
scheduler: AsyncIOScheduler | None = None
reconciler: Reconciler | None = None


def build_reconciler(settings: Settings | None = None) -> Reconciler:
    """Bootstrap the orchestrator; raises if it cannot run.

    Fatal conditions: database unreachable, vault not addressable, or a
    dependency cycle among transactions.
    """
    settings = settings or get_settings()

    check_connection()
    init_db()
    logger.info("Database initialized")

    azure = AzureClientManager(settings)
    VaultClient(azure, settings).validate_configuration()

    catalog = build_state_catalog()
    transactions = build_transaction_registry(settings, azure=azure)
    transactions.validate(catalog)
    logger.info(f"Validated {len(transactions)} transactions across {len(catalog.states())} states")

    return Reconciler(WorkspaceRegistry(), catalog, transactions, settings)


async def run_reconciler_tick() -> TickSummary | None:
    """Scheduled job body."""
    if reconciler is None:
        logger.warning("Reconciler tick skipped: reconciler not initialized")
        return None
    return await reconciler.tick()


def init_scheduler(instance: Reconciler, settings: Settings | None = None) -> AsyncIOScheduler:
    """Initialize and configure the background scheduler."""
    global scheduler, reconciler
    settings = settings or get_settings()

    reconciler = instance
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_reconciler_tick,
        trigger=IntervalTrigger(seconds=settings.reconciler_interval_seconds),
        id=RECONCILER_JOB_ID,
        name="Reconcile Workspaces",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        f"Scheduler initialized, reconciling every {settings.reconciler_interval_seconds}s"
    )
    return scheduler


def start_reconciler(instance: Reconciler, settings: Settings | None = None) -> AsyncIOScheduler:
    """Schedule reconciler ticks until shutdown_scheduler() is awaited."""
    started = init_scheduler(instance, settings)
    started.start()
    logger.info("Reconciler scheduler started")
    return started


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the scheduler instance."""
    return scheduler


def get_reconciler() -> Reconciler | None:
    """Get the reconciler instance."""
    return reconciler


async def trigger_manual_tick() -> TickSummary | None:
    """Run a reconciler tick now, outside the schedule."""
    return await run_reconciler_tick()


async def shutdown_scheduler() -> None:
    """Stop scheduling ticks, then let the in-flight tick finish."""
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    if reconciler is not None:
        await reconciler.stop()
    scheduler = None
