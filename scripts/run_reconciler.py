#!/usr/bin/env python3
"""Standalone CLI for the workspace reconciler.

Runs the reconciler without the HTTP API, either as a long-running loop
(e.g. a dedicated worker deployment) or as a single tick for cron jobs and
manual debugging.

Usage:
    python scripts/run_reconciler.py [options]

Options:
    --once           Run a single tick and exit
    --json           Print the tick summary as JSON (with --once)
    --verbose        Enable verbose logging
    --help           Show this help message

Exit Codes:
    0   Tick completed (or loop stopped cleanly)
    1   Tick aborted (e.g. database unavailable mid-tick)
    2   Fatal bootstrap failure (database, vault configuration, dependency cycle)

Examples:
    # Run one tick and print JSON
    python scripts/run_reconciler.py --once --json

    # Run the loop until SIGINT/SIGTERM
    python scripts/run_reconciler.py
"""

import argparse
import asyncio
import json
import logging
import signal
import sys

# Add the parent directory to the path for imports
sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from app.core.config import get_settings  # noqa: E402
from app.core.scheduler import (  # noqa: E402
    build_reconciler,
    shutdown_scheduler,
    start_reconciler,
)
from app.orchestrator.models import TickSummary  # noqa: E402
from app.orchestrator.reconciler import Reconciler  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TICK_ABORTED = 1
EXIT_BOOTSTRAP_FAILED = 2


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the workspace reconciler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the tick summary as JSON",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def print_summary(summary: TickSummary, as_json: bool) -> None:
    """Print a tick summary."""
    data = summary.to_dict()
    if as_json:
        print(json.dumps(data, indent=2))
        return

    print("\n" + "=" * 60)
    print("RECONCILER TICK")
    print("=" * 60)
    print(f"Started: {data['started_at']}")
    print(f"Duration: {data['duration_seconds']}s")
    print(f"Workspaces seen: {data['workspaces_seen']}")
    print(f"Advanced: {data['advanced']}")
    print(f"Waiting: {data['waiting']}")
    print(f"Failed: {data['failed']}")
    print(f"Errors: {data['errors']}")
    print(f"Reservation created: {data['reservation_created']}")
    if summary.aborted:
        print(f"Aborted: {summary.abort_reason}")


async def run_once(reconciler: Reconciler, as_json: bool) -> int:
    """Run one tick and map it to an exit code."""
    summary = await reconciler.tick()
    print_summary(summary, as_json)
    return EXIT_TICK_ABORTED if summary.aborted else EXIT_OK


async def run_forever(reconciler: Reconciler) -> int:
    """Run scheduled ticks until SIGINT or SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    start_reconciler(reconciler, get_settings())
    logger.info("Reconciler loop running; press Ctrl+C to stop")

    # First tick right away instead of after one interval
    await reconciler.tick()
    await stop_event.wait()

    logger.info("Stop signal received, waiting for in-flight tick")
    await shutdown_scheduler()
    return EXIT_OK


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    args = parse_arguments(argv)

    # Set logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        reconciler = build_reconciler(get_settings())
    except Exception as e:
        print(f"Reconciler bootstrap failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return EXIT_BOOTSTRAP_FAILED

    if args.once:
        return await run_once(reconciler, args.json)
    return await run_forever(reconciler)


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
