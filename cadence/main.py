"""Cadence entry point.

Usage:
    python -m cadence.main run-once     # one cycle; exit 1 only on a fatal error
    python -m cadence.main serve        # run cycles every CYCLE_INTERVAL_MINUTES
    python -m cadence.main cleanup --days 30
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys

from cadence.config import settings
from cadence.errors import PersistenceFailure
from cadence.notifications import DiscordChannel, NotificationRouter, TelegramChannel
from cadence.scheduler.action import HttpActionInvoker
from cadence.scheduler.backends import create_backend
from cadence.scheduler.engine import SchedulerEngine
from cadence.scheduler.executor import ExecutionCoordinator
from cadence.scheduler.store import EntryStore

logger = logging.getLogger(__name__)


def build_store() -> EntryStore:
    return EntryStore(create_backend())


def build_router() -> NotificationRouter:
    """Return the shared router with the built-in channels registered."""
    router = NotificationRouter.get()
    for channel in (TelegramChannel(), DiscordChannel()):
        if router.get_channel(channel.name) is None:
            router.register_channel(channel)
    return router


def build_coordinator(store: EntryStore | None = None) -> ExecutionCoordinator:
    return ExecutionCoordinator(
        store=store or build_store(),
        invoker=HttpActionInvoker(),
        router=build_router(),
    )


async def run_once(coordinator: ExecutionCoordinator | None = None) -> int:
    """Run a single cycle. Returns the process exit status."""
    coordinator = coordinator or build_coordinator()
    try:
        report = await coordinator.run_cycle()
    except PersistenceFailure:
        logger.exception("Cycle aborted: schedule state unreadable")
        return 1
    except Exception:
        logger.exception("Cycle aborted")
        return 1
    print(json.dumps(report.to_dict(), indent=2))
    return 0


async def cleanup(days: int, store: EntryStore | None = None) -> int:
    store = store or build_store()
    try:
        removed = await store.cleanup_old_executions(days)
    except PersistenceFailure:
        logger.exception("Cleanup failed")
        return 1
    logger.info("Cleanup removed %d record(s)", removed)
    return 0


async def serve() -> int:
    """Run cycles on the configured interval until SIGINT/SIGTERM."""
    engine = SchedulerEngine(build_coordinator())
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await engine.start(run_immediately=True)
    try:
        await stop.wait()
    finally:
        await engine.stop()
    return 0


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cadence", description="Prompt scheduling service")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run-once", help="Execute due schedules once and exit")
    sub.add_parser("serve", help="Execute due schedules on a fixed interval")
    clean = sub.add_parser("cleanup", help="Delete old execution records")
    clean.add_argument("--days", type=int, default=settings.execution_retention_days)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    if args.command == "run-once":
        return asyncio.run(run_once())
    if args.command == "cleanup":
        return asyncio.run(cleanup(args.days))
    logger.info("Starting Cadence scheduler (every %d min)", settings.cycle_interval_minutes)
    return asyncio.run(serve())


if __name__ == "__main__":
    sys.exit(main())
