"""SchedulerEngine — APScheduler lifecycle driving cycles on a fixed interval."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cadence.config import settings
from cadence.errors import PersistenceFailure

if TYPE_CHECKING:
    from cadence.scheduler.executor import CycleReport, ExecutionCoordinator

logger = logging.getLogger(__name__)

CYCLE_JOB_ID = "cadence-cycle"


class SchedulerEngine:
    """Runs ``coordinator.run_cycle`` every *interval_minutes*.

    The job is single-instance and coalesced, so a slow cycle delays the next
    one instead of overlapping it; the coordinator's own lock covers any
    manual ``trigger_now`` racing the timer.

    Args:
        coordinator: ExecutionCoordinator to invoke.
        interval_minutes: Trigger period (default from settings).
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        coordinator: ExecutionCoordinator,
        interval_minutes: int | None = None,
        timezone: str | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._interval = interval_minutes or settings.cycle_interval_minutes
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False
        self.last_report: CycleReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self, run_immediately: bool = False) -> None:
        """Add the cycle job and start the scheduler."""
        # An explicit next_run_time of None would add the job paused.
        extra: dict[str, Any] = {}
        if run_immediately:
            extra["next_run_time"] = datetime.now(self._scheduler.timezone)
        self._scheduler.add_job(
            self._run_cycle,
            trigger=IntervalTrigger(minutes=self._interval, timezone=self._timezone),
            id=CYCLE_JOB_ID,
            name="Execute due schedules",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True,
            **extra,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started (every %d min, tz=%s)", self._interval, self._timezone
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def trigger_now(self) -> CycleReport:
        """Run one cycle immediately, outside the timer."""
        return await self._coordinator.run_cycle()

    # -- Internal --------------------------------------------------------------

    async def _run_cycle(self) -> None:
        """Callback invoked by APScheduler. A failed cycle is logged and the
        timer keeps going; the next tick retries."""
        try:
            self.last_report = await self._coordinator.run_cycle()
        except PersistenceFailure:
            logger.exception("Cycle aborted: schedule state unreadable")
