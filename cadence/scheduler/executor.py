"""ExecutionCoordinator — runs due entries one at a time and books the outcome."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cadence.config import settings
from cadence.notifications.formatting import ResultSummary
from cadence.scheduler.evaluator import scheduler_now

if TYPE_CHECKING:
    from cadence.notifications.channels import DeliveryResult
    from cadence.notifications.router import NotificationRouter
    from cadence.scheduler.action import ActionInvoker
    from cadence.scheduler.models import ScheduleEntry
    from cadence.scheduler.store import EntryStore, StoreResult

logger = logging.getLogger(__name__)


@dataclass
class EntryRunResult:
    """What happened to one due entry during a cycle."""

    entry_id: str
    entry_name: str
    success: bool
    executed_at: datetime
    error: str | None = None
    notifications: dict[str, Any] = field(default_factory=dict)
    persisted: bool = True
    persistence_error: str | None = None
    disabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheduleId": self.entry_id,
            "scheduleName": self.entry_name,
            "success": self.success,
            "error": self.error,
            "executedAt": self.executed_at.isoformat(),
            "autoSendResults": self.notifications,
            "persisted": self.persisted,
            "persistenceError": self.persistence_error,
            "disabled": self.disabled,
        }


@dataclass
class CycleReport:
    """Result of one cycle. ``skipped`` means another cycle held the lock."""

    results: list[EntryRunResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
        }


class ExecutionCoordinator:
    """Selects due entries and executes them sequentially.

    Args:
        store: EntryStore for due selection and bookkeeping.
        invoker: Runs an entry's prompt against the external action.
        router: NotificationRouter for relaying successful results.
        inter_entry_delay: Seconds to wait between two due entries.
        failure_threshold: Consecutive failures that disable an entry.
        clock: Returns "now"; used for completion timestamps. Without one, a
            cycle given an explicit *now* books every entry at that time,
            otherwise wall time in the scheduler timezone is used.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        store: EntryStore,
        invoker: ActionInvoker,
        router: NotificationRouter,
        *,
        inter_entry_delay: float | None = None,
        failure_threshold: int | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._invoker = invoker
        self._router = router
        self._delay = (
            settings.inter_entry_delay_seconds if inter_entry_delay is None else inter_entry_delay
        )
        self._threshold = failure_threshold or settings.failure_threshold
        self._clock = clock
        self._cycle_time: datetime | None = None
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """Execute every entry due at *now*.

        Completion times come from the injected clock when there is one;
        otherwise *now* is booked as each entry's completion time.

        Raises:
            PersistenceFailure: the store could not be read at all. Per-entry
                problems never raise; they show up in the report.
        """
        if self._lock.locked():
            logger.warning("Cycle already in progress, skipping this trigger")
            return CycleReport(skipped=True)

        async with self._lock:
            self._cycle_time = now
            try:
                return await self._run_due(now or self._now())
            finally:
                self._cycle_time = None

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return self._cycle_time or scheduler_now()

    async def _run_due(self, now: datetime) -> CycleReport:
        due = await self._store.due_entries(now)
        if not due:
            logger.info("No schedules due for execution")
            return CycleReport()

        logger.info("Found %d schedule(s) due for execution", len(due))
        report = CycleReport()
        for index, entry in enumerate(due):
            if index and self._delay > 0:
                await self._sleep(self._delay)
            try:
                result = await self._process(entry)
            except Exception as exc:
                logger.exception("Error processing schedule %s", entry.id)
                result = await self._record_crash(entry, str(exc) or type(exc).__name__)
            report.results.append(result)

        logger.info(
            "Execution complete. Success: %d, Failures: %d",
            report.success_count,
            report.failure_count,
        )
        return report

    async def _process(self, entry: ScheduleEntry) -> EntryRunResult:
        logger.info("Executing schedule: '%s' (%s)", entry.name, entry.id)
        data: Any = None
        deliveries: dict[str, DeliveryResult] = {}
        try:
            outcome = await self._invoker.invoke(entry.prompt)
            success, error, data = outcome.success, outcome.error, outcome.data
            if success:
                deliveries = await self._notify(entry, data)
        except Exception as exc:
            logger.exception("Action for schedule %s raised", entry.id)
            success, error = False, str(exc) or type(exc).__name__

        completed_at = self._now()
        if success:
            logger.info("Successfully executed schedule: '%s'", entry.name)
        else:
            logger.error("Failed to execute schedule '%s': %s", entry.name, error)

        notifications = {name: r.to_dict() for name, r in deliveries.items()}
        stored = await self._store.record_execution(
            entry.id,
            success=success,
            completed_at=completed_at,
            error=error,
            data=data,
            notifications=notifications,
            failure_threshold=self._threshold,
        )

        result = EntryRunResult(
            entry_id=entry.id,
            entry_name=entry.name,
            success=success,
            executed_at=completed_at,
            error=error,
            notifications=notifications,
        )
        return _apply_stored(result, entry, stored)

    async def _notify(self, entry: ScheduleEntry, data: Any) -> dict[str, DeliveryResult]:
        """Relay a successful result. Delivery problems never fail the run."""
        if not entry.notification_targets:
            return {}
        summary = ResultSummary(
            entry_id=entry.id,
            entry_name=entry.name,
            data=data,
            executed_at=self._now(),
        )
        try:
            return await self._router.dispatch(entry.notification_targets, summary)
        except Exception:
            logger.exception("Notification dispatch failed for schedule %s", entry.id)
            return {}

    async def _record_crash(self, entry: ScheduleEntry, error: str) -> EntryRunResult:
        """Book an unexpected per-entry error as an ordinary failed run."""
        completed_at = self._now()
        result = EntryRunResult(
            entry_id=entry.id,
            entry_name=entry.name,
            success=False,
            executed_at=completed_at,
            error=error,
        )
        try:
            stored = await self._store.record_execution(
                entry.id,
                success=False,
                completed_at=completed_at,
                error=error,
                failure_threshold=self._threshold,
            )
        except Exception as exc:
            logger.exception("Could not record failure for schedule %s", entry.id)
            result.persisted = False
            result.persistence_error = str(exc) or type(exc).__name__
            return result
        return _apply_stored(result, entry, stored)


def _apply_stored(
    result: EntryRunResult, entry: ScheduleEntry, stored: StoreResult
) -> EntryRunResult:
    if stored.success and stored.entry is not None:
        result.disabled = entry.enabled and not stored.entry.enabled
    else:
        result.persisted = False
        if stored.error is not None:
            result.persistence_error = stored.error.message
    return result
