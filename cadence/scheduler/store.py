"""EntryStore — CRUD, due selection and execution history over a state backend.

Every mutation is a read-modify-write of the whole state. Owner-facing
operations return a ``StoreResult`` instead of raising: validation,
authorization and persistence problems come back in ``result.error``.
Concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from cadence.config import settings
from cadence.errors import (
    NotFoundError,
    PersistenceFailure,
    QuotaExceededError,
    SchedulerError,
    UnauthorizedError,
    ValidationError,
)
from cadence.scheduler.evaluator import next_execution, scheduler_now
from cadence.scheduler.models import (
    ExecutionRecord,
    ScheduleEntry,
    ScheduleState,
    make_entry_id,
    make_execution_id,
)
from cadence.scheduler.rules import rule_to_raw, validate_rule

if TYPE_CHECKING:
    from cadence.scheduler.backends import StateBackend

logger = logging.getLogger(__name__)

# Fields an owner may change through ``update``. Anything else is ignored.
UPDATABLE_FIELDS = frozenset(
    {"name", "prompt", "schedule", "enabled", "notification_targets", "autoSend"}
)


@dataclass
class StoreResult:
    """Outcome of a store operation."""

    entry: ScheduleEntry | None = None
    entries: list[ScheduleEntry] = field(default_factory=list)
    records: list[ExecutionRecord] = field(default_factory=list)
    error: SchedulerError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class EntryDraft(BaseModel):
    """Fields accepted when creating an entry."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    prompt: str
    schedule: Any
    enabled: bool = True
    notification_targets: dict[str, Any] = Field(default_factory=dict, alias="autoSend")


def select_due(entries: list[ScheduleEntry], now: datetime) -> list[ScheduleEntry]:
    """Enabled entries whose next execution is at or before *now*, earliest first."""
    due = [e for e in entries if e.is_due(now)]
    due.sort(key=lambda e: e.next_execution_at)
    return due


def _clean_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        msg = f"{field_name} must be a non-empty string"
        raise ValidationError(msg)
    return value.strip()


def _parse_draft(draft: EntryDraft | dict[str, Any]) -> EntryDraft:
    if isinstance(draft, EntryDraft):
        parsed = draft
    else:
        try:
            parsed = EntryDraft.model_validate(draft)
        except pydantic.ValidationError as exc:
            msg = "Missing required fields: name, prompt, schedule"
            raise ValidationError(msg) from exc
    if parsed.schedule is None or parsed.schedule == "":
        raise ValidationError("Missing required fields: name, prompt, schedule")
    parsed.name = _clean_text(parsed.name, "name")
    parsed.prompt = _clean_text(parsed.prompt, "prompt")
    return parsed


class EntryStore:
    """Owns the persisted schedule entries and their execution records.

    Args:
        backend: Where the state blob lives.
        max_records_per_entry: Retention bound for execution records.
        clock: Returns "now"; defaults to wall time in the scheduler timezone.
    """

    def __init__(
        self,
        backend: StateBackend,
        *,
        max_records_per_entry: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._max_records = max_records_per_entry or settings.max_records_per_entry
        self._clock = clock or scheduler_now

    # -- Load / save -----------------------------------------------------------

    async def load(self) -> ScheduleState:
        """Read the full state. Raises PersistenceFailure if unreadable."""
        blob = await self._backend.read()
        if not isinstance(blob, dict):
            msg = f"Schedule state is corrupt: expected an object, got {type(blob).__name__}"
            raise PersistenceFailure(msg)
        try:
            return ScheduleState.from_dict(blob)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            msg = f"Schedule state is corrupt: {exc}"
            raise PersistenceFailure(msg) from exc

    async def save(self, state: ScheduleState) -> bool:
        """Persist the full state. Returns False on failure."""
        try:
            await self._backend.write(state.to_dict())
        except PersistenceFailure:
            return False
        return True

    async def _write(self, state: ScheduleState) -> None:
        await self._backend.write(state.to_dict())

    # -- Owner operations ------------------------------------------------------

    async def create(
        self,
        owner_key: str,
        draft: EntryDraft | dict[str, Any],
        *,
        now: datetime | None = None,
        max_enabled: int | None = None,
    ) -> StoreResult:
        """Validate and persist a new entry for *owner_key*.

        When *max_enabled* is given, creating an enabled entry fails with
        ``QuotaExceededError`` once the owner already has that many enabled.
        """
        try:
            fields = _parse_draft(draft)
            rule = validate_rule(fields.schedule)
            state = await self.load()

            if max_enabled is not None and fields.enabled:
                enabled = sum(
                    1
                    for e in state.entries.values()
                    if e.owner_key == owner_key and e.enabled
                )
                if enabled >= max_enabled:
                    msg = f"Schedule limit reached ({max_enabled} enabled schedules)"
                    raise QuotaExceededError(msg)

            now = now or self._clock()
            entry = ScheduleEntry(
                id=make_entry_id(),
                owner_key=owner_key,
                name=fields.name,
                prompt=fields.prompt,
                schedule=rule_to_raw(rule),
                enabled=fields.enabled,
                notification_targets=fields.notification_targets,
                created_at=now,
                updated_at=now,
                next_execution_at=next_execution(rule, now),
            )
            state.entries[entry.id] = entry
            await self._write(state)
        except SchedulerError as exc:
            logger.info("Create rejected: %s", exc.message)
            return StoreResult(error=exc)

        logger.info("Created schedule: %s (%s)", entry.name, entry.id)
        return StoreResult(entry=entry)

    async def get(self, entry_id: str) -> ScheduleEntry | None:
        """Fetch an entry by ID, or None if not found."""
        state = await self.load()
        return state.entries.get(entry_id)

    async def find_by_owner(self, owner_key: str) -> StoreResult:
        """All entries belonging to *owner_key*, newest first."""
        try:
            state = await self.load()
        except PersistenceFailure as exc:
            return StoreResult(error=exc)
        entries = [e for e in state.entries.values() if e.owner_key == owner_key]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return StoreResult(entries=entries)

    async def update(
        self,
        entry_id: str,
        owner_key: str,
        fields: dict[str, Any],
        *,
        now: datetime | None = None,
    ) -> StoreResult:
        """Apply allow-listed *fields* to an entry owned by *owner_key*.

        Unknown fields are ignored. A new schedule is validated and the next
        execution recomputed in the same write.
        """
        try:
            state = await self.load()
            entry = self._owned_entry(state, entry_id, owner_key)
            now = now or self._clock()
            changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}

            # Validate everything before touching the entry.
            name = _clean_text(changes["name"], "name") if "name" in changes else None
            prompt = _clean_text(changes["prompt"], "prompt") if "prompt" in changes else None
            rule = validate_rule(changes["schedule"]) if "schedule" in changes else None
            targets = changes.get("notification_targets", changes.get("autoSend"))
            if targets is not None and not isinstance(targets, dict):
                raise ValidationError("notification_targets must be an object")
            if "enabled" in changes and not isinstance(changes["enabled"], bool):
                raise ValidationError("enabled must be true or false")

            if name is not None:
                entry.name = name
            if prompt is not None:
                entry.prompt = prompt
            if targets is not None:
                entry.notification_targets = targets
            if "enabled" in changes:
                was_enabled = entry.enabled
                entry.enabled = changes["enabled"]
                stale = entry.next_execution_at is None or entry.next_execution_at < now
                if entry.enabled and not was_enabled and stale and rule is None:
                    entry.next_execution_at = next_execution(entry.schedule, now)
            if rule is not None:
                entry.schedule = rule_to_raw(rule)
                entry.next_execution_at = next_execution(rule, now)

            entry.updated_at = now
            await self._write(state)
        except SchedulerError as exc:
            logger.info("Update of %s rejected: %s", entry_id, exc.message)
            return StoreResult(error=exc)

        logger.info("Updated schedule: %s (%s)", entry.name, entry.id)
        return StoreResult(entry=entry)

    async def delete(self, entry_id: str, owner_key: str) -> StoreResult:
        """Remove an entry owned by *owner_key*. Its records age out separately."""
        try:
            state = await self.load()
            entry = self._owned_entry(state, entry_id, owner_key)
            del state.entries[entry_id]
            await self._write(state)
        except SchedulerError as exc:
            return StoreResult(error=exc)

        logger.info("Deleted schedule: %s (%s)", entry.name, entry_id)
        return StoreResult(entry=entry)

    @staticmethod
    def _owned_entry(state: ScheduleState, entry_id: str, owner_key: str) -> ScheduleEntry:
        entry = state.entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Schedule not found")
        if entry.owner_key != owner_key:
            raise UnauthorizedError("Unauthorized")
        return entry

    # -- Cycle operations ------------------------------------------------------

    async def due_entries(self, now: datetime) -> list[ScheduleEntry]:
        """Entries due at *now*. Raises PersistenceFailure if the state is unreadable."""
        state = await self.load()
        return select_due(list(state.entries.values()), now)

    async def record_execution(
        self,
        entry_id: str,
        *,
        success: bool,
        completed_at: datetime,
        error: str | None = None,
        data: Any = None,
        notifications: dict[str, Any] | None = None,
        failure_threshold: int | None = None,
    ) -> StoreResult:
        """Persist a run's outcome and the entry's bookkeeping in one write.

        Bumps the execution count, resets or increments the consecutive
        failure count, disables the entry once failures reach the threshold,
        and reschedules from *completed_at* whatever the outcome.
        """
        threshold = failure_threshold or settings.failure_threshold
        try:
            state = await self.load()
            entry = state.entries.get(entry_id)
            if entry is None:
                raise NotFoundError("Schedule not found")

            record = ExecutionRecord(
                id=make_execution_id(),
                entry_id=entry_id,
                success=success,
                error=error,
                data=data,
                notifications=notifications or {},
                created_at=completed_at,
            )
            state.executions[record.id] = record
            self._prune(state, entry_id)

            entry.last_executed_at = completed_at
            entry.execution_count += 1
            if success:
                entry.consecutive_failure_count = 0
            else:
                entry.consecutive_failure_count += 1
                if entry.consecutive_failure_count >= threshold and entry.enabled:
                    entry.enabled = False
                    logger.warning(
                        "Disabled schedule '%s' (%s) after %d consecutive failures",
                        entry.name,
                        entry_id,
                        entry.consecutive_failure_count,
                    )
            entry.next_execution_at = next_execution(entry.schedule, completed_at)
            entry.updated_at = completed_at
            await self._write(state)
        except SchedulerError as exc:
            logger.error("Could not record execution for %s: %s", entry_id, exc.message)
            return StoreResult(error=exc)
        return StoreResult(entry=entry, records=[record])

    def _prune(self, state: ScheduleState, entry_id: str) -> None:
        for stale in state.records_for(entry_id)[self._max_records :]:
            del state.executions[stale.id]

    # -- History ---------------------------------------------------------------

    async def execution_history(self, entry_id: str, limit: int = 10) -> StoreResult:
        """Most recent execution records for an entry, newest first."""
        try:
            state = await self.load()
        except PersistenceFailure as exc:
            return StoreResult(error=exc)
        return StoreResult(records=state.records_for(entry_id)[:limit])

    async def cleanup_old_executions(
        self,
        days_to_keep: int | None = None,
        *,
        now: datetime | None = None,
    ) -> int:
        """Delete records older than *days_to_keep* days. Returns how many went."""
        days = days_to_keep if days_to_keep is not None else settings.execution_retention_days
        now = now or self._clock()
        cutoff = now - timedelta(days=days)

        state = await self.load()
        stale = [k for k, r in state.executions.items() if r.created_at < cutoff]
        for key in stale:
            del state.executions[key]
        state.last_cleanup = now
        await self._write(state)
        logger.info("Removed %d execution record(s) older than %d days", len(stale), days)
        return len(stale)
