"""ScheduleEntry, ExecutionRecord and the persisted ScheduleState."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cadence.scheduler.rules import rule_to_raw

STATE_VERSION = "1.0.0"


def _now() -> datetime:
    return datetime.now(UTC)


def _dump_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _load_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Attach UTC if naive
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ScheduleEntry:
    """A prompt to be executed on a recurrence rule.

    Attributes:
        id: Unique identifier (``schedule_<hex>``).
        owner_key: Hashed key of the owner; compared for equality only.
        name: Human-readable name.
        prompt: Text sent to the external action on each run.
        schedule: Raw recurrence rule (see ``cadence.scheduler.rules``).
        enabled: Whether the entry is eligible for due selection.
        notification_targets: Channel name → channel config, passed through
            to the notification router.
        created_at: Creation time.
        updated_at: Last owner or coordinator mutation.
        last_executed_at: Completion time of the last run.
        next_execution_at: Output of the rule evaluator; never hand-edited.
        execution_count: Total runs.
        consecutive_failure_count: Failed runs since the last success.
    """

    id: str
    owner_key: str
    name: str
    prompt: str
    schedule: Any
    enabled: bool = True
    notification_targets: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    last_executed_at: datetime | None = None
    next_execution_at: datetime | None = None
    execution_count: int = 0
    consecutive_failure_count: int = 0

    def is_due(self, now: datetime) -> bool:
        return (
            self.enabled
            and self.next_execution_at is not None
            and self.next_execution_at <= now
        )

    # -- Serialization ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userKey": self.owner_key,
            "name": self.name,
            "prompt": self.prompt,
            "schedule": rule_to_raw(self.schedule),
            "enabled": self.enabled,
            "autoSend": self.notification_targets,
            "createdAt": _dump_ts(self.created_at),
            "updatedAt": _dump_ts(self.updated_at),
            "lastExecuted": _dump_ts(self.last_executed_at),
            "nextExecution": _dump_ts(self.next_execution_at),
            "executionCount": self.execution_count,
            "failureCount": self.consecutive_failure_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleEntry:
        return cls(
            id=data["id"],
            owner_key=data.get("userKey", ""),
            name=data.get("name", ""),
            prompt=data.get("prompt", ""),
            schedule=data.get("schedule"),
            enabled=bool(data.get("enabled", True)),
            notification_targets=data.get("autoSend") or {},
            created_at=_load_ts(data.get("createdAt")) or _now(),
            updated_at=_load_ts(data.get("updatedAt")) or _now(),
            last_executed_at=_load_ts(data.get("lastExecuted")),
            next_execution_at=_load_ts(data.get("nextExecution")),
            execution_count=int(data.get("executionCount") or 0),
            consecutive_failure_count=int(data.get("failureCount") or 0),
        )


@dataclass
class ExecutionRecord:
    """Outcome of one run of an entry. Never updated after creation."""

    id: str
    entry_id: str
    success: bool
    error: str | None = None
    data: Any = None
    notifications: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scheduleId": self.entry_id,
            "success": self.success,
            "error": self.error,
            "data": self.data,
            "autoSendResults": self.notifications,
            "createdAt": _dump_ts(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionRecord:
        return cls(
            id=data["id"],
            entry_id=data.get("scheduleId", ""),
            success=bool(data.get("success")),
            error=data.get("error"),
            data=data.get("data"),
            notifications=data.get("autoSendResults") or {},
            created_at=_load_ts(data.get("createdAt")) or _now(),
        )


@dataclass
class ScheduleState:
    """Everything the store persists, read and written as a whole."""

    entries: dict[str, ScheduleEntry] = field(default_factory=dict)
    executions: dict[str, ExecutionRecord] = field(default_factory=dict)
    last_cleanup: datetime | None = None
    version: str = STATE_VERSION

    def records_for(self, entry_id: str) -> list[ExecutionRecord]:
        """Records for one entry, newest first."""
        records = [r for r in self.executions.values() if r.entry_id == entry_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedules": {k: v.to_dict() for k, v in self.entries.items()},
            "executions": {k: v.to_dict() for k, v in self.executions.items()},
            "lastCleanup": _dump_ts(self.last_cleanup),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleState:
        entries = {
            key: ScheduleEntry.from_dict(value)
            for key, value in (data.get("schedules") or {}).items()
        }
        executions = {
            key: ExecutionRecord.from_dict(value)
            for key, value in (data.get("executions") or {}).items()
        }
        return cls(
            entries=entries,
            executions=executions,
            last_cleanup=_load_ts(data.get("lastCleanup")),
            version=data.get("version") or STATE_VERSION,
        )


def make_entry_id() -> str:
    """Generate a new schedule entry ID."""
    return f"schedule_{uuid.uuid4().hex}"


def make_execution_id() -> str:
    return f"exec_{uuid.uuid4().hex}"
