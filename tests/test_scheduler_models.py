"""Tests for ScheduleEntry, ExecutionRecord and ScheduleState."""

import json
from datetime import UTC, datetime, timedelta

from cadence.scheduler.models import (
    STATE_VERSION,
    ExecutionRecord,
    ScheduleEntry,
    ScheduleState,
    make_entry_id,
    make_execution_id,
)

NOW = datetime(2025, 6, 2, 8, 0, tzinfo=UTC)


def _make_entry(entry_id: str = "schedule_1", **kwargs) -> ScheduleEntry:
    defaults = {
        "owner_key": "owner",
        "name": "Brief",
        "prompt": "Summarise",
        "schedule": "daily",
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(kwargs)
    return ScheduleEntry(id=entry_id, **defaults)


# -- Defaults ------------------------------------------------------------------


def test_default_values() -> None:
    entry = ScheduleEntry(id="s", owner_key="o", name="n", prompt="p", schedule="daily")
    assert entry.enabled is True
    assert entry.notification_targets == {}
    assert entry.last_executed_at is None
    assert entry.next_execution_at is None
    assert entry.execution_count == 0
    assert entry.consecutive_failure_count == 0
    assert entry.created_at.tzinfo is not None


def test_ids_are_prefixed_and_unique() -> None:
    assert make_entry_id().startswith("schedule_")
    assert make_execution_id().startswith("exec_")
    assert make_entry_id() != make_entry_id()


# -- is_due --------------------------------------------------------------------


def test_is_due_boundary_is_inclusive() -> None:
    entry = _make_entry(next_execution_at=NOW)
    assert entry.is_due(NOW) is True
    assert entry.is_due(NOW - timedelta(microseconds=1)) is False


def test_is_due_requires_enabled_and_next_execution() -> None:
    assert _make_entry(next_execution_at=NOW, enabled=False).is_due(NOW) is False
    assert _make_entry(next_execution_at=None).is_due(NOW) is False


# -- Serialization -------------------------------------------------------------


def test_entry_to_dict_uses_stored_field_names() -> None:
    entry = _make_entry(
        next_execution_at=NOW + timedelta(hours=1),
        notification_targets={"discord": {"enabled": True, "webhookUrl": "https://x"}},
        execution_count=3,
        consecutive_failure_count=2,
    )
    data = entry.to_dict()
    assert data["userKey"] == "owner"
    assert data["schedule"] == "daily"
    assert data["autoSend"]["discord"]["enabled"] is True
    assert data["nextExecution"] == "2025-06-02T09:00:00+00:00"
    assert data["lastExecuted"] is None
    assert data["executionCount"] == 3
    assert data["failureCount"] == 2
    json.dumps(data)


def test_entry_round_trip() -> None:
    entry = _make_entry(
        schedule={"type": "interval", "value": 2, "unit": "hours"},
        last_executed_at=NOW,
        next_execution_at=NOW + timedelta(hours=2),
        execution_count=1,
    )
    assert ScheduleEntry.from_dict(entry.to_dict()) == entry


def test_from_dict_attaches_utc_to_naive_timestamps() -> None:
    entry = ScheduleEntry.from_dict(
        {
            "id": "schedule_legacy",
            "userKey": "o",
            "name": "Old",
            "prompt": "p",
            "schedule": "hourly",
            "createdAt": "2025-01-01T00:00:00",
            "nextExecution": "2025-01-01T01:00:00",
        }
    )
    assert entry.created_at == datetime(2025, 1, 1, tzinfo=UTC)
    assert entry.next_execution_at == datetime(2025, 1, 1, 1, tzinfo=UTC)
    assert entry.consecutive_failure_count == 0


def test_record_round_trip() -> None:
    record = ExecutionRecord(
        id="exec_1",
        entry_id="schedule_1",
        success=False,
        error="API request failed: 500",
        notifications={"telegram": {"success": True}},
        created_at=NOW,
    )
    data = record.to_dict()
    assert data["scheduleId"] == "schedule_1"
    assert ExecutionRecord.from_dict(data) == record


# -- ScheduleState -------------------------------------------------------------


def test_state_from_empty_dict() -> None:
    state = ScheduleState.from_dict({})
    assert state.entries == {}
    assert state.executions == {}
    assert state.last_cleanup is None
    assert state.version == STATE_VERSION


def test_state_round_trip() -> None:
    entry = _make_entry()
    record = ExecutionRecord(id="exec_1", entry_id=entry.id, success=True, created_at=NOW)
    state = ScheduleState(
        entries={entry.id: entry}, executions={record.id: record}, last_cleanup=NOW
    )
    data = json.loads(json.dumps(state.to_dict()))
    assert ScheduleState.from_dict(data) == state


def test_records_for_newest_first() -> None:
    records = {
        f"exec_{i}": ExecutionRecord(
            id=f"exec_{i}", entry_id="a", success=True, created_at=NOW + timedelta(minutes=i)
        )
        for i in range(3)
    }
    records["exec_other"] = ExecutionRecord(id="exec_other", entry_id="b", success=True)
    state = ScheduleState(executions=records)

    ids = [r.id for r in state.records_for("a")]
    assert ids == ["exec_2", "exec_1", "exec_0"]
