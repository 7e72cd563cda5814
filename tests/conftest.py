"""Shared test fixtures."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from cadence.notifications.router import NotificationRouter
from cadence.scheduler.backends import JsonFileBackend
from cadence.scheduler.store import EntryStore

# Monday 2025-06-02 08:00 UTC.
T0 = datetime(2025, 6, 2, 8, 0, tzinfo=UTC)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def backend(tmp_path: Path) -> JsonFileBackend:
    return JsonFileBackend(tmp_path / "schedules.json")


@pytest.fixture
def store(backend: JsonFileBackend) -> EntryStore:
    """An EntryStore whose clock is pinned to T0."""
    return EntryStore(backend, clock=lambda: T0)


@pytest.fixture(autouse=True)
def _reset_router():
    NotificationRouter._reset()
    yield
    NotificationRouter._reset()

