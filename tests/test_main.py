"""Tests for the cadence command-line entry point."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from cadence import main as cli
from cadence.errors import PersistenceFailure
from cadence.notifications.router import NotificationRouter
from cadence.scheduler.executor import CycleReport, EntryRunResult, ExecutionCoordinator
from cadence.scheduler.store import EntryStore

T0 = datetime(2025, 6, 2, 8, 0, tzinfo=UTC)


def test_build_router_registers_builtin_channels() -> None:
    router = cli.build_router()
    assert sorted(router.list_channels()) == ["discord", "telegram"]
    # Idempotent: a second call must not raise on duplicate registration.
    assert cli.build_router() is NotificationRouter.get()


async def test_run_once_prints_report(capsys: pytest.CaptureFixture[str]) -> None:
    coordinator = AsyncMock(spec=ExecutionCoordinator)
    coordinator.run_cycle.return_value = CycleReport(
        results=[EntryRunResult("schedule_1", "Brief", True, T0)]
    )

    status = await cli.run_once(coordinator)

    assert status == 0
    output = json.loads(capsys.readouterr().out)
    assert output["processed"] == 1
    assert output["results"][0]["scheduleName"] == "Brief"


async def test_run_once_failures_still_exit_zero() -> None:
    coordinator = AsyncMock(spec=ExecutionCoordinator)
    coordinator.run_cycle.return_value = CycleReport(
        results=[EntryRunResult("schedule_1", "Brief", False, T0, error="boom")]
    )
    assert await cli.run_once(coordinator) == 0


async def test_run_once_unreadable_state_exits_one() -> None:
    coordinator = AsyncMock(spec=ExecutionCoordinator)
    coordinator.run_cycle.side_effect = PersistenceFailure("Could not read schedule state")
    assert await cli.run_once(coordinator) == 1


async def test_cleanup_removes_old_records(store: EntryStore) -> None:
    entry = (
        await store.create(
            "owner", {"name": "n", "prompt": "p", "schedule": "hourly"}, now=T0
        )
    ).entry
    await store.record_execution(entry.id, success=True, completed_at=T0 - timedelta(days=45))

    assert await cli.cleanup(30, store=store) == 0
    assert (await store.load()).executions == {}


async def test_cleanup_failure_exits_one() -> None:
    store = AsyncMock(spec=EntryStore)
    store.cleanup_old_executions.side_effect = PersistenceFailure("disk gone")
    assert await cli.cleanup(30, store=store) == 1


def test_parse_args() -> None:
    assert cli._parse_args(["run-once"]).command == "run-once"
    args = cli._parse_args(["cleanup", "--days", "7"])
    assert args.command == "cleanup"
    assert args.days == 7
    assert cli._parse_args(["cleanup"]).days == 30


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli._parse_args([])


def test_main_dispatches_run_once() -> None:
    with patch.object(cli, "run_once", new=AsyncMock(return_value=0)) as run_once:
        assert cli.main(["run-once"]) == 0
    run_once.assert_awaited_once()


def test_main_dispatches_cleanup() -> None:
    with patch.object(cli, "cleanup", new=AsyncMock(return_value=0)) as cleanup:
        assert cli.main(["cleanup", "--days", "3"]) == 0
    cleanup.assert_awaited_once_with(3)
