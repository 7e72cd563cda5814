"""Schedule system — rules, evaluation, persistence, execution and triggering."""

from cadence.scheduler.action import ActionResult, HttpActionInvoker
from cadence.scheduler.backends import JsonFileBackend, SqliteBackend, create_backend
from cadence.scheduler.engine import SchedulerEngine
from cadence.scheduler.evaluator import next_execution
from cadence.scheduler.executor import CycleReport, ExecutionCoordinator
from cadence.scheduler.models import ExecutionRecord, ScheduleEntry, ScheduleState
from cadence.scheduler.rules import parse_rule, validate_rule
from cadence.scheduler.store import EntryStore, StoreResult, select_due

__all__ = [
    "ActionResult",
    "CycleReport",
    "EntryStore",
    "ExecutionCoordinator",
    "ExecutionRecord",
    "HttpActionInvoker",
    "JsonFileBackend",
    "ScheduleEntry",
    "ScheduleState",
    "SchedulerEngine",
    "SqliteBackend",
    "StoreResult",
    "create_backend",
    "next_execution",
    "parse_rule",
    "select_due",
    "validate_rule",
]
