"""Rule evaluator — recurrence rule + reference time → next execution time.

``next_execution`` never raises. Anything it cannot make sense of resolves to
the 24-hour default so a stored entry always has a next execution time.
Time-of-day matching happens in the reference time's own timezone.
"""

from __future__ import annotations

import logging
import zoneinfo
from datetime import datetime, time, timedelta
from typing import Any

from cadence.config import settings
from cadence.scheduler.rules import (
    CronRule,
    IntervalRule,
    SimpleRule,
    SpecificTimesRule,
    parse_rule,
    parse_time,
)

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(hours=24)

_BASIC_OFFSETS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "hourly": timedelta(hours=1),
}

_UNIT_DELTAS = {
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
    "days": timedelta(days=1),
}

# Offsets 0..7 so "today's weekday, time already passed" lands a week later.
_SCAN_DAYS = 8


def weekday_index(moment: datetime) -> int:
    """Weekday as 0 (Sunday) .. 6 (Saturday)."""
    return moment.isoweekday() % 7


def next_execution(rule: Any, reference_time: datetime) -> datetime:
    """Return the first execution time strictly after *reference_time*."""
    parsed = parse_rule(rule)
    if isinstance(parsed, SimpleRule):
        return reference_time + _BASIC_OFFSETS.get(parsed.pattern, DEFAULT_INTERVAL)
    if isinstance(parsed, SpecificTimesRule):
        return _next_specific_time(parsed, reference_time)
    if isinstance(parsed, IntervalRule):
        return _next_interval(parsed, reference_time)
    if isinstance(parsed, CronRule):
        return _next_cron(parsed, reference_time)
    logger.warning("Unrecognised recurrence rule %r, using 24h default", rule)
    return reference_time + DEFAULT_INTERVAL


def _at(day: datetime, clock: tuple[int, int]) -> datetime:
    return datetime.combine(day.date(), time(clock[0], clock[1]), tzinfo=day.tzinfo)


def _next_specific_time(rule: SpecificTimesRule, reference_time: datetime) -> datetime:
    times = sorted({t for t in (parse_time(v) for v in rule.times) if t is not None})
    days = {d for d in rule.days if isinstance(d, int) and 0 <= d <= 6}

    if not times or not rule.days:
        return reference_time + DEFAULT_INTERVAL

    for offset in range(_SCAN_DAYS):
        day = reference_time + timedelta(days=offset)
        if weekday_index(day) not in days:
            continue
        for clock in times:
            candidate = _at(day, clock)
            if candidate > reference_time:
                return candidate

    # Only reachable when every listed day is out of range.
    first = parse_time(rule.times[0]) or times[0]
    return _at(reference_time + timedelta(days=1), first)


def _next_interval(rule: IntervalRule, reference_time: datetime) -> datetime:
    if rule.value < 1:
        return reference_time + DEFAULT_INTERVAL
    unit = _UNIT_DELTAS.get(rule.unit)
    if unit is None:
        return reference_time + timedelta(days=1)
    try:
        return reference_time + rule.value * unit
    except OverflowError:
        logger.warning(
            "Interval of %d %s is out of range, using 24h default", rule.value, rule.unit
        )
        return reference_time + DEFAULT_INTERVAL


def _next_cron(rule: CronRule, reference_time: datetime) -> datetime:
    """Support only ``M H * * *`` (optionally seconds-prefixed).

    Ranges, lists, steps and restricted day fields are not evaluated and fall
    back to the 24-hour default.
    """
    fields = rule.expression.split()
    if len(fields) == 6:
        fields = fields[1:]
    if len(fields) != 5:
        return reference_time + DEFAULT_INTERVAL

    minute, hour, day_of_month, month, day_of_week = fields
    if not (minute.isdecimal() and hour.isdecimal()):
        return reference_time + DEFAULT_INTERVAL
    if (day_of_month, month, day_of_week) != ("*", "*", "*"):
        return reference_time + DEFAULT_INTERVAL
    clock = (int(hour), int(minute))
    if clock[0] > 23 or clock[1] > 59:
        return reference_time + DEFAULT_INTERVAL

    candidate = _at(reference_time, clock)
    if candidate <= reference_time:
        candidate = _at(reference_time + timedelta(days=1), clock)
    return candidate


def scheduler_now(timezone: str | None = None) -> datetime:
    """Current time in the scheduler's configured timezone."""
    return datetime.now(zoneinfo.ZoneInfo(timezone or settings.scheduler_timezone))
