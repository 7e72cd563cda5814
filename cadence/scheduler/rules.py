"""Recurrence rules — a tagged union over ``type`` plus create-time validation.

Stored rules keep the wire shape clients send::

    "daily"                                              # simple-basic shorthand
    {"type": "simple-basic", "pattern": "weekly"}
    {"type": "specific-times", "times": ["09:00"], "days": [1, 3, 5]}
    {"type": "interval", "value": 30, "unit": "minutes"}
    {"type": "cron", "expression": "0 9 * * *"}

Weekday indexes run 0 (Sunday) through 6 (Saturday).
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, Field, TypeAdapter

from cadence.errors import ValidationError

BASIC_PATTERNS = ("daily", "weekly", "hourly")
INTERVAL_UNITS = ("minutes", "hours", "days")
# Longest accepted interval, one year, expressed per unit.
MAX_INTERVAL_VALUES = {"minutes": 525_600, "hours": 8_760, "days": 365}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class SimpleRule(BaseModel):
    type: Literal["simple-basic"] = "simple-basic"
    pattern: str


class SpecificTimesRule(BaseModel):
    type: Literal["specific-times"] = "specific-times"
    times: list[str] = Field(default_factory=list)
    days: list[int] = Field(default_factory=list)


class IntervalRule(BaseModel):
    type: Literal["interval"] = "interval"
    value: int = 0
    unit: str = ""


class CronRule(BaseModel):
    type: Literal["cron"] = "cron"
    expression: str = ""


RecurrenceRule = Annotated[
    SimpleRule | SpecificTimesRule | IntervalRule | CronRule,
    Field(discriminator="type"),
]

_RULE_TYPES = ("simple-basic", "specific-times", "interval", "cron")

_adapter: TypeAdapter[Any] = TypeAdapter(RecurrenceRule)


def parse_time(value: str) -> tuple[int, int] | None:
    """Parse ``"HH:MM"`` into ``(hour, minute)``, or None if malformed."""
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def parse_rule(raw: Any) -> SimpleRule | SpecificTimesRule | IntervalRule | CronRule | None:
    """Leniently map a stored rule onto its variant. Returns None if unrecognised."""
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if isinstance(raw, str):
        return SimpleRule(pattern=raw)
    if not isinstance(raw, dict):
        return None
    try:
        return _adapter.validate_python(raw)
    except pydantic.ValidationError:
        return None


def rule_to_raw(rule: Any) -> Any:
    """Serialize a rule back into its JSON shape."""
    if isinstance(rule, BaseModel):
        return rule.model_dump()
    return rule


def validate_rule(raw: Any) -> SimpleRule | SpecificTimesRule | IntervalRule | CronRule:
    """Check a client-supplied rule and return the parsed variant.

    Raises:
        ValidationError: with a message describing the first problem found.
    """
    if isinstance(raw, str):
        if raw in BASIC_PATTERNS:
            return SimpleRule(pattern=raw)
        msg = "Invalid schedule pattern. Supported: daily, weekly, hourly, or custom object"
        raise ValidationError(msg)

    if not isinstance(raw, dict):
        msg = "Invalid schedule pattern. Supported: daily, weekly, hourly, or custom object"
        raise ValidationError(msg)

    rule_type = raw.get("type")
    if not rule_type:
        raise ValidationError("Custom schedule must have a type")
    if rule_type not in _RULE_TYPES:
        raise ValidationError("Invalid custom schedule type")

    try:
        rule = _adapter.validate_python(raw)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"][1:]) or rule_type
        msg = f"Invalid {rule_type} schedule: {location}: {first['msg']}"
        raise ValidationError(msg) from exc

    if isinstance(rule, SimpleRule):
        if rule.pattern not in BASIC_PATTERNS:
            raise ValidationError("Simple schedule pattern must be daily, weekly or hourly")
    elif isinstance(rule, SpecificTimesRule):
        _validate_specific_times(rule)
    elif isinstance(rule, IntervalRule):
        if rule.value < 1:
            raise ValidationError("Interval schedule must have a positive value")
        if rule.unit not in INTERVAL_UNITS:
            msg = "Interval schedule must have a valid unit (minutes, hours, days)"
            raise ValidationError(msg)
        if rule.value > MAX_INTERVAL_VALUES[rule.unit]:
            msg = f"Interval schedule must be at most {MAX_INTERVAL_VALUES[rule.unit]} {rule.unit}"
            raise ValidationError(msg)
    elif isinstance(rule, CronRule):
        if not rule.expression.strip():
            raise ValidationError("Cron schedule must have a valid expression")
        fields = rule.expression.split()
        if len(fields) < 5 or len(fields) > 6:
            raise ValidationError("Cron expression must have 5 or 6 parts")
    return rule


def _validate_specific_times(rule: SpecificTimesRule) -> None:
    if not rule.times:
        raise ValidationError("Specific times schedule must have at least one time")
    if not rule.days:
        raise ValidationError("Specific times schedule must have at least one day selected")
    for value in rule.times:
        if parse_time(value) is None:
            raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    for day in rule.days:
        if not 0 <= day <= 6:
            raise ValidationError(f"Invalid day {day}, expected 0 (Sunday) to 6 (Saturday)")
