from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Union

from errors import ValidationError
from intervals import as_utc, parse_clock, resolve_span
from records import SHIFT_STATUS_DRAFT, ShiftDraft

PATTERN_FIXED = "fixed"
PATTERN_ROTATING = "rotating"
DEFAULT_FIXED_DAYS = (1, 2, 3, 4, 5)  # Monday-Friday, 0 = Sunday
DEFAULT_SHIFT_START = "09:00"
DEFAULT_SHIFT_END = "17:00"


@dataclass(frozen=True)
class FixedWeeklyPattern:
    weekdays: FrozenSet[int]
    start_time: datetime.time
    end_time: datetime.time


@dataclass(frozen=True)
class RotatingPattern:
    days_on: int
    days_off: int
    anchor_date: datetime.date
    start_time: datetime.time
    end_time: datetime.time

    @property
    def cycle_length(self) -> int:
        return self.days_on + self.days_off


RecurrenceSpec = Union[FixedWeeklyPattern, RotatingPattern]


def sunday_weekday(day: datetime.date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return as_utc(value).date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid calendar date '{value}', expected YYYY-MM-DD.") from exc


def _to_int(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be an integer.") from exc


def parse_schedule_config(
    config: Dict[str, Any],
    *,
    default_anchor: Optional[datetime.date] = None,
    default_start: str = DEFAULT_SHIFT_START,
    default_end: str = DEFAULT_SHIFT_END,
) -> RecurrenceSpec:
    """Build a recurrence spec from a staff profile's stored ``schedule_config``."""
    if not isinstance(config, dict):
        raise ValidationError("Schedule config must be an object.")
    pattern_type = (config.get("type") or "").strip().lower()
    start_time = parse_clock(config.get("shift_start_time") or default_start)
    end_time = parse_clock(config.get("shift_end_time") or default_end)
    if pattern_type == PATTERN_FIXED:
        days = config.get("fixed_days")
        if days is None:
            days = DEFAULT_FIXED_DAYS
        spec: RecurrenceSpec = FixedWeeklyPattern(
            weekdays=frozenset(_to_int(day, "fixed_days entry") for day in days),
            start_time=start_time,
            end_time=end_time,
        )
    elif pattern_type == PATTERN_ROTATING:
        anchor_raw = config.get("anchor_date")
        if anchor_raw:
            anchor = _to_date(anchor_raw)
        else:
            anchor = default_anchor or datetime.date.today()
        spec = RotatingPattern(
            days_on=_to_int(config.get("days_on"), "days_on"),
            days_off=_to_int(config.get("days_off"), "days_off"),
            anchor_date=anchor,
            start_time=start_time,
            end_time=end_time,
        )
    else:
        raise ValidationError(f"Unsupported schedule pattern type '{config.get('type')}'.")
    validate_spec(spec)
    return spec


def pin_anchor(config: Dict[str, Any], anchor: datetime.date) -> Dict[str, Any]:
    """Return ``config`` with a rotating pattern's missing anchor fixed to ``anchor``.

    A stored rotating pattern must keep one anchor; otherwise every extension
    would restart the on/off cycle on its own start day.
    """
    if not isinstance(config, dict):
        return config
    pattern_type = str(config.get("type") or "").strip().lower()
    if pattern_type != PATTERN_ROTATING or config.get("anchor_date"):
        return config
    pinned = dict(config)
    pinned["anchor_date"] = anchor.isoformat()
    return pinned


def validate_spec(spec: RecurrenceSpec) -> None:
    if spec.start_time == spec.end_time:
        raise ValidationError("Shift start and end times must differ.")
    if isinstance(spec, FixedWeeklyPattern):
        invalid = sorted(day for day in spec.weekdays if day < 0 or day > 6)
        if invalid:
            raise ValidationError(f"Weekday indices must be 0-6 (Sunday-Saturday), got {invalid}.")
        return
    if isinstance(spec, RotatingPattern):
        if spec.days_on < 1 or spec.days_off < 1:
            raise ValidationError("Rotating patterns need days_on >= 1 and days_off >= 1.")
        return
    raise ValidationError(f"Unsupported recurrence spec {type(spec).__name__}.")


def days_since(anchor: datetime.date, day: datetime.date) -> int:
    return (day - anchor).days


def is_on_day(spec: RecurrenceSpec, day: datetime.date) -> bool:
    if isinstance(spec, FixedWeeklyPattern):
        return sunday_weekday(day) in spec.weekdays
    # Python's modulo already folds negative offsets into [0, L).
    offset = days_since(spec.anchor_date, day) % spec.cycle_length
    return offset < spec.days_on


def expand(
    spec: RecurrenceSpec,
    staff_id: str,
    org_id: str,
    from_date: Optional[datetime.date] = None,
    weeks: int = 4,
    *,
    status: str = SHIFT_STATUS_DRAFT,
    role_type: str = "Staff",
) -> Iterator[ShiftDraft]:
    """Return a lazy sequence of shifts for ``weeks`` weeks starting at ``from_date``.

    The spec is validated before anything is produced. No deduplication is done here:
    callers that extend an existing schedule pass the day after the latest shift as
    ``from_date``.
    """
    validate_spec(spec)
    start_day = _to_date(from_date) if from_date is not None else datetime.date.today()
    total_days = max(0, int(weeks)) * 7
    if isinstance(spec, FixedWeeklyPattern) and not spec.weekdays:
        total_days = 0
    return _iter_shifts(spec, staff_id, org_id, start_day, total_days, status, role_type)


def _iter_shifts(
    spec: RecurrenceSpec,
    staff_id: str,
    org_id: str,
    start_day: datetime.date,
    total_days: int,
    status: str,
    role_type: str,
) -> Iterator[ShiftDraft]:
    for offset in range(total_days):
        day = start_day + datetime.timedelta(days=offset)
        if not is_on_day(spec, day):
            continue
        start, end = resolve_span(day, spec.start_time, spec.end_time)
        yield ShiftDraft(
            organization_id=org_id,
            staff_id=staff_id,
            start=start,
            end=end,
            role_type=role_type,
            status=status,
            is_open=False,
        )


def next_generation_start(
    shifts: Iterable[Any],
    staff_id: str,
    default: Optional[datetime.date] = None,
) -> datetime.date:
    """Return the day after the staff member's latest shift end, or ``default``."""
    latest: Optional[datetime.datetime] = None
    for shift in shifts:
        if getattr(shift, "staff_id", None) != staff_id:
            continue
        end = as_utc(shift.end)
        if latest is None or end > latest:
            latest = end
    if latest is None:
        return default or datetime.date.today()
    return latest.date() + datetime.timedelta(days=1)
