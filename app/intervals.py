from __future__ import annotations

import datetime
from typing import Tuple

from errors import ValidationError

UTC = datetime.timezone.utc


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Return an aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def overlaps(
    a_start: datetime.datetime,
    a_end: datetime.datetime,
    b_start: datetime.datetime,
    b_end: datetime.datetime,
) -> bool:
    # Half-open: back-to-back intervals do not overlap.
    return as_utc(a_start) < as_utc(b_end) and as_utc(a_end) > as_utc(b_start)


def duration_ms(start: datetime.datetime, end: datetime.datetime) -> int:
    delta = as_utc(end) - as_utc(start)
    return max(0, int(delta.total_seconds() * 1000))


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def calendar_day(value: datetime.datetime) -> datetime.date:
    return as_utc(value).date()


def parse_clock(label: str) -> datetime.time:
    """Parse an "HH:MM" label into a time of day."""
    if isinstance(label, datetime.time):
        return label
    try:
        hours_text, minutes_text = str(label).strip().split(":")[:2]
        hours, minutes = int(hours_text), int(minutes_text)
        return datetime.time(hours, minutes)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid time of day '{label}', expected HH:MM.") from exc


def resolve_span(
    day: datetime.date,
    start_time: datetime.time,
    end_time: datetime.time,
) -> Tuple[datetime.datetime, datetime.datetime]:
    """Anchor a daily start/end window on ``day``; an earlier end rolls to the next day."""
    start = datetime.datetime.combine(day, start_time, tzinfo=UTC)
    end = datetime.datetime.combine(day, end_time, tzinfo=UTC)
    if end < start:
        end += datetime.timedelta(days=1)
    return start, end


def ensure_positive_span(start: datetime.datetime, end: datetime.datetime) -> None:
    if as_utc(end) <= as_utc(start):
        raise ValidationError("Shift end time must be after start time.")
