from __future__ import annotations

import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from intervals import UTC, as_utc, calendar_day, clamp_percent, duration_ms

STATUS_COMPLETE = "complete"
STATUS_GOOD = "good"
STATUS_PARTIAL = "partial"
STATUS_MISSED = "missed"
STATUS_PENDING = "pending"
STATUS_OFF = "off"

COMPLETE_PCT = 95.0
GOOD_PCT = 80.0
HISTORY_DAYS = 14


def match_time_entry(shift: Any, entries: Iterable[Any]) -> Optional[Any]:
    """Return the time entry that fulfils ``shift``, if any.

    Entries carry no shift reference, so the match is by owner and by the calendar
    day of clock-in versus shift start. A staff member with two shifts on the same
    day gets the same (first) entry for both.
    """
    staff_id = getattr(shift, "staff_id", None)
    if not staff_id:
        return None
    shift_day = calendar_day(shift.start)
    for entry in entries:
        if entry.staff_id == staff_id and calendar_day(entry.clock_in) == shift_day:
            return entry
    return None


def completion(shift: Any, entries: Iterable[Any], now: Optional[datetime.datetime] = None) -> float:
    """Percent of the shift's scheduled duration actually worked, capped at 100."""
    entry = match_time_entry(shift, entries)
    if entry is None:
        return 0.0
    scheduled_ms = duration_ms(shift.start, shift.end)
    if scheduled_ms <= 0:
        return 0.0
    clock_out = entry.clock_out or now or datetime.datetime.now(UTC)
    worked_ms = duration_ms(entry.clock_in, clock_out)
    return clamp_percent(worked_ms / scheduled_ms * 100)


def classify(
    pct: float,
    day: datetime.date,
    today: datetime.date,
    *,
    complete_pct: float = COMPLETE_PCT,
    good_pct: float = GOOD_PCT,
) -> str:
    if pct >= complete_pct:
        return STATUS_COMPLETE
    if pct > good_pct:
        return STATUS_GOOD
    if pct > 0:
        return STATUS_PARTIAL
    if day < today:
        return STATUS_MISSED
    return STATUS_PENDING


def classify_day(
    pcts: List[float],
    day: datetime.date,
    today: datetime.date,
    *,
    complete_pct: float = COMPLETE_PCT,
    good_pct: float = GOOD_PCT,
) -> Tuple[Optional[float], str]:
    """Mean completion of a day's shifts and its status; ``(None, "off")`` when nothing was scheduled."""
    if not pcts:
        return None, STATUS_OFF
    average = round(sum(pcts) / len(pcts), 2)
    return average, classify(average, day, today, complete_pct=complete_pct, good_pct=good_pct)


def _shifts_on(shifts: Iterable[Any], day: datetime.date) -> List[Any]:
    return [shift for shift in shifts if calendar_day(shift.start) == day]


def _today(now: Optional[datetime.datetime], today: Optional[datetime.date] = None) -> datetime.date:
    if today is not None:
        return today
    return as_utc(now).date() if now is not None else datetime.datetime.now(UTC).date()


def team_day_summary(
    shifts: Iterable[Any],
    entries: Iterable[Any],
    day: datetime.date,
    now: Optional[datetime.datetime] = None,
    *,
    complete_pct: float = COMPLETE_PCT,
    good_pct: float = GOOD_PCT,
) -> Dict[str, Any]:
    entries = list(entries)
    today = _today(now)
    scheduled = [
        shift
        for shift in _shifts_on(shifts, day)
        if not shift.is_open and getattr(shift, "staff_id", None)
    ]
    rows: List[Dict[str, Any]] = []
    for shift in scheduled:
        pct = completion(shift, entries, now)
        rows.append(
            {
                "shift_id": shift.id,
                "staff_id": shift.staff_id,
                "role_type": shift.role_type,
                "pct": round(pct, 2),
                "status": classify(pct, day, today, complete_pct=complete_pct, good_pct=good_pct),
            }
        )
    average, status = classify_day(
        [row["pct"] for row in rows], day, today, complete_pct=complete_pct, good_pct=good_pct
    )
    return {
        "date": day.isoformat(),
        "shift_count": len(rows),
        "average": average,
        "status": status,
        "shifts": rows,
    }


def staff_history(
    staff_id: str,
    shifts: Iterable[Any],
    entries: Iterable[Any],
    days: int = HISTORY_DAYS,
    today: Optional[datetime.date] = None,
    now: Optional[datetime.datetime] = None,
    *,
    complete_pct: float = COMPLETE_PCT,
    good_pct: float = GOOD_PCT,
) -> List[Dict[str, Any]]:
    """One point per calendar day for the trailing ``days`` days, oldest first."""
    today = _today(now, today)
    own_shifts = [shift for shift in shifts if getattr(shift, "staff_id", None) == staff_id]
    own_entries = [entry for entry in entries if entry.staff_id == staff_id]
    points: List[Dict[str, Any]] = []
    for offset in range(max(0, int(days)) - 1, -1, -1):
        day = today - datetime.timedelta(days=offset)
        pcts = [completion(shift, own_entries, now) for shift in _shifts_on(own_shifts, day)]
        average, status = classify_day(pcts, day, today, complete_pct=complete_pct, good_pct=good_pct)
        points.append({"date": day.isoformat(), "pct": average, "status": status})
    return points
