from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from errors import ValidationError  # noqa: E402
from intervals import (  # noqa: E402
    UTC,
    as_utc,
    clamp_percent,
    duration_ms,
    overlaps,
    parse_clock,
    resolve_span,
)


def _at(hour: int, minute: int = 0, day: int = 1) -> datetime.datetime:
    return datetime.datetime(2024, 1, day, hour, minute, tzinfo=UTC)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((9, 17), (16, 20), True),
        ((9, 17), (17, 20), False),
        ((9, 17), (10, 12), True),
        ((9, 17), (6, 9), False),
        ((9, 17), (8, 18), True),
    ],
)
def test_overlaps_is_half_open_and_symmetric(a, b, expected) -> None:
    a_start, a_end = _at(a[0]), _at(a[1])
    b_start, b_end = _at(b[0]), _at(b[1])
    assert overlaps(a_start, a_end, b_start, b_end) is expected
    assert overlaps(b_start, b_end, a_start, a_end) is expected


def test_overlaps_accepts_naive_and_aware_values() -> None:
    naive_start = datetime.datetime(2024, 1, 1, 9, 0)
    naive_end = datetime.datetime(2024, 1, 1, 17, 0)
    assert overlaps(naive_start, naive_end, _at(16), _at(20))


def test_duration_ms_never_negative() -> None:
    assert duration_ms(_at(9), _at(17)) == 8 * 3600 * 1000
    assert duration_ms(_at(17), _at(9)) == 0


def test_clamp_percent_bounds() -> None:
    assert clamp_percent(119.8) == 100.0
    assert clamp_percent(-3) == 0.0
    assert clamp_percent(42.5) == 42.5


def test_resolve_span_rolls_overnight_end_to_next_day() -> None:
    start, end = resolve_span(datetime.date(2024, 1, 1), datetime.time(19, 0), datetime.time(7, 0))
    assert start == _at(19)
    assert end == _at(7, day=2)


def test_parse_clock_rejects_garbage() -> None:
    assert parse_clock("07:30") == datetime.time(7, 30)
    with pytest.raises(ValidationError):
        parse_clock("7pm")
    with pytest.raises(ValidationError):
        parse_clock("25:00")


def test_as_utc_converts_offsets() -> None:
    eastern = datetime.timezone(datetime.timedelta(hours=-5))
    value = datetime.datetime(2024, 1, 1, 9, 0, tzinfo=eastern)
    assert as_utc(value) == _at(14)
