from __future__ import annotations

import datetime
import sys
import unittest
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from attendance import (  # noqa: E402
    classify,
    classify_day,
    completion,
    match_time_entry,
    staff_history,
    team_day_summary,
)
from intervals import UTC  # noqa: E402
from records import ShiftDraft, TimeEntryRecord  # noqa: E402

DAY = datetime.date(2024, 3, 4)
NOW = datetime.datetime(2024, 3, 6, 12, 0, tzinfo=UTC)


def _at(hour: int, minute: int = 0, day: datetime.date = DAY) -> datetime.datetime:
    return datetime.datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def _shift(staff_id, start, end, **kwargs) -> ShiftDraft:
    return ShiftDraft(organization_id="org-1", staff_id=staff_id, start=start, end=end, role_type="Handler", **kwargs)


class CompletionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.shift = _shift("staff-1", _at(9), _at(17))

    def test_overtime_is_capped_at_one_hundred(self) -> None:
        entries = [TimeEntryRecord("staff-1", _at(8, 55), _at(18, 30))]
        self.assertEqual(completion(self.shift, entries, NOW), 100.0)

    def test_partial_day(self) -> None:
        entries = [TimeEntryRecord("staff-1", _at(9), _at(13))]
        self.assertEqual(completion(self.shift, entries, NOW), 50.0)

    def test_open_entry_counts_until_now(self) -> None:
        entries = [TimeEntryRecord("staff-1", _at(9))]
        self.assertEqual(completion(self.shift, entries, _at(11)), 25.0)

    def test_missing_entry_is_zero_and_distinct_from_no_match(self) -> None:
        entries = [
            TimeEntryRecord("staff-2", _at(9), _at(17)),
            TimeEntryRecord("staff-1", _at(9, day=DAY + datetime.timedelta(days=1)), _at(17, day=DAY + datetime.timedelta(days=1))),
        ]
        self.assertIsNone(match_time_entry(self.shift, entries))
        self.assertEqual(completion(self.shift, entries, NOW), 0.0)

    def test_same_day_split_shift_reuses_first_entry(self) -> None:
        first = TimeEntryRecord("staff-1", _at(6), _at(10))
        second = TimeEntryRecord("staff-1", _at(14), _at(18))
        evening = _shift("staff-1", _at(14), _at(18))
        self.assertIs(match_time_entry(evening, [first, second]), first)


class ClassifyTests(unittest.TestCase):
    def test_bands(self) -> None:
        today = datetime.date(2024, 3, 6)
        self.assertEqual(classify(100, DAY, today), "complete")
        self.assertEqual(classify(95, DAY, today), "complete")
        self.assertEqual(classify(90, DAY, today), "good")
        self.assertEqual(classify(80, DAY, today), "partial")
        self.assertEqual(classify(0.5, DAY, today), "partial")
        self.assertEqual(classify(0, DAY, today), "missed")
        self.assertEqual(classify(0, today, today), "pending")

    def test_day_status_averages_shifts(self) -> None:
        today = datetime.date(2024, 3, 6)
        self.assertEqual(classify_day([], DAY, today), (None, "off"))
        self.assertEqual(classify_day([100.0, 90.0], DAY, today), (95.0, "complete"))
        self.assertEqual(classify_day([0.0], today, today), (0.0, "pending"))

    def test_thresholds_are_configurable(self) -> None:
        today = datetime.date(2024, 3, 6)
        self.assertEqual(classify(90, DAY, today, complete_pct=90, good_pct=70), "complete")
        self.assertEqual(classify(75, DAY, today, complete_pct=90, good_pct=70), "good")


class TeamDaySummaryTests(unittest.TestCase):
    def test_averages_scheduled_staff_and_ignores_open_shifts(self) -> None:
        shifts = [
            _shift("staff-1", _at(9), _at(17)),
            _shift("staff-2", _at(9), _at(17)),
            _shift(None, _at(9), _at(17), is_open=True),
        ]
        entries = [TimeEntryRecord("staff-1", _at(9), _at(17))]

        summary = team_day_summary(shifts, entries, DAY, NOW)

        self.assertEqual(summary["shift_count"], 2)
        self.assertEqual(summary["average"], 50.0)
        self.assertEqual(summary["status"], "partial")
        self.assertEqual([row["status"] for row in summary["shifts"]], ["complete", "missed"])

    def test_day_without_shifts_is_off(self) -> None:
        summary = team_day_summary([], [], DAY, NOW)
        self.assertEqual(summary["status"], "off")
        self.assertIsNone(summary["average"])


class StaffHistoryTests(unittest.TestCase):
    def test_one_point_per_day_oldest_first(self) -> None:
        yesterday = DAY + datetime.timedelta(days=1)
        shifts = [
            _shift("staff-1", _at(9), _at(17)),
            _shift("staff-1", _at(9, day=yesterday), _at(17, day=yesterday)),
            _shift("staff-2", _at(9, day=yesterday), _at(17, day=yesterday)),
        ]
        entries = [TimeEntryRecord("staff-1", _at(9), _at(17))]

        points = staff_history("staff-1", shifts, entries, days=3, today=datetime.date(2024, 3, 6), now=NOW)

        self.assertEqual([point["date"] for point in points], ["2024-03-04", "2024-03-05", "2024-03-06"])
        self.assertEqual([point["status"] for point in points], ["complete", "missed", "off"])
        self.assertEqual(points[0]["pct"], 100.0)
        self.assertIsNone(points[2]["pct"])


if __name__ == "__main__":
    unittest.main()
