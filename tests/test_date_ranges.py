"""
Unit tests for date range preset resolution.
"""

import unittest
import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from date_ranges import DateRangePreset, resolve_date_range, to_iso_utc
from error_handling import DataValidationError, DateRangeError

NOW = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)
NOW_ISO = "2024-03-15T10:30:00.000Z"


class TestPresets(unittest.TestCase):

    def test_today(self):
        self.assertEqual(
            resolve_date_range("today", NOW),
            ("2024-03-15T00:00:00.000Z", NOW_ISO),
        )

    def test_yesterday(self):
        self.assertEqual(
            resolve_date_range(DateRangePreset.YESTERDAY, NOW),
            ("2024-03-14T00:00:00.000Z", NOW_ISO),
        )

    def test_last_7_days(self):
        self.assertEqual(resolve_date_range("7d", NOW), ("2024-03-08T10:30:00.000Z", NOW_ISO))

    def test_last_30_days(self):
        self.assertEqual(resolve_date_range("30d", NOW), ("2024-02-14T10:30:00.000Z", NOW_ISO))

    def test_last_6_months(self):
        self.assertEqual(resolve_date_range("6m", NOW), ("2023-09-15T10:30:00.000Z", NOW_ISO))

    def test_last_12_months(self):
        self.assertEqual(resolve_date_range("12m", NOW), ("2023-03-15T10:30:00.000Z", NOW_ISO))

    def test_month_offset_clips_to_month_end(self):
        now = datetime(2024, 8, 31, 0, 0, 0, tzinfo=timezone.utc)
        start, _ = resolve_date_range("6m", now)
        self.assertEqual(start, "2024-02-29T00:00:00.000Z")

    def test_today_uses_local_midnight_of_now(self):
        plus_two = timezone(timedelta(hours=2))
        now = datetime(2024, 3, 15, 1, 0, 0, tzinfo=plus_two)
        start, end = resolve_date_range("today", now)
        self.assertEqual(start, "2024-03-14T22:00:00.000Z")
        self.assertEqual(end, "2024-03-14T23:00:00.000Z")

    def test_unknown_preset(self):
        with self.assertRaises(DateRangeError):
            resolve_date_range("fortnight", NOW)


class TestCustomRange(unittest.TestCase):

    def test_bare_dates_cover_whole_end_day(self):
        self.assertEqual(
            resolve_date_range("custom", NOW, "2024-01-01", "2024-01-31"),
            ("2024-01-01T00:00:00.000Z", "2024-02-01T00:00:00.000Z"),
        )

    def test_single_day(self):
        self.assertEqual(
            resolve_date_range("custom", NOW, "2024-01-05", "2024-01-05"),
            ("2024-01-05T00:00:00.000Z", "2024-01-06T00:00:00.000Z"),
        )

    def test_datetime_end_kept_as_is(self):
        _, end = resolve_date_range("custom", NOW, "2024-01-01", "2024-01-02T12:00:00")
        self.assertEqual(end, "2024-01-02T12:00:00.000Z")

    def test_missing_dates(self):
        with self.assertRaises(DateRangeError) as ctx:
            resolve_date_range("custom", NOW, "2024-01-01", None)
        self.assertIn("requires both start and end dates", str(ctx.exception))

    def test_start_after_end(self):
        with self.assertRaises(DateRangeError):
            resolve_date_range("custom", NOW, "2024-02-01", "2024-01-01")

    def test_unparseable_date(self):
        with self.assertRaises(DataValidationError):
            resolve_date_range("custom", NOW, "first of may", "2024-05-02")


class TestIsoFormatting(unittest.TestCase):

    def test_converts_to_utc_with_milliseconds(self):
        value = datetime(2024, 1, 1, 2, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(to_iso_utc(value), "2024-01-01T00:00:00.123Z")


if __name__ == '__main__':
    unittest.main()
