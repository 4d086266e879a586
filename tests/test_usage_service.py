"""
Unit tests for the usage report service.
The upstream fetch is replaced by a recording fake and the clock is driven
by the tests.
"""

import unittest
import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import DashboardConfig
from error_handling import DataValidationError, DateRangeError
from models import GroupBy, UsagePayload
from usage_service import UsageReportService, floor_to_step

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)
A = "2024-01-01T00:00:00.000Z"
B = "2024-01-08T00:00:00.000Z"

PAYLOAD = UsagePayload.model_validate({
    "usageRecords": [
        {"userId": "u1", "environmentId": "e1",
         "startedAt": "2024-01-08T00:00:00Z", "stoppedAt": "2024-01-08T02:00:00Z"},
        {"userId": "u2", "environmentId": "e1",
         "startedAt": "2024-01-08T00:00:00Z", "stoppedAt": "2024-01-08T03:00:00Z"},
        {"userId": "u1", "environmentId": "e2",
         "startedAt": "2024-01-09T00:00:00Z", "stoppedAt": "2024-01-09T00:30:00Z"},
    ],
    "members": [{"userId": "u1", "fullName": "Alice", "email": "a@x.com"}],
})


class RecordingFetcher:

    def __init__(self, payload=PAYLOAD):
        self.payload = payload
        self.calls = []

    def __call__(self, start_time, end_time, organization_id=None, config=None):
        self.calls.append((start_time, end_time, organization_id))
        return self.payload


class FakeClock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestGetUsageData(unittest.TestCase):

    def setUp(self):
        self.fetcher = RecordingFetcher()
        self.clock = FakeClock(NOW)
        self.service = UsageReportService(
            DashboardConfig(api_token="t", cache_ttl_seconds=300),
            fetcher=self.fetcher,
            clock=self.clock,
        )

    def test_second_call_served_from_cache(self):
        self.service.get_usage_data(A, B, "org")
        self.clock.now = NOW + timedelta(minutes=4)
        result = self.service.get_usage_data(A, B, "org")

        self.assertIs(result, PAYLOAD)
        self.assertEqual(len(self.fetcher.calls), 1)

    def test_refetch_after_ttl(self):
        self.service.get_usage_data(A, B, "org")
        self.clock.now = NOW + timedelta(minutes=5)
        self.service.get_usage_data(A, B, "org")

        self.assertEqual(len(self.fetcher.calls), 2)

    def test_relative_range_reuses_cache_while_clock_advances(self):
        for _ in range(5):
            self.service.build_report("7d", GroupBy.USER)
            self.clock.now += timedelta(seconds=30)

        self.assertEqual(len(self.fetcher.calls), 1)
        self.assertEqual(len(self.service.cache), 1)

    def test_stale_windows_are_evicted(self):
        for _ in range(6):
            self.service.build_report("7d", GroupBy.USER)
            self.clock.now += timedelta(minutes=5)

        self.assertEqual(len(self.fetcher.calls), 6)
        self.assertEqual(len(self.service.cache), 1)

    def test_different_scope_fetches_again(self):
        self.service.get_usage_data(A, B, "org_1")
        self.service.get_usage_data(A, B, "org_2")

        self.assertEqual([c[2] for c in self.fetcher.calls], ["org_1", "org_2"])


class TestBuildReport(unittest.TestCase):

    def setUp(self):
        self.fetcher = RecordingFetcher()
        self.service = UsageReportService(
            DashboardConfig(api_token="t", organization_id="org_default"),
            fetcher=self.fetcher,
            clock=FakeClock(NOW),
        )

    def test_user_report(self):
        report = self.service.build_report("7d", GroupBy.USER)

        self.assertEqual(report['startTime'], "2024-01-03T12:00:00.000Z")
        self.assertEqual(report['endTime'], "2024-01-10T12:00:00.000Z")
        self.assertEqual(report['recordCount'], 3)
        self.assertEqual([v.user_id for v in report['views']], ["u2", "u1"])
        self.assertAlmostEqual(report['views'][1].total_hours, 2.5)
        self.assertEqual(self.fetcher.calls[0][2], "org_default")

    def test_environment_report(self):
        report = self.service.build_report("custom", "environment", "2024-01-08", "2024-01-09")

        self.assertEqual(report['groupBy'], GroupBy.ENVIRONMENT)
        self.assertEqual(
            [(v.environment_id, v.user_id) for v in report['views']],
            [("e1", "u2"), ("e1", "u1"), ("e2", "u1")],
        )
        self.assertEqual(
            self.fetcher.calls[0][:2],
            ("2024-01-08T00:00:00.000Z", "2024-01-10T00:00:00.000Z"),
        )

    def test_default_range_from_config(self):
        report = self.service.build_report()
        self.assertEqual(report['dateRange'], "7d")

    def test_invalid_group_by(self):
        with self.assertRaises(DataValidationError):
            self.service.build_report("7d", "project")
        self.assertEqual(self.fetcher.calls, [])

    def test_invalid_custom_range_does_not_fetch(self):
        with self.assertRaises(DateRangeError):
            self.service.build_report("custom", GroupBy.USER, "2024-01-09", None)
        self.assertEqual(self.fetcher.calls, [])


class TestFloorToStep(unittest.TestCase):

    def test_rounds_down_to_step(self):
        now = datetime(2024, 1, 10, 12, 4, 59, 123456, tzinfo=timezone.utc)
        self.assertEqual(floor_to_step(now, 300), datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc))

    def test_boundary_unchanged(self):
        self.assertEqual(floor_to_step(NOW, 300), NOW)

    def test_zero_step_disables_rounding(self):
        now = NOW + timedelta(seconds=7, microseconds=5)
        self.assertEqual(floor_to_step(now, 0), now)


if __name__ == '__main__':
    unittest.main()
