"""
Integration tests for the report CLI, run against generated mock data.
"""

import unittest
import io
import os
import sys
import tempfile
from contextlib import redirect_stdout, redirect_stderr
from datetime import datetime, timezone
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pandas as pd

import generate_report
from aggregation import aggregate_by_user
from mock_data import generate_mock_payload


class TestMockData(unittest.TestCase):

    def test_deterministic_for_seed(self):
        end = datetime(2024, 1, 8, tzinfo=timezone.utc)
        first = generate_mock_payload(count=50, end_time=end, seed=7)
        second = generate_mock_payload(count=50, end_time=end, seed=7)
        self.assertEqual(first, second)

    def test_contains_unknown_members_and_running_sessions(self):
        payload = generate_mock_payload(count=300, end_time=datetime(2024, 1, 8, tzinfo=timezone.utc))
        known = {m.user_id for m in payload.members}
        views = aggregate_by_user(payload.usage_records, payload.members)

        self.assertTrue(any(v.user_id not in known and v.user_name == v.user_id for v in views))
        self.assertTrue(any(r.stopped_at is None for r in payload.usage_records))


@patch('generate_report.usage_client.setup_logging')
class TestGenerateReportCLI(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_mock_report_with_csv_export(self, _setup_logging):
        csv_path = os.path.join(self.tmpdir.name, 'sessions.csv')
        out = io.StringIO()
        with redirect_stdout(out):
            code = generate_report.main(['--mock', '--range', '30d', '--csv', csv_path])

        self.assertEqual(code, 0)
        self.assertIn('Environment usage by user', out.getvalue())
        self.assertGreater(len(pd.read_csv(csv_path)), 0)

    def test_environment_grouping(self, _setup_logging):
        out = io.StringIO()
        with redirect_stdout(out):
            code = generate_report.main(['--mock', '--group-by', 'environment'])

        self.assertEqual(code, 0)
        self.assertIn('Environment usage by environment', out.getvalue())

    def test_invalid_custom_range_exits_with_error(self, _setup_logging):
        err = io.StringIO()
        with redirect_stdout(io.StringIO()), redirect_stderr(err):
            code = generate_report.main(['--mock', '--start', '2024-02-01', '--end', '2024-01-01'])

        self.assertEqual(code, 1)
        self.assertIn('Invalid custom date range', err.getvalue())

    def test_missing_token_exits_with_error(self, _setup_logging):
        err = io.StringIO()
        with patch.dict(os.environ, {}, clear=True), redirect_stdout(io.StringIO()), redirect_stderr(err):
            code = generate_report.main(['--range', '7d'])

        self.assertEqual(code, 1)
        self.assertIn('ONA_PAT', err.getvalue())


if __name__ == '__main__':
    unittest.main()
