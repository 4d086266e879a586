"""
Usage Report Generator.
Command-line entry point: fetches environment usage for a date range,
aggregates it by user or by environment and prints or exports the result.
"""

import argparse
import logging
import sys

import usage_client
from config import DashboardConfig
from date_ranges import DateRangePreset
from error_handling import APIError, ConfigurationError, PipelinePhaseError
from export_report import export_views_to_csv, export_views_to_excel
from html_dashboard import format_hours, generate_html_dashboard
from mock_data import mock_fetcher
from models import GroupBy
from usage_service import UsageReportService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Generate an environment usage report')
    parser.add_argument(
        '--range',
        dest='date_range',
        choices=[preset.value for preset in DateRangePreset],
        default=None,
        help='Date range preset (default: 7d)'
    )
    parser.add_argument(
        '--start',
        type=str,
        default=None,
        help='Start date for the custom range (YYYY-MM-DD)'
    )
    parser.add_argument(
        '--end',
        type=str,
        default=None,
        help='End date for the custom range (YYYY-MM-DD, inclusive)'
    )
    parser.add_argument(
        '--group-by',
        choices=[mode.value for mode in GroupBy],
        default=GroupBy.USER.value,
        help='Group usage by user or by environment'
    )
    parser.add_argument('--org', default=None, help='Organization id used for member names')
    parser.add_argument('--csv', default=None, help='Write sessions to this CSV file')
    parser.add_argument('--excel', default=None, help='Write the report to this Excel file')
    parser.add_argument('--html', default=None, help='Write the dashboard to this HTML file')
    parser.add_argument('--mock', action='store_true', help='Use generated data instead of the API')
    return parser


def print_report(report: dict) -> None:
    """Print the aggregated views as a plain-text table."""
    group_by = report['groupBy']
    views = report['views']

    print("=" * 72)
    print(f"Environment usage by {group_by.value}: {report['startTime']} -> {report['endTime']}")
    print("=" * 72)

    if not views:
        print("No usage data found for the selected date range.")
        return

    for view in views:
        if group_by is GroupBy.USER:
            print(f"{view.user_name:<40} {format_hours(view.total_hours):>10} h")
            for env in view.environments:
                print(f"    {env.environment_id:<36} {format_hours(env.total_hours):>10} h  ({len(env.sessions)} sessions)")
        else:
            label = f"{view.environment_id} / {view.user_name}"
            print(f"{label:<40} {format_hours(view.total_hours):>10} h  ({len(view.sessions)} sessions)")

    total = sum(view.total_hours for view in views)
    print("-" * 72)
    print(f"{'Total':<40} {format_hours(total):>10} h")


def main(argv=None) -> int:
    """Main execution function for report generation."""
    args = build_parser().parse_args(argv)
    if args.date_range is None:
        args.date_range = DateRangePreset.CUSTOM.value if (args.start or args.end) else DateRangePreset.LAST_7_DAYS.value

    usage_client.setup_logging()

    logger.info("=" * 60)
    logger.info("Environment Usage Report Generator")
    logger.info("=" * 60)

    config = DashboardConfig.from_env()
    if args.org:
        config.organization_id = args.org

    service = UsageReportService(config, fetcher=mock_fetcher) if args.mock else UsageReportService(config)
    group_by = GroupBy(args.group_by)

    try:
        report = service.build_report(
            args.date_range,
            group_by,
            custom_start=args.start,
            custom_end=args.end,
        )
        print_report(report)

        if args.csv:
            rows = export_views_to_csv(report['views'], group_by, args.csv)
            print(f"\n+ Sessions exported to {args.csv} ({rows} rows)")
        if args.excel:
            export_views_to_excel(report['views'], group_by, args.excel, report['startTime'], report['endTime'])
            print(f"\n+ Excel report saved to {args.excel}")
        if args.html:
            generate_html_dashboard(report['views'], group_by, report['startTime'], report['endTime'], args.html)
            print(f"\n+ HTML dashboard generated: {args.html}")

    except (PipelinePhaseError, ConfigurationError, APIError) as e:
        logger.error(f"Report generation failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info("Report generation completed successfully")
    return 0


if __name__ == '__main__':
    sys.exit(main())
