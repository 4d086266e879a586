"""
Export module for aggregated usage reports.
Writes the per-user or per-environment views to CSV (pandas) and to a
formatted Excel workbook (openpyxl).
"""

import logging
from typing import List

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill

from error_handling import handle_pipeline_phase, ExportError, DataValidationError
from models import GroupBy

logger = logging.getLogger(__name__)

SESSION_COLUMNS = [
    'user_id', 'user_name', 'email', 'environment_id',
    'start_time', 'end_time', 'duration_hours',
]


def _environment_groups(views: List, group_by: GroupBy):
    """Yield every (environment, user) group in display order."""
    if group_by is GroupBy.USER:
        for user in views:
            yield from user.environments
    else:
        yield from views


def views_to_dataframe(views: List, group_by: GroupBy = GroupBy.USER) -> pd.DataFrame:
    """
    Flatten report views into one row per session.

    Args:
        views: UserUsageView or EnvironmentUsageView list
        group_by: Grouping mode the views were built with

    Returns:
        DataFrame with SESSION_COLUMNS, in report order
    """
    rows = []
    for group in _environment_groups(views, GroupBy(group_by)):
        for session in group.sessions:
            rows.append({
                'user_id': group.user_id,
                'user_name': group.user_name,
                'email': group.email,
                'environment_id': group.environment_id,
                'start_time': session.start_time,
                'end_time': session.end_time,
                'duration_hours': session.duration_hours,
            })
    return pd.DataFrame(rows, columns=SESSION_COLUMNS)


def summary_rows(views: List, group_by: GroupBy = GroupBy.USER) -> List[dict]:
    """One row per top-level view with its session count and total hours."""
    group_by = GroupBy(group_by)
    rows = []
    for view in views:
        if group_by is GroupBy.USER:
            rows.append({
                'User': view.user_name,
                'Email': view.email,
                'Environments': len(view.environments),
                'Sessions': sum(len(env.sessions) for env in view.environments),
                'Total Hours': view.total_hours,
            })
        else:
            rows.append({
                'Environment': view.environment_id,
                'User': view.user_name,
                'Email': view.email,
                'Sessions': len(view.sessions),
                'Total Hours': view.total_hours,
            })
    return rows


@handle_pipeline_phase(phase_name="EXPORT_CSV", error_cls=ExportError)
def export_views_to_csv(
    views: List,
    group_by: GroupBy = GroupBy.USER,
    output_filename: str = 'usage_sessions.csv'
) -> int:
    """
    Export report sessions to CSV.

    Raises:
        DataValidationError: If views is not a list
        ExportError: If CSV export fails

    Returns:
        Number of session rows written
    """
    if not isinstance(views, list):
        raise DataValidationError(
            "views must be a list",
            details={"received_type": type(views).__name__},
        )
    if not views:
        logger.warning("[EXPORT_CSV] No usage rows to export; writing header only")

    df = views_to_dataframe(views, group_by)
    df.to_csv(output_filename, index=False)

    logger.info(
        "[EXPORT_CSV] Successfully exported %d sessions to %s",
        len(df),
        output_filename,
    )
    return len(df)


@handle_pipeline_phase(phase_name="EXPORT_EXCEL", error_cls=ExportError)
def export_views_to_excel(
    views: List,
    group_by: GroupBy = GroupBy.USER,
    output_filename: str = 'usage_report.xlsx',
    start_time: str = '',
    end_time: str = ''
) -> str:
    """
    Export the report to an Excel workbook with a summary and a sessions sheet.

    Returns:
        Path of the written workbook
    """
    group_by = GroupBy(group_by)
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"

    header_font = Font(bold=True, size=12, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    title_font = Font(bold=True, size=13)

    ws['A1'] = f"Environment usage by {group_by.value}"
    ws['A1'].font = title_font
    ws['A2'] = f"{start_time} to {end_time}"

    summary = summary_rows(views, group_by)
    headers = list(summary[0].keys()) if summary else ['Total Hours']
    header_row = 4
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=header_row, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        ws.column_dimensions[cell.column_letter].width = 30 if col_idx <= 3 else 16

    for row_idx, row in enumerate(summary, start=header_row + 1):
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=row_idx, column=col_idx, value=row[header])
            if header == 'Total Hours':
                cell.value = round(row[header], 2)
                cell.number_format = '0.00'

    sessions_ws = wb.create_sheet("Sessions")
    df = views_to_dataframe(views, group_by)
    for col_idx, column in enumerate(SESSION_COLUMNS, start=1):
        cell = sessions_ws.cell(row=1, column=col_idx, value=column)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        sessions_ws.column_dimensions[cell.column_letter].width = 26
    for row_idx, record in enumerate(df.itertuples(index=False), start=2):
        for col_idx, value in enumerate(record, start=1):
            sessions_ws.cell(row=row_idx, column=col_idx, value=value)

    wb.save(output_filename)
    logger.info("[EXPORT_EXCEL] Report saved to %s (%d summary rows)", output_filename, len(summary))
    return output_filename
