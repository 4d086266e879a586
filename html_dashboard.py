"""
HTML Dashboard Generator for Environment Usage
Renders the aggregated usage views as grouped tables with expandable rows.
"""

import html
import logging
from urllib.parse import urlencode
from typing import List, Optional

from aggregation import parse_timestamp
from date_ranges import PRESET_LABELS, DateRangePreset
from error_handling import handle_pipeline_phase, ExportError, DataValidationError
from models import GroupBy

logger = logging.getLogger(__name__)


def format_hours(hours: float) -> str:
    return f"{hours:.2f}"


def format_date(value: str) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.strftime('%Y-%m-%d %H:%M:%S %Z').strip()


def _esc(value) -> str:
    return html.escape(str(value if value is not None else ''))


def _session_rows(sessions) -> str:
    rows = []
    for session in sessions:
        rows.append(
            f"""<tr class="session">
                <td>Start: {_esc(format_date(session.start_time))}</td>
                <td>End: {_esc(format_date(session.end_time))}</td>
                <td class="hours">{format_hours(session.duration_hours)}</td>
            </tr>"""
        )
    return "\n".join(rows)


def _environment_block(environment, show_user: bool) -> str:
    title = _esc(environment.environment_id)
    if show_user:
        title += f' <span class="muted">{_esc(environment.user_name)}'
        if environment.email:
            title += f' &lt;{_esc(environment.email)}&gt;'
        title += '</span>'
    return f"""<details class="group">
            <summary>
                <span class="name">{title}</span>
                <span class="meta">{len(environment.sessions)} sessions</span>
                <span class="hours">{format_hours(environment.total_hours)} h</span>
            </summary>
            <table class="sessions">{_session_rows(environment.sessions)}</table>
        </details>"""


def _user_block(user) -> str:
    environments = "\n".join(_environment_block(env, show_user=False) for env in user.environments)
    email = f' <span class="muted">{_esc(user.email)}</span>' if user.email else ''
    return f"""<details class="group">
            <summary>
                <span class="name">{_esc(user.user_name)}{email}</span>
                <span class="meta">{len(user.environments)} environments</span>
                <span class="hours">{format_hours(user.total_hours)} h</span>
            </summary>
            <div class="nested">{environments}</div>
        </details>"""


def _query(**params) -> str:
    return _esc("?" + urlencode({k: v for k, v in params.items() if v}))


def _controls(
    date_range: Optional[str],
    group_by: GroupBy,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None
) -> str:
    if date_range != DateRangePreset.CUSTOM.value:
        custom_start = custom_end = None
    range_links = []
    for preset in DateRangePreset:
        if preset is DateRangePreset.CUSTOM:
            continue
        active = ' class="active"' if preset.value == date_range else ''
        range_links.append(
            f'<a{active} href="?range={preset.value}&amp;groupBy={group_by.value}">{PRESET_LABELS[preset]}</a>'
        )
    group_links = []
    for mode in GroupBy:
        active = ' class="active"' if mode is group_by else ''
        group_links.append(
            f'<a{active} href="{_query(range=date_range, groupBy=mode.value, startDate=custom_start, endDate=custom_end)}">'
            f'By {mode.value.title()}</a>'
        )
    return f"""<div class="controls">
            <div class="buttons">{''.join(range_links)}</div>
            <form class="custom" method="get">
                <input type="hidden" name="range" value="custom">
                <input type="hidden" name="groupBy" value="{group_by.value}">
                <label>Start Date <input type="date" name="startDate" value="{_esc(custom_start or '')}"></label>
                <label>End Date <input type="date" name="endDate" value="{_esc(custom_end or '')}"></label>
                <button type="submit">Apply</button>
            </form>
            <div class="buttons">{''.join(group_links)}</div>
        </div>"""


def render_dashboard(
    views: List,
    group_by: GroupBy = GroupBy.USER,
    start_time: str = '',
    end_time: str = '',
    date_range: Optional[str] = None,
    error: Optional[str] = None,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None
) -> str:
    """
    Render the usage dashboard page.

    Args:
        views: UserUsageView list (group_by=user) or EnvironmentUsageView list
        group_by: Grouping mode the views were built with
        start_time: Window start shown in the header
        end_time: Window end shown in the header
        date_range: Active preset, highlighted in the controls
        error: Message shown instead of the table
        custom_start: Active custom start date, kept when switching grouping
        custom_end: Active custom end date, kept when switching grouping

    Returns:
        Complete HTML document
    """
    group_by = GroupBy(group_by)
    if error:
        body = f'<div class="error">{_esc(error)}</div>'
    elif not views:
        body = '<div class="empty"><p>No usage data found for the selected date range.</p></div>'
    elif group_by is GroupBy.USER:
        body = "\n".join(_user_block(view) for view in views)
    else:
        body = "\n".join(_environment_block(view, show_user=True) for view in views)

    total_hours = sum(view.total_hours for view in views) if views and not error else 0.0

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Environment Usage Dashboard</title>
    <style>
        body {{
            font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
            background: #f5f6fa;
            padding: 20px;
            color: #333;
        }}
        .container {{
            max-width: 1100px;
            margin: 0 auto;
        }}
        .controls a, .controls button {{
            display: inline-block;
            padding: 6px 14px;
            margin: 0 6px 6px 0;
            border: 1px solid #ccc;
            border-radius: 4px;
            background: white;
            color: black;
            text-decoration: none;
        }}
        .controls a.active {{
            border: 2px solid #1F53FF;
            background: #1F53FF;
            color: white;
            font-weight: 600;
        }}
        .summary {{
            margin: 20px 0;
            font-size: 1.1em;
        }}
        details.group {{
            background: white;
            border-radius: 6px;
            margin-bottom: 8px;
            box-shadow: 0 1px 3px rgba(0,0,0,0.1);
        }}
        summary {{
            display: flex;
            gap: 20px;
            padding: 12px 16px;
            cursor: pointer;
        }}
        summary .name {{
            flex: 1;
            font-weight: 600;
        }}
        .muted, .meta {{
            color: #888;
            font-weight: 400;
        }}
        .hours {{
            text-align: right;
            min-width: 90px;
        }}
        .nested {{
            padding: 0 16px 12px 32px;
        }}
        table.sessions {{
            width: 100%;
            padding: 0 16px 12px 32px;
            font-size: 0.9em;
        }}
        .error {{
            color: #b00020;
            background: #fdecea;
            padding: 12px 16px;
            border-radius: 6px;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Environment Usage</h1>
        {_controls(date_range, group_by, custom_start, custom_end)}
        <div class="summary">
            {_esc(format_date(start_time))} &rarr; {_esc(format_date(end_time))}
            &middot; {len(views) if not error else 0} rows &middot; {format_hours(total_hours)} hours
        </div>
        {body}
    </div>
</body>
</html>"""


@handle_pipeline_phase(phase_name="EXPORT_HTML", error_cls=ExportError)
def generate_html_dashboard(
    views: List,
    group_by: GroupBy = GroupBy.USER,
    start_time: str = '',
    end_time: str = '',
    output_file: str = 'usage_dashboard.html'
) -> str:
    """
    Write the usage dashboard to a standalone HTML file.

    Raises:
        DataValidationError: If views is not a list
        ExportError: If writing the file fails

    Returns:
        Path of the written file
    """
    if not isinstance(views, list):
        raise DataValidationError(
            "views must be a list",
            details={"received_type": type(views).__name__},
        )

    html_content = render_dashboard(views, group_by, start_time, end_time)
    with open(output_file, 'w', encoding='utf-8') as f:
        f.write(html_content)
    logger.info("[EXPORT_HTML] Successfully generated %s", output_file)
    return output_file
