"""
Date range presets for the usage dashboard.
Converts a preset such as "7d" or "6m" into the [startTime, endTime)
instant window sent to the usage API.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from error_handling import DateRangeError
from validators import CustomDateRangeInput

logger = logging.getLogger(__name__)


class DateRangePreset(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_6_MONTHS = "6m"
    LAST_12_MONTHS = "12m"
    CUSTOM = "custom"


PRESET_LABELS = {
    DateRangePreset.TODAY: "Today",
    DateRangePreset.YESTERDAY: "Yesterday",
    DateRangePreset.LAST_7_DAYS: "7 Days",
    DateRangePreset.LAST_30_DAYS: "30 Days",
    DateRangePreset.LAST_6_MONTHS: "6 Months",
    DateRangePreset.LAST_12_MONTHS: "12 Months",
    DateRangePreset.CUSTOM: "Custom",
}


def to_iso_utc(value: datetime) -> str:
    """Format an instant as UTC ISO-8601 with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc.microsecond // 1000:03d}Z"


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _months_before(value: datetime, months: int) -> datetime:
    return (pd.Timestamp(value) - pd.DateOffset(months=months)).to_pydatetime()


def _resolve_custom(custom_start, custom_end) -> Tuple[datetime, datetime]:
    if not custom_start or not custom_end:
        raise DateRangeError(
            "Custom date range requires both start and end dates",
            details={"start_date": custom_start, "end_date": custom_end},
        )
    try:
        validated = CustomDateRangeInput(start_date=custom_start, end_date=custom_end)
    except ValidationError as exc:
        message = "; ".join(err["msg"] for err in exc.errors())
        raise DateRangeError(
            f"Invalid custom date range: {message}",
            details={"start_date": custom_start, "end_date": custom_end},
        ) from exc

    start = validated.start_date
    end = validated.end_date
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    # a bare end date covers that whole day
    if end == _midnight(end):
        end = end + timedelta(days=1)
    return start, end


def resolve_date_range(
    preset,
    now: datetime,
    custom_start: Optional[str] = None,
    custom_end: Optional[str] = None
) -> Tuple[str, str]:
    """
    Resolve a date range preset into (start_time, end_time) ISO strings.

    Args:
        preset: DateRangePreset or its string value
        now: Current instant. Naive values are read as local time.
        custom_start: Start date for the custom preset
        custom_end: End date for the custom preset (inclusive when a bare date)

    Returns:
        Tuple of UTC ISO-8601 strings

    Raises:
        DateRangeError: For an unknown preset or an invalid custom range
    """
    try:
        preset = DateRangePreset(preset)
    except ValueError as exc:
        raise DateRangeError(
            f"Unknown date range '{preset}'",
            details={"allowed": [p.value for p in DateRangePreset]},
        ) from exc

    if preset is DateRangePreset.CUSTOM:
        start, end = _resolve_custom(custom_start, custom_end)
    elif preset is DateRangePreset.TODAY:
        start, end = _midnight(now), now
    elif preset is DateRangePreset.YESTERDAY:
        start, end = _midnight(now) - timedelta(days=1), now
    elif preset is DateRangePreset.LAST_7_DAYS:
        start, end = now - timedelta(days=7), now
    elif preset is DateRangePreset.LAST_30_DAYS:
        start, end = now - timedelta(days=30), now
    elif preset is DateRangePreset.LAST_6_MONTHS:
        start, end = _months_before(now, 6), now
    else:
        start, end = _months_before(now, 12), now

    start_time, end_time = to_iso_utc(start), to_iso_utc(end)
    logger.debug("[DATE_RANGE] %s resolved to %s -> %s", preset.value, start_time, end_time)
    return start_time, end_time
