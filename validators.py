"""
Pydantic Validation Models for the usage dashboard.
Validates the query parameters accepted by the web app, the CLI and the
fetch layer before any upstream call is made.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from error_handling import DataValidationError
from models import GroupBy

logger = logging.getLogger(__name__)


def _parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UsageQueryParams(BaseModel):
    """Validation model for a usage fetch window."""

    start_time: str = Field(description="Inclusive window start, ISO-8601 instant")
    end_time: str = Field(description="Exclusive window end, ISO-8601 instant")
    organization_id: Optional[str] = Field(
        default=None,
        description="Organization whose members are fetched for name enrichment",
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_iso_instant(cls, v: str) -> str:
        try:
            _parse_instant(v)
        except ValueError as exc:
            raise ValueError(f"'{v}' is not an ISO-8601 timestamp") from exc
        return v

    @field_validator("organization_id")
    @classmethod
    def blank_organization_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def validate_window(self) -> "UsageQueryParams":
        if _parse_instant(self.start_time) >= _parse_instant(self.end_time):
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        return self


class CustomDateRangeInput(BaseModel):
    """Validation model for a user-entered custom date range."""

    start_date: datetime = Field(description="Custom range start (date or datetime)")
    end_date: datetime = Field(description="Custom range end (date or datetime)")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def accept_plain_dates(cls, v):
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime(v.year, v.month, v.day)
        if isinstance(v, str) and len(v.strip()) == 10:
            return datetime.fromisoformat(v.strip())
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> "CustomDateRangeInput":
        start = self.start_date if self.start_date.tzinfo else self.start_date.replace(tzinfo=timezone.utc)
        end = self.end_date if self.end_date.tzinfo else self.end_date.replace(tzinfo=timezone.utc)
        if start > end:
            raise ValueError(
                f"start_date ({self.start_date}) must not be after end_date ({self.end_date})"
            )
        return self


def validate_usage_query(
    start_time: Optional[str],
    end_time: Optional[str],
    organization_id: Optional[str] = None
) -> UsageQueryParams:
    """
    Validate a fetch window, raising DataValidationError with a readable message.

    Args:
        start_time: Window start (ISO-8601)
        end_time: Window end (ISO-8601)
        organization_id: Optional organization scope

    Returns:
        Validated UsageQueryParams
    """
    if not start_time or not end_time:
        raise DataValidationError(
            "startTime and endTime are required",
            details={"start_time": start_time, "end_time": end_time},
        )
    try:
        return UsageQueryParams(
            start_time=start_time,
            end_time=end_time,
            organization_id=organization_id,
        )
    except ValidationError as exc:
        message = "; ".join(err["msg"] for err in exc.errors())
        logger.warning("[VALIDATION] Rejected usage query: %s", message)
        raise DataValidationError(
            f"Invalid usage query: {message}",
            details={"start_time": start_time, "end_time": end_time},
        ) from exc


def parse_group_by(value) -> GroupBy:
    """Convert a grouping mode; a missing value means user grouping."""
    if value is None or value == "":
        return GroupBy.USER
    try:
        return GroupBy(value)
    except ValueError as exc:
        raise DataValidationError(
            f"Invalid groupBy '{value}': expected one of {', '.join(m.value for m in GroupBy)}",
            details={"group_by": value},
        ) from exc
