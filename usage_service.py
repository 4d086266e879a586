"""
Usage Report Service.
Ties the date range presets, the response cache, the usage API client and
the aggregation engine together for the web app and the CLI.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from aggregation import aggregate
from cache import UsageCache
from config import DashboardConfig
from date_ranges import resolve_date_range
from models import GroupBy, UsagePayload
from usage_client import fetch_usage_data
from validators import parse_group_by, validate_usage_query

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def floor_to_step(now: datetime, step_seconds: int) -> datetime:
    """Round ``now`` down to a multiple of ``step_seconds`` since the epoch."""
    if step_seconds <= 0:
        return now
    offset = int(now.timestamp()) % step_seconds
    return now.replace(microsecond=0) - timedelta(seconds=offset)


class UsageReportService:
    """
    Fetches usage payloads through a cache and turns them into report views.
    """

    def __init__(
        self,
        config: DashboardConfig = None,
        fetcher: Callable[..., UsagePayload] = fetch_usage_data,
        cache: UsageCache = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the report service.

        Args:
            config: DashboardConfig. If None, read from the environment.
            fetcher: Callable(start_time, end_time, organization_id, config) -> UsagePayload
            cache: UsageCache to use. If None, one is created with the configured TTL.
            clock: Returns the current instant; used for cache timestamps
        """
        self.config = config or DashboardConfig.from_env()
        self.fetcher = fetcher
        if cache is None:
            cache = UsageCache(ttl=timedelta(seconds=self.config.cache_ttl_seconds))
        self.cache = cache
        self.clock = clock

    def get_usage_data(self, start_time: str, end_time: str, organization_id: Optional[str] = None) -> UsagePayload:
        """
        Return the payload for a window, from cache while fresh, otherwise from the API.

        Raises:
            DataValidationError: If the window is missing or invalid
        """
        query = validate_usage_query(start_time, end_time, organization_id)
        start_time, end_time, organization_id = query.start_time, query.end_time, query.organization_id
        key = self.cache.make_key(start_time, end_time, organization_id)
        now = self.clock()

        cached = self.cache.get(key, now)
        if cached is not None:
            logger.info("[REPORT] Using cached usage data for %s -> %s", start_time, end_time)
            return cached

        payload = self.fetcher(start_time, end_time, organization_id, self.config)
        self.cache.put(key, payload, now)
        return payload

    def build_report(
        self,
        date_range: str = None,
        group_by: GroupBy = GroupBy.USER,
        custom_start: Optional[str] = None,
        custom_end: Optional[str] = None,
        organization_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Resolve the window, fetch (or reuse) the data and aggregate it.

        Returns:
            Dictionary with 'startTime', 'endTime', 'groupBy', 'views'
            (pydantic view models) and 'recordCount'
        """
        date_range = date_range or self.config.default_date_range
        group_by = parse_group_by(group_by)
        organization_id = organization_id or self.config.organization_id

        # Relative windows end on a cache step boundary
        now = floor_to_step(now or self.clock(), self.config.cache_ttl_seconds)
        start_time, end_time = resolve_date_range(
            date_range,
            now,
            custom_start=custom_start,
            custom_end=custom_end,
        )
        payload = self.get_usage_data(start_time, end_time, organization_id)
        views = aggregate(payload, group_by)

        logger.info(
            "[REPORT] %s report for %s: %d records -> %d rows",
            group_by.value,
            date_range,
            len(payload.usage_records),
            len(views),
        )
        return {
            'startTime': start_time,
            'endTime': end_time,
            'dateRange': str(getattr(date_range, 'value', date_range)),
            'groupBy': group_by,
            'views': views,
            'recordCount': len(payload.usage_records),
        }
