from fastapi import Depends, FastAPI, Query
from fastapi.responses import HTMLResponse, JSONResponse
from typing import Optional
import logging

from config import DashboardConfig
from error_handling import APIError, ConfigurationError, DataValidationError
from html_dashboard import render_dashboard
from models import GroupBy
from usage_service import UsageReportService

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Environment Usage Dashboard",
    description="Environment runtime usage aggregated by user or by environment",
    version="1.0.0"
)

_service: Optional[UsageReportService] = None


def get_service() -> UsageReportService:
    global _service
    if _service is None:
        _service = UsageReportService(DashboardConfig.from_env())
    return _service


def _error_response(exc: Exception) -> JSONResponse:
    status_code = 400 if isinstance(exc, DataValidationError) else 500
    return JSONResponse(status_code=status_code, content={"error": str(exc) or "Failed to fetch usage data"})


@app.get("/api/usage")
def get_usage(
    start_time: Optional[str] = Query(None, alias="startTime", description="Window start, ISO-8601"),
    end_time: Optional[str] = Query(None, alias="endTime", description="Window end, ISO-8601"),
    organization_id: Optional[str] = Query(None, alias="organizationId", description="Organization scope"),
    service: UsageReportService = Depends(get_service)
):
    try:
        payload = service.get_usage_data(start_time, end_time, organization_id)
    except (DataValidationError, ConfigurationError, APIError) as e:
        logger.error(f"Error fetching usage data: {e}")
        return _error_response(e)
    return payload.model_dump(by_alias=True)


@app.get("/api/usage/summary")
def get_usage_summary(
    date_range: Optional[str] = Query(None, alias="range", description="today, yesterday, 7d, 30d, 6m, 12m or custom"),
    group_by: Optional[str] = Query(None, alias="groupBy", description="user or environment"),
    start_date: Optional[str] = Query(None, alias="startDate", description="Custom range start date"),
    end_date: Optional[str] = Query(None, alias="endDate", description="Custom range end date"),
    service: UsageReportService = Depends(get_service)
):
    try:
        report = service.build_report(date_range, group_by, custom_start=start_date, custom_end=end_date)
    except (DataValidationError, ConfigurationError, APIError) as e:
        logger.error(f"Error building usage summary: {e}")
        return _error_response(e)
    return {
        "startTime": report["startTime"],
        "endTime": report["endTime"],
        "range": report["dateRange"],
        "groupBy": report["groupBy"].value,
        "recordCount": report["recordCount"],
        "results": [view.model_dump(by_alias=True) for view in report["views"]],
    }


@app.get("/", response_class=HTMLResponse)
def dashboard(
    date_range: Optional[str] = Query(None, alias="range"),
    group_by: Optional[str] = Query(None, alias="groupBy"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    service: UsageReportService = Depends(get_service)
):
    date_range = date_range or service.config.default_date_range
    try:
        report = service.build_report(date_range, group_by, custom_start=start_date, custom_end=end_date)
    except (DataValidationError, ConfigurationError, APIError) as e:
        logger.error(f"Error rendering dashboard: {e}")
        mode = group_by if group_by in {m.value for m in GroupBy} else GroupBy.USER
        return HTMLResponse(render_dashboard(
            [],
            mode,
            date_range=date_range,
            error=str(e),
            custom_start=start_date,
            custom_end=end_date,
        ))
    return HTMLResponse(render_dashboard(
        report["views"],
        report["groupBy"],
        report["startTime"],
        report["endTime"],
        date_range=date_range,
        custom_start=start_date,
        custom_end=end_date,
    ))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
