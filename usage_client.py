"""
Usage API Client for the environment usage dashboard.
Fetches environment runtime records and organization members from the
usage API, following page tokens until the result set is exhausted.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from config import DashboardConfig
from error_handling import APIError, ConfigurationError, handle_api_errors
from models import MemberDirectoryEntry, SessionRecord, UsagePayload
from validators import validate_usage_query

logger = logging.getLogger(__name__)

USAGE_RECORDS_ENDPOINT = "/gitpod.v1.UsageService/ListEnvironmentUsageRecords"
MEMBERS_ENDPOINT = "/gitpod.v1.OrganizationService/ListMembers"


def setup_logging(log_file: str = 'usage_dashboard.log'):
    """Configure centralized logging for the usage dashboard."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    root_logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, mode='a')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.ERROR)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def build_headers(config: DashboardConfig) -> Dict[str, str]:
    """
    Build request headers carrying the bearer token.

    Raises:
        ConfigurationError: If no API token is configured
    """
    if not config.api_token:
        error_msg = "ONA_PAT environment variable is not set"
        logger.error(error_msg)
        raise ConfigurationError(error_msg)
    return {
        'Authorization': f'Bearer {config.api_token}',
        'Content-Type': 'application/json',
        'Connect-Protocol-Version': '1'
    }


@handle_api_errors(max_retries=3, base_delay=1.0)
def post_page(url: str, headers: Dict[str, str], body: Dict[str, Any], timeout: int, endpoint: str = "") -> Dict[str, Any]:
    """POST one page request and return the decoded JSON body."""
    response = requests.post(url, headers=headers, json=body, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    if not isinstance(data, dict):
        raise APIError(
            f"Expected a JSON object from {endpoint}, got {type(data).__name__}",
            status_code=response.status_code,
            endpoint=endpoint,
        )
    return data


def fetch_all_pages(
    endpoint: str,
    body: Dict[str, Any],
    items_key: str,
    config: DashboardConfig
) -> List[Dict[str, Any]]:
    """
    Fetch every page of a paginated list endpoint.

    Args:
        endpoint: Endpoint path below the API base URL
        body: Request body without the pagination block
        items_key: Key of the item list in each page response
        config: DashboardConfig with base URL, token and page size

    Returns:
        All items across pages, in the order the API returned them
    """
    headers = build_headers(config)
    full_url = f"{config.api_base_url.rstrip('/')}{endpoint}"

    all_items: List[Dict[str, Any]] = []
    page_token = ""
    page_count = 0

    while True:
        page_count += 1
        pagination = {'pageSize': config.page_size}
        if page_token:
            pagination['token'] = page_token
        request_body = dict(body, pagination=pagination)

        logger.info(f"Fetching {items_key} page {page_count} from {endpoint}")
        data = post_page(full_url, headers, request_body, config.request_timeout, endpoint=endpoint)

        page_items = data.get(items_key) or []
        all_items.extend(page_items)
        logger.info(f"Page {page_count} fetched: {len(page_items)} {items_key}")

        page_token = (data.get('pagination') or {}).get('nextToken') or ""
        if not page_token:
            break

    logger.info(f"Fetch complete: {len(all_items)} {items_key} from {page_count} pages")
    return all_items


def _validate_items(items: List[Dict[str, Any]], model, label: str) -> list:
    valid = []
    for idx, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("[VALIDATION] Skipping malformed %s at index %d: %s", label, idx, exc)
    return valid


def fetch_usage_records(start_time: str, end_time: str, config: DashboardConfig) -> List[SessionRecord]:
    """
    Fetch every environment usage record in the [start_time, end_time) window.

    Raises:
        ConfigurationError: If no API token is configured
        APIError: For upstream failures (see error_handling)
    """
    body = {'filter': {'dateRange': {'startTime': start_time, 'endTime': end_time}}}
    records = fetch_all_pages(USAGE_RECORDS_ENDPOINT, body, 'records', config)
    return _validate_items(records, SessionRecord, 'usage record')


def fetch_members(organization_id: str, config: DashboardConfig) -> List[MemberDirectoryEntry]:
    """Fetch the member directory of an organization."""
    body = {'organizationId': organization_id}
    members = fetch_all_pages(MEMBERS_ENDPOINT, body, 'members', config)
    return _validate_items(members, MemberDirectoryEntry, 'member')


def fetch_usage_data(
    start_time: str,
    end_time: str,
    organization_id: Optional[str] = None,
    config: Optional[DashboardConfig] = None
) -> UsagePayload:
    """
    Fetch usage records and, when an organization is given, its members.

    A failure while fetching members is logged and yields an empty member
    list, so the report still renders with raw user ids.

    Args:
        start_time: Window start (ISO-8601)
        end_time: Window end (ISO-8601)
        organization_id: Organization scope for the member directory
        config: DashboardConfig; read from the environment when omitted

    Returns:
        UsagePayload with usage_records and members

    Raises:
        DataValidationError: If the window is missing or invalid
        ConfigurationError: If no API token is configured
        APIError: If fetching usage records fails
    """
    config = config or DashboardConfig.from_env()
    query = validate_usage_query(start_time, end_time, organization_id)

    logger.info("Starting usage fetch: %s -> %s", query.start_time, query.end_time)
    records = fetch_usage_records(query.start_time, query.end_time, config)

    members: List[MemberDirectoryEntry] = []
    if query.organization_id:
        try:
            members = fetch_members(query.organization_id, config)
        except APIError as e:
            logger.error(f"Error fetching organization members: {e}")

    logger.info("Usage fetch complete: %d records, %d members", len(records), len(members))
    return UsagePayload(usage_records=records, members=members)
