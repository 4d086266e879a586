"""
Configuration module for the usage dashboard.
Holds the upstream API location, credentials and cache/paging parameters.
"""

import os

DEFAULT_API_BASE_URL = "https://app.gitpod.io/api"


class DashboardConfig:
    """Configuration class for fetching and reporting usage data."""

    def __init__(
        self,
        api_base_url: str = DEFAULT_API_BASE_URL,
        api_token: str = None,
        organization_id: str = None,
        page_size: int = 100,
        request_timeout: int = 30,
        cache_ttl_seconds: int = 300,
        default_date_range: str = "7d"
    ):
        """
        Initialize dashboard configuration.

        Args:
            api_base_url: Base URL of the usage API
            api_token: Bearer token used to authenticate against the API
            organization_id: Organization whose member directory is fetched
            page_size: Number of records requested per page
            request_timeout: Per-request timeout in seconds
            cache_ttl_seconds: How long a fetched payload stays fresh
            default_date_range: Preset used when no range is requested
        """
        self.api_base_url = api_base_url
        self.api_token = api_token
        self.organization_id = organization_id
        self.page_size = page_size
        self.request_timeout = request_timeout
        self.cache_ttl_seconds = cache_ttl_seconds
        self.default_date_range = default_date_range

    @classmethod
    def from_env(cls, **overrides) -> "DashboardConfig":
        """Build a configuration from ONA_* environment variables."""
        values = {
            'api_base_url': os.getenv('ONA_API_BASE_URL', DEFAULT_API_BASE_URL),
            'api_token': os.getenv('ONA_PAT') or None,
            'organization_id': os.getenv('ONA_ORGANIZATION_ID') or None,
            'cache_ttl_seconds': int(os.getenv('ONA_CACHE_TTL_SECONDS', '300')),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self):
        """Convert configuration to dictionary. The token itself is never included."""
        return {
            'api_base_url': self.api_base_url,
            'api_token_set': bool(self.api_token),
            'organization_id': self.organization_id,
            'page_size': self.page_size,
            'request_timeout': self.request_timeout,
            'cache_ttl_seconds': self.cache_ttl_seconds,
            'default_date_range': self.default_date_range
        }
