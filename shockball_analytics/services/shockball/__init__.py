"""Shockball data API client.

- client: rate-limit aware HTTP client with conditional requests and pagination
- exceptions: error taxonomy surfaced to the sync orchestrator
"""
from shockball_analytics.services.shockball.client import (
    ShockballClient,
    RateBudget,
    ListingResult,
    DetailResult,
    filter_tracked_team_matches,
    get_process_rate_budget,
)
from shockball_analytics.services.shockball.exceptions import (
    ShockballAPIError,
    ConfigurationError,
    UpstreamNetworkError,
    ThrottledError,
    RateLimitExceededError,
    UpstreamResponseError,
)

__all__ = [
    "ShockballClient",
    "RateBudget",
    "ListingResult",
    "DetailResult",
    "filter_tracked_team_matches",
    "get_process_rate_budget",
    "ShockballAPIError",
    "ConfigurationError",
    "UpstreamNetworkError",
    "ThrottledError",
    "RateLimitExceededError",
    "UpstreamResponseError",
]
