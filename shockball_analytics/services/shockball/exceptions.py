"""
Errors raised by the Shockball API client.

    ShockballAPIError
    ├── ConfigurationError       missing credential, never retried
    ├── UpstreamNetworkError     DNS/connect/timeout, wraps the cause
    ├── ThrottledError           single 429, retried by the client
    ├── RateLimitExceededError   429 persisted through every retry
    └── UpstreamResponseError    any other non-2xx/non-304, or an unreadable body
"""
from typing import Optional


class ShockballAPIError(Exception):
    """Base class for Shockball API failures."""


class ConfigurationError(ShockballAPIError):
    """A required setting (e.g. the API key) is missing."""


class UpstreamNetworkError(ShockballAPIError):
    """The request never produced an HTTP response."""

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.cause = cause
        super().__init__(f"Network error fetching {url}: {cause!r}")


class ThrottledError(ShockballAPIError):
    """The upstream answered 429 Too Many Requests."""

    def __init__(self, path: str, retry_after: Optional[float] = None):
        self.path = path
        self.retry_after = retry_after
        super().__init__(f"Rate limited on {path} (retry-after={retry_after})")


class RateLimitExceededError(ShockballAPIError):
    """Throttling did not clear within the retry allowance."""

    def __init__(self, path: str, retries: int):
        self.path = path
        self.retries = retries
        super().__init__(f"Rate limit exceeded after {retries} retries for {path}")


class UpstreamResponseError(ShockballAPIError):
    """The upstream returned an error status or a payload that could not be parsed."""

    def __init__(self, status_code: int, path: str, body: str):
        self.status_code = status_code
        self.path = path
        self.body = body
        super().__init__(f"Shockball API error {status_code} for {path}: {body}")
