"""
Shockball API client.

Handles:
- API key auth via the x-api-key header
- If-Modified-Since / 304 conditional requests (free, no rate limit cost)
- Rate limit header tracking (X-RateLimit-Remaining, X-RateLimit-Reset)
- Exponential backoff on 429
- Pagination (auto-fetches all pages)

Published ceiling: 100 requests/hour. The rate budget is advisory. Clients
share one process-wide budget unless given their own, so every caller sees
the headers of the most recent response.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from shockball_analytics.core import metrics
from shockball_analytics.core.config import settings
from shockball_analytics.core.logging import get_logger
from shockball_analytics.models.schemas import (
    ApiMatch,
    ApiMatchListResponse,
    ApiReplayData,
    CompetitionType,
)
from shockball_analytics.services.shockball.exceptions import (
    ConfigurationError,
    RateLimitExceededError,
    ThrottledError,
    UpstreamNetworkError,
    UpstreamResponseError,
)

logger = get_logger(__name__)

UPCOMING_PATH = "/matches/upcoming"
RECENT_PATH = "/matches/recent"
REPLAY_PATH = "/matches/{match_id}/replay-data"

HOURLY_REQUEST_LIMIT = 100


@dataclass
class RateBudget:
    """Most recently observed rate limit state."""
    remaining: int = HOURLY_REQUEST_LIMIT
    reset_at: int = 0  # Unix seconds
    low_watermark: int = 10

    def update_from_headers(self, headers: httpx.Headers) -> None:
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")

        try:
            if remaining:
                self.remaining = int(remaining)
            if reset:
                self.reset_at = int(reset)
        except ValueError:
            logger.warning(f"Unparseable rate limit headers: remaining={remaining!r} reset={reset!r}")
            return

        metrics.update_rate_budget(self.remaining, self.reset_at)

    @property
    def is_low(self) -> bool:
        return self.remaining < self.low_watermark

    def status(self) -> Dict[str, Any]:
        return {
            "remaining": self.remaining,
            "resets_at": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
            "is_low": self.is_low,
        }


@dataclass
class ListingResult:
    records: List[ApiMatch] = field(default_factory=list)
    new_token: Optional[str] = None
    was_unchanged: bool = False
    skipped: int = 0  # records dropped because they did not parse


@dataclass
class DetailResult:
    data: Optional[ApiReplayData] = None
    new_token: Optional[str] = None
    was_unchanged: bool = False


# Shared by every client built without an explicit budget
_process_budget: Optional[RateBudget] = None


def get_process_rate_budget() -> RateBudget:
    """Get the process-wide rate budget, creating it on first use."""
    global _process_budget
    if _process_budget is None:
        _process_budget = RateBudget(low_watermark=settings.RATE_LIMIT_LOW_WATERMARK)
    return _process_budget


def filter_tracked_team_matches(matches: List[ApiMatch], team_id: str) -> List[ApiMatch]:
    """Keep only matches where ``team_id`` plays home or away."""
    return [m for m in matches if m.involves_team(team_id)]


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        # HTTP-date form is not used by Shockball
        return None


class ShockballClient:
    """
    Async client for the Shockball data API.

    Usage:
        async with ShockballClient() as client:
            result = await client.get_upcoming_matches(conditional_token=token)
            if not result.was_unchanged:
                ...
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        rate_budget: Optional[RateBudget] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            api_key: Shockball API key (defaults to settings)
            base_url: API base URL (defaults to settings)
            page_size: Listing page size
            max_retries: Retries after a 429 before giving up
            backoff_seconds: First backoff delay, doubled per retry
            timeout: Per-request timeout in seconds
            rate_budget: Budget tracker (defaults to the process-wide budget)
            transport: httpx transport override (tests use MockTransport)
            sleep: Coroutine used to wait between retries
        """
        self.api_key = api_key if api_key is not None else settings.SHOCKBALL_API_KEY
        self.base_url = (base_url or settings.SHOCKBALL_API_BASE_URL).rstrip("/")
        self.page_size = page_size or settings.API_PAGE_SIZE
        self.max_retries = max_retries if max_retries is not None else settings.API_MAX_RETRIES
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.API_BACKOFF_SECONDS
        self.timeout = timeout or settings.API_TIMEOUT
        self.rate_budget = rate_budget or get_process_rate_budget()
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ShockballClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, conditional_token: Optional[str]) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("SHOCKBALL_API_KEY environment variable is not set")

        headers = {
            "x-api-key": self.api_key,
            "Accept": "application/json",
        }
        if conditional_token:
            headers["If-Modified-Since"] = conditional_token
        return headers

    def get_rate_budget_status(self) -> Dict[str, Any]:
        """Remaining requests, reset time (ISO 8601) and whether the budget is low."""
        return self.rate_budget.status()

    # ------------------------------------------------------------------
    # Core request with throttling backoff
    # ------------------------------------------------------------------

    def _throttle_wait(self, retry_state: RetryCallState) -> float:
        """5s, 10s, 20s ... capped at the server's Retry-After when it sent one."""
        delay = self.backoff_seconds * (2 ** (retry_state.attempt_number - 1))
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, ThrottledError) and error.retry_after is not None:
            delay = min(delay, error.retry_after)
        return delay

    def _log_throttle(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Shockball rate limited. Waiting {delay:.1f}s before retry {retry_state.attempt_number}",
            extra={"rate_limit_remaining": self.rate_budget.remaining},
        )

    async def _send_once(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        conditional_token: Optional[str],
    ) -> httpx.Response:
        headers = self._get_headers(conditional_token)
        url = f"{self.base_url}{path}"

        try:
            response = await self._get_client().get(url, params=params, headers=headers)
        except httpx.RequestError as e:
            metrics.record_api_request("network_error")
            raise UpstreamNetworkError(url, e) from e

        self.rate_budget.update_from_headers(response.headers)

        if response.status_code == 304:
            metrics.record_api_request("not_modified")
            return response

        if response.status_code == 429:
            metrics.record_api_request("throttled")
            raise ThrottledError(path, retry_after=_parse_retry_after(response))

        if not response.is_success:
            metrics.record_api_request("error")
            raise UpstreamResponseError(response.status_code, path, response.text)

        metrics.record_api_request("ok")
        return response

    async def _request(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        conditional_token: Optional[str] = None,
    ) -> httpx.Response:
        """
        Issue one logical GET, retrying only on 429.

        Returns a 200 or 304 response.

        Raises:
            ConfigurationError: API key missing
            UpstreamNetworkError: transport failure
            RateLimitExceededError: still throttled after ``max_retries`` retries
            UpstreamResponseError: any other non-success status
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._throttle_wait,
            retry=retry_if_exception_type(ThrottledError),
            before_sleep=self._log_throttle,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            return await retrying(self._send_once, path, params, conditional_token)
        except ThrottledError as e:
            metrics.record_api_request("rate_limit_exceeded")
            raise RateLimitExceededError(path, self.max_retries) from e

    @staticmethod
    def _parse(response: httpx.Response, path: str, model):
        try:
            return model.model_validate(response.json())
        except ValueError as e:
            raise UpstreamResponseError(response.status_code, path, f"invalid payload: {e}") from e

    @staticmethod
    def _validate_matches(raw_matches: List[Dict[str, Any]], path: str) -> List[ApiMatch]:
        """Validate listing records one at a time, skipping the ones that do not parse."""
        matches: List[ApiMatch] = []
        for raw in raw_matches:
            try:
                matches.append(ApiMatch.model_validate(raw))
            except ValidationError as e:
                match_id = raw.get("id")
                logger.warning(
                    f"Skipping unreadable match {match_id!r} from {path}: {e.error_count()} errors",
                    extra={"entity": "match", "key": match_id},
                )
        return matches

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_listing(
        self,
        endpoint: str,
        filters: Optional[Dict[str, str]] = None,
        conditional_token: Optional[str] = None,
    ) -> ListingResult:
        """
        Fetch every page of a match listing.

        The conditional token is only sent with the first page. A 304 on
        the first page ends the fetch immediately with ``was_unchanged``
        set and no records.

        Args:
            endpoint: Listing path, e.g. ``/matches/upcoming``
            filters: Extra query parameters
            conditional_token: Last-Modified value from the previous successful poll

        Returns:
            ListingResult with all readable matches, the count of skipped
            records and the first page's Last-Modified
        """
        records: List[ApiMatch] = []
        skipped = 0
        new_token: Optional[str] = None
        offset = 0

        while True:
            params = {**(filters or {}), "limit": self.page_size, "offset": offset}
            first_page = offset == 0

            response = await self._request(
                endpoint,
                params=params,
                conditional_token=conditional_token if first_page else None,
            )

            if response.status_code == 304:
                if first_page:
                    logger.debug(f"{endpoint} not modified since {conditional_token}")
                    return ListingResult(
                        records=[],
                        new_token=response.headers.get("Last-Modified"),
                        was_unchanged=True,
                    )
                # Later pages carry no validator; nothing more to read
                break

            page = self._parse(response, endpoint, ApiMatchListResponse)

            if first_page:
                new_token = response.headers.get("Last-Modified")
            valid = self._validate_matches(page.matches, endpoint)
            skipped += len(page.matches) - len(valid)
            records.extend(valid)

            if not page.meta.has_more or not page.matches:
                break
            offset += self.page_size

        logger.info(f"Fetched {len(records)} matches from {endpoint} ({skipped} skipped)")
        return ListingResult(records=records, new_token=new_token, was_unchanged=False, skipped=skipped)

    async def fetch_detail(
        self,
        match_id: str,
        conditional_token: Optional[str] = None,
    ) -> DetailResult:
        """
        Fetch full replay data for a completed match.

        Completed match data is immutable, so once fetched every later call
        with the stored token is a free 304.
        """
        path = REPLAY_PATH.format(match_id=match_id)
        response = await self._request(path, conditional_token=conditional_token)
        new_token = response.headers.get("Last-Modified")

        if response.status_code == 304:
            return DetailResult(data=None, new_token=new_token, was_unchanged=True)

        return DetailResult(
            data=self._parse(response, path, ApiReplayData),
            new_token=new_token,
            was_unchanged=False,
        )

    async def get_upcoming_matches(
        self,
        competition_type: CompetitionType = "ALL",
        conditional_token: Optional[str] = None,
    ) -> ListingResult:
        """Upcoming matches, optionally filtered by competition type."""
        return await self.fetch_listing(
            UPCOMING_PATH, self._competition_filter(competition_type), conditional_token
        )

    async def get_recent_matches(
        self,
        competition_type: CompetitionType = "ALL",
        conditional_token: Optional[str] = None,
    ) -> ListingResult:
        """Recently completed matches, optionally filtered by competition type."""
        return await self.fetch_listing(
            RECENT_PATH, self._competition_filter(competition_type), conditional_token
        )

    @staticmethod
    def _competition_filter(competition_type: CompetitionType) -> Dict[str, str]:
        if competition_type and competition_type != "ALL":
            return {"competitionType": competition_type}
        return {}
