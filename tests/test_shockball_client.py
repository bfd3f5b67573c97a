"""Tests for ShockballClient: pagination, conditional requests, backoff and error mapping."""
import httpx
import pytest

from conftest import (
    BASE_URL,
    RIVAL_TEAM_ID,
    TRACKED_TEAM_ID,
    listing_payload,
    make_client,
    match_payload,
    replay_payload,
)
from shockball_analytics.services.shockball import (
    ConfigurationError,
    RateBudget,
    RateLimitExceededError,
    ShockballClient,
    UpstreamNetworkError,
    UpstreamResponseError,
    filter_tracked_team_matches,
    get_process_rate_budget,
)
from shockball_analytics.services.shockball import client as client_module


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestPagination:

    @pytest.mark.asyncio
    async def test_follows_has_more_and_sends_token_only_on_first_page(self):
        pages = {
            0: listing_payload([match_payload("m-1", TRACKED_TEAM_ID, RIVAL_TEAM_ID)], has_more=True),
            2: listing_payload([match_payload("m-2", RIVAL_TEAM_ID, TRACKED_TEAM_ID)], has_more=False, offset=2),
        }
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            offset = int(request.url.params["offset"])
            return httpx.Response(200, json=pages[offset], headers={"Last-Modified": f"page-{offset}"})

        client = make_client(handler, page_size=2)
        result = await client.get_upcoming_matches(conditional_token="token-1")
        await client.close()

        assert [m.id for m in result.records] == ["m-1", "m-2"]
        assert result.new_token == "page-0"
        assert result.was_unchanged is False
        assert seen[0].headers["If-Modified-Since"] == "token-1"
        assert "If-Modified-Since" not in seen[1].headers
        assert seen[0].url.params["limit"] == "2"
        assert "competitionType" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_competition_filter_is_sent(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=listing_payload([]))

        client = make_client(handler)
        await client.get_recent_matches(competition_type="LEAGUE")
        await client.close()

        assert seen[0].url.params["competitionType"] == "LEAGUE"
        assert seen[0].headers["x-api-key"] == "test-api-key"

    @pytest.mark.asyncio
    async def test_not_modified_short_circuits(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(304, headers={"Last-Modified": "token-1"})

        client = make_client(handler)
        result = await client.fetch_listing("/matches/recent", conditional_token="token-1")
        await client.close()

        assert result.was_unchanged is True
        assert result.records == []
        assert len(calls) == 1


class TestDetail:

    @pytest.mark.asyncio
    async def test_fetch_detail_parses_replay(self, fake_api, shockball_client):
        fake_api.replays["m-1"] = replay_payload("m-1")

        result = await shockball_client.fetch_detail("m-1")

        assert result.was_unchanged is False
        assert result.new_token == fake_api.replay_token
        assert result.data.data.match.sim_version == "v2"
        assert len(result.data.data.events) == 3
        assert result.data.data.player_stats.home[0].goals == 3

    @pytest.mark.asyncio
    async def test_fetch_detail_with_current_token_is_unchanged(self, fake_api, shockball_client):
        fake_api.replays["m-1"] = replay_payload("m-1")

        result = await shockball_client.fetch_detail("m-1", conditional_token=fake_api.replay_token)

        assert result.was_unchanged is True
        assert result.data is None


class TestBackoff:

    @pytest.mark.asyncio
    async def test_gives_up_after_three_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"X-RateLimit-Remaining": "0"})

        sleep = RecordingSleep()
        client = make_client(handler, sleep=sleep)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await client.get_upcoming_matches()
        await client.close()

        assert len(calls) == 4
        assert sleep.delays == [5.0, 10.0, 20.0]
        assert sleep.delays == sorted(sleep.delays)
        assert exc_info.value.retries == 3
        assert client.rate_budget.remaining == 0

    @pytest.mark.asyncio
    async def test_retry_after_caps_delay(self):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json=listing_payload([])),
        ])

        sleep = RecordingSleep()
        client = make_client(lambda request: next(responses), sleep=sleep)
        result = await client.get_recent_matches()
        await client.close()

        assert sleep.delays == [2.0, 2.0]
        assert result.records == []

    @pytest.mark.asyncio
    async def test_recovers_after_one_throttle(self):
        responses = iter([
            httpx.Response(429),
            httpx.Response(200, json=listing_payload([match_payload("m-1", TRACKED_TEAM_ID, RIVAL_TEAM_ID)])),
        ])

        client = make_client(lambda request: next(responses))
        result = await client.get_upcoming_matches()
        await client.close()

        assert [m.id for m in result.records] == ["m-1"]


class TestErrors:

    @pytest.mark.asyncio
    async def test_error_status_is_not_retried_and_carries_body(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="database on fire")

        client = make_client(handler)
        with pytest.raises(UpstreamResponseError) as exc_info:
            await client.get_recent_matches()
        await client.close()

        assert len(calls) == 1
        assert exc_info.value.status_code == 500
        assert "500" in str(exc_info.value)
        assert "/matches/recent" in str(exc_info.value)
        assert "database on fire" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_failure_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamNetworkError) as exc_info:
            await client.fetch_detail("m-1")
        await client.close()

        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert exc_info.value.url == f"{BASE_URL}/matches/m-1/replay-data"

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_before_any_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=listing_payload([]))

        client = make_client(handler, api_key="")
        with pytest.raises(ConfigurationError):
            await client.get_upcoming_matches()
        await client.close()

        assert calls == []

    @pytest.mark.asyncio
    async def test_unreadable_record_does_not_drop_the_page(self):
        broken = match_payload("m-2", RIVAL_TEAM_ID, TRACKED_TEAM_ID)
        del broken["scheduledTime"]
        page = listing_payload([
            match_payload("m-1", TRACKED_TEAM_ID, RIVAL_TEAM_ID),
            broken,
            match_payload("m-3", TRACKED_TEAM_ID, RIVAL_TEAM_ID, status="POSTPONED"),
        ])
        client = make_client(lambda request: httpx.Response(200, json=page))

        result = await client.get_upcoming_matches()
        await client.close()

        assert [m.id for m in result.records] == ["m-1", "m-3"]
        assert result.records[1].status == "POSTPONED"
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_invalid_payload_is_an_upstream_error(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(UpstreamResponseError):
            await client.get_upcoming_matches()
        await client.close()


class TestRateBudget:

    @pytest.mark.asyncio
    async def test_budget_follows_headers_on_every_response(self):
        def handler(request):
            return httpx.Response(
                304,
                headers={"X-RateLimit-Remaining": "7", "X-RateLimit-Reset": "1792335600"},
            )

        client = make_client(handler)
        await client.get_upcoming_matches(conditional_token="t")
        await client.close()

        status = client.get_rate_budget_status()
        assert status["remaining"] == 7
        assert status["is_low"] is True
        assert status["resets_at"].startswith("2026-")

    def test_defaults(self):
        status = RateBudget().status()
        assert status["remaining"] == 100
        assert status["is_low"] is False
        assert status["resets_at"] == "1970-01-01T00:00:00+00:00"

    def test_injected_budgets_are_per_client(self):
        first = make_client(lambda request: httpx.Response(200))
        second = make_client(lambda request: httpx.Response(200))

        first.rate_budget.remaining = 3

        assert second.rate_budget.remaining == 100

    def test_clients_without_a_budget_share_the_process_budget(self, monkeypatch):
        monkeypatch.setattr(client_module, "_process_budget", None)
        first = ShockballClient(api_key="k", base_url=BASE_URL)
        second = ShockballClient(api_key="k", base_url=BASE_URL)

        first.rate_budget.update_from_headers(httpx.Headers({"X-RateLimit-Remaining": "3"}))

        assert second.rate_budget is get_process_rate_budget()
        assert second.get_rate_budget_status()["remaining"] == 3
        assert second.get_rate_budget_status()["is_low"] is True


def test_filter_tracked_team_matches():
    from shockball_analytics.models import ApiMatch

    matches = [
        ApiMatch.model_validate(match_payload("m-1", TRACKED_TEAM_ID, RIVAL_TEAM_ID)),
        ApiMatch.model_validate(match_payload("m-2", RIVAL_TEAM_ID, "team-x")),
        ApiMatch.model_validate(match_payload("m-3", "team-x", TRACKED_TEAM_ID)),
    ]

    assert [m.id for m in filter_tracked_team_matches(matches, TRACKED_TEAM_ID)] == ["m-1", "m-3"]
