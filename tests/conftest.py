"""Shared pytest fixtures for shockball-analytics tests."""
import os
from typing import Dict, Generator, List, Optional

# Settings are read at import time; pin a test environment before anything imports them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("SHOCKBALL_API_KEY", "test-api-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("LOG_JSON", "false")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shockball_analytics.core.database import enable_sqlite_foreign_keys
from shockball_analytics.models import Base
from shockball_analytics.services.shockball import RateBudget, ShockballClient

TRACKED_TEAM_ID = "team-tracked"
RIVAL_TEAM_ID = "team-rival"
OTHER_TEAM_ID = "team-other"
THIRD_TEAM_ID = "team-third"

BASE_URL = "https://shockball.test/api/v1/data"


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine with foreign keys enforced."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    TestSessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = TestSessionLocal()
    yield session
    session.close()


# =============================================================================
# Upstream payload factories (camelCase, as served by the API)
# =============================================================================

def team_payload(team_id: str, name: Optional[str] = None) -> Dict:
    return {
        "id": team_id,
        "name": name or team_id.replace("-", " ").title(),
        "imageUrl": f"https://cdn.shockball.test/{team_id}.png",
        "venue": f"{team_id} arena",
    }


def match_payload(
    match_id: str,
    home_id: str,
    away_id: str,
    status: str = "SCHEDULED",
    home_score: Optional[int] = None,
    away_score: Optional[int] = None,
    scheduled_time: str = "2026-10-20T18:00:00Z",
    with_competition: bool = True,
) -> Dict:
    payload = {
        "id": match_id,
        "scheduledTime": scheduled_time,
        "status": status,
        "homeScore": home_score,
        "awayScore": away_score,
        "homeTeam": team_payload(home_id),
        "awayTeam": team_payload(away_id),
    }
    if with_competition:
        payload["competition"] = {
            "id": "comp-div-1",
            "name": "Division One",
            "type": "DIVISION",
            "status": "ACTIVE",
            "startDate": "2026-09-01T00:00:00Z",
            "season": 4,
        }
        payload["conference"] = {"id": "conf-north", "name": "North"}
        payload["league"] = {"id": "league-main", "name": "Main League"}
    return payload


def listing_payload(matches: List[Dict], has_more: bool = False, offset: int = 0) -> Dict:
    return {
        "matches": matches,
        "meta": {"total": len(matches), "limit": 100, "offset": offset, "hasMore": has_more},
    }


def player_stats_payload(player_id: str, shots: int = 0, goals: int = 0, tackles: int = 0, fouls: int = 0) -> Dict:
    return {
        "playerId": player_id,
        "playerName": f"Player {player_id}",
        "shots": shots,
        "goals": goals,
        "passes": 12,
        "tackles": tackles,
        "blocks": 1,
        "fouls": fouls,
        "wasInjured": False,
    }


def replay_payload(
    match_id: str,
    home_id: str = TRACKED_TEAM_ID,
    away_id: str = RIVAL_TEAM_ID,
    home_score: int = 3,
    away_score: int = 1,
    events: Optional[List[Dict]] = None,
) -> Dict:
    if events is None:
        events = [
            {
                "turn": 0,
                "type": "MATCH_START",
                "description": "Kick off",
                "playersInvolved": [],
                "homeScore": 0,
                "awayScore": 0,
                "context": {"initialEnergy": {"p-home-1": 100, "p-away-1": 95}},
            },
            {
                "turn": 5,
                "type": "GOAL",
                "description": "Home scores",
                "playersInvolved": ["p-home-1"],
                "homeScore": 1,
                "awayScore": 0,
            },
            {
                "turn": 5,
                "type": "TURN_UPDATE",
                "description": None,
                "playersInvolved": [],
                "homeScore": 1,
                "awayScore": 0,
                "context": {"turnEnergy": {"p-home-1": 28, "p-away-1": 9}},
            },
        ]
    return {
        "success": True,
        "data": {
            "match": {
                "id": match_id,
                "homeTeam": team_payload(home_id),
                "awayTeam": team_payload(away_id),
                "homeScore": home_score,
                "awayScore": away_score,
                "scheduledTime": "2026-10-18T18:00:00Z",
                "simVersion": "v2",
            },
            "playerStats": {
                "home": [player_stats_payload("p-home-1", shots=10, goals=3, tackles=4, fouls=1)],
                "away": [player_stats_payload("p-away-1", shots=0, goals=0, tackles=0, fouls=0)],
            },
            "events": events,
        },
        "timestamp": "2026-10-18T20:00:00Z",
    }


# =============================================================================
# Simulated Shockball API
# =============================================================================

class FakeShockballAPI:
    """
    ``httpx.MockTransport`` handler serving listings and replay data.

    Each resource has a Last-Modified value; a request whose
    If-Modified-Since equals it gets a 304. Every request is recorded.
    """

    def __init__(self):
        self.listings: Dict[str, List[Dict]] = {"upcoming": [], "recent": []}
        self.listing_tokens: Dict[str, str] = {
            "upcoming": "Sat, 18 Oct 2026 10:00:00 GMT",
            "recent": "Sat, 18 Oct 2026 10:05:00 GMT",
        }
        self.replays: Dict[str, Dict] = {}
        self.replay_token = "Sat, 18 Oct 2026 20:00:00 GMT"
        self.failures: Dict[str, int] = {}  # resource -> status code to answer with
        self.requests: List[httpx.Request] = []
        self.remaining = 99

    def _response(self, status_code: int, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers.setdefault("X-RateLimit-Remaining", str(self.remaining))
        headers.setdefault("X-RateLimit-Reset", "1792335600")
        return httpx.Response(status_code, headers=headers, **kwargs)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.remaining -= 1
        path = request.url.path.split("/data", 1)[-1]
        since = request.headers.get("If-Modified-Since")

        for name in ("upcoming", "recent"):
            if path == f"/matches/{name}":
                if name in self.failures:
                    return self._response(self.failures[name], text="upstream unavailable")
                token = self.listing_tokens[name]
                if since == token:
                    return self._response(304, headers={"Last-Modified": token})
                return self._response(
                    200,
                    json=listing_payload(self.listings[name]),
                    headers={"Last-Modified": token},
                )

        if path.startswith("/matches/") and path.endswith("/replay-data"):
            match_id = path.split("/")[2]
            if match_id in self.failures:
                return self._response(self.failures[match_id], text="upstream unavailable")
            if match_id not in self.replays:
                return self._response(404, json={"error": "Match not found"})
            if since == self.replay_token:
                return self._response(304, headers={"Last-Modified": self.replay_token})
            return self._response(
                200,
                json=self.replays[match_id],
                headers={"Last-Modified": self.replay_token},
            )

        return self._response(404, json={"error": "Unknown path"})

    def paths(self) -> List[str]:
        return [r.url.path.split("/data", 1)[-1] for r in self.requests]


async def no_sleep(seconds: float) -> None:
    return None


def make_client(handler, **kwargs) -> ShockballClient:
    """Client wired to a mock transport, with no real waiting between retries."""
    kwargs.setdefault("api_key", "test-api-key")
    kwargs.setdefault("base_url", BASE_URL)
    kwargs.setdefault("sleep", no_sleep)
    kwargs.setdefault("rate_budget", RateBudget())
    return ShockballClient(transport=httpx.MockTransport(handler), **kwargs)


@pytest.fixture
def fake_api() -> FakeShockballAPI:
    return FakeShockballAPI()


@pytest_asyncio.fixture
async def shockball_client(fake_api):
    client = make_client(fake_api)
    yield client
    await client.close()
