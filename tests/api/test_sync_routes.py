"""
HTTP tests for the admin sync routes.

These tests verify that the routes:
- Reject requests without the cron secret
- Run the orchestrator and return its results with the rate budget
- Turn unexpected failures into HTTP 500 JSON

Uses FastAPI TestClient for in-memory HTTP testing.
"""
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import BASE_URL, RIVAL_TEAM_ID, TRACKED_TEAM_ID, make_client, match_payload, no_sleep, replay_payload

from shockball_analytics.api.routes.sync import get_orchestrator
from shockball_analytics.core.config import settings
from shockball_analytics.core.database import get_db
from shockball_analytics.main import app
from shockball_analytics.services.shockball import ShockballClient
from shockball_analytics.services.shockball import client as client_module
from shockball_analytics.services.sync import orchestrator as orchestrator_module
from shockball_analytics.services.sync.orchestrator import SyncOrchestrator

SECRET = "route-test-secret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def orchestrator(db_session, fake_api):
    return SyncOrchestrator(db_session, client=make_client(fake_api), tracked_team_id=TRACKED_TEAM_ID)


@pytest.fixture
def client(orchestrator, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", SECRET)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# AUTH
# =============================================================================

class TestAuth:

    @pytest.mark.parametrize(
        "method,path",
        [("post", "/api/sync"), ("get", "/api/sync"), ("post", "/api/matches/m-1/replay")],
    )
    def test_missing_secret_is_rejected(self, client, fake_api, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401
        assert fake_api.requests == []

    def test_wrong_secret_is_rejected(self, client, fake_api):
        response = client.post("/api/sync", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert fake_api.requests == []

    def test_unset_secret_is_rejected_in_production(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "")
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")

        assert client.get("/api/sync").status_code == 401

    def test_unset_secret_is_allowed_outside_production(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "")

        assert client.get("/api/sync").status_code == 200


# =============================================================================
# ROUTES
# =============================================================================

class TestSyncRoutes:

    def test_trigger_sync(self, client, fake_api):
        fake_api.listings["upcoming"] = [match_payload("m-1", TRACKED_TEAM_ID, RIVAL_TEAM_ID)]

        response = client.post("/api/sync", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["results"]["upcoming_count"] == 1
        assert body["rate_limit"]["remaining"] == fake_api.remaining
        assert "timestamp" in body

    def test_full_rescan_flag_is_passed(self, client, orchestrator):
        orchestrator.sync_matches = AsyncMock(return_value={
            "upcoming_count": 0, "recent_count": 0, "replays_queued": 0, "error_count": 0,
        })

        response = client.post("/api/sync?full_rescan=true", headers=AUTH)

        assert response.status_code == 200
        orchestrator.sync_matches.assert_awaited_once_with(full_rescan=True)

    def test_status(self, client):
        client.post("/api/sync", headers=AUTH)

        response = client.get("/api/sync", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["degraded"] is False
        assert [row["endpoint"] for row in body["recent_log"]] == ["recent", "upcoming"]

    def test_replay(self, client, fake_api):
        fake_api.replays["m-1"] = replay_payload("m-1")

        response = client.post("/api/matches/m-1/replay", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["match_id"] == "m-1"
        assert body["success"] is True
        assert body["was_unchanged"] is False

    def test_unexpected_error_is_500_json(self, client, orchestrator):
        orchestrator.sync_matches = AsyncMock(side_effect=RuntimeError("database went away"))

        response = client.post("/api/sync", headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"detail": "database went away"}


class TestRateBudgetAcrossRequests:
    """Each request builds its own orchestrator and client through the real dependency."""

    @pytest.fixture
    def live_client(self, db_session, fake_api, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", SECRET)
        monkeypatch.setattr(client_module, "_process_budget", None)
        monkeypatch.setattr(
            orchestrator_module,
            "ShockballClient",
            lambda: ShockballClient(
                api_key="test-api-key",
                base_url=BASE_URL,
                transport=httpx.MockTransport(fake_api),
                sleep=no_sleep,
            ),
        )
        app.dependency_overrides[get_db] = lambda: db_session
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_status_reports_budget_seen_by_earlier_sync(self, live_client, fake_api):
        fake_api.remaining = 4

        sync_body = live_client.post("/api/sync", headers=AUTH).json()
        status = live_client.get("/api/sync", headers=AUTH).json()

        assert sync_body["rate_limit"]["remaining"] == fake_api.remaining == 2
        assert status["rate_limit"]["remaining"] == 2
        assert status["rate_limit"]["is_low"] is True
        assert status["degraded"] is True


def test_health():
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
