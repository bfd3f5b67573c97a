"""Sync API routes for triggering and inspecting the Shockball sync.

Provides endpoints for:
- Manual or cron-triggered sync runs (POST /api/sync)
- Rate budget and audit trail status (GET /api/sync)
- Replay backfill of a single match (POST /api/matches/{match_id}/replay)

Every route requires ``Authorization: Bearer <CRON_SECRET>``.
"""
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from shockball_analytics.core.auth import require_cron_secret
from shockball_analytics.core.database import get_db
from shockball_analytics.core.logging import get_logger
from shockball_analytics.services.sync.orchestrator import SyncOrchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["sync"], dependencies=[Depends(require_cron_secret)])


async def get_orchestrator(db: Session = Depends(get_db)) -> AsyncGenerator[SyncOrchestrator, None]:
    """Dependency yielding an orchestrator whose HTTP client is closed after the request."""
    orchestrator = SyncOrchestrator(db)
    try:
        yield orchestrator
    finally:
        await orchestrator.close()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/sync")
async def trigger_sync(
    full_rescan: bool = Query(False, description="Ignore stored tokens and sweep the replay backlog"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """
    Run one sync cycle now.

    Returns:
        Sync counts, the rate budget after the run and a timestamp
    """
    try:
        results = await orchestrator.sync_matches(full_rescan=full_rescan)
        return {
            "success": True,
            "results": results,
            "rate_limit": orchestrator.client.get_rate_budget_status(),
            "timestamp": _now(),
        }
    except Exception as e:
        logger.error(f"Sync trigger failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/sync")
async def get_sync_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """Rate budget, degraded flag and the recent sync audit trail."""
    try:
        status = orchestrator.get_sync_status()
        status["timestamp"] = _now()
        return status
    except Exception as e:
        logger.error(f"Error getting sync status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/matches/{match_id}/replay")
async def sync_match_replay(
    match_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """Fetch and store replay data for a single match."""
    try:
        result = await orchestrator.sync_match_replay(match_id)
        return {
            "match_id": match_id,
            **result,
            "rate_limit": orchestrator.client.get_rate_budget_status(),
            "timestamp": _now(),
        }
    except Exception as e:
        logger.error(f"Replay sync failed for {match_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
