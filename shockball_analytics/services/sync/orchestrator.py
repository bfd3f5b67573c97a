"""Sync orchestrator for pulling Shockball match data into the analytics store.

Each run:
1. Polls /matches/upcoming with the last stored conditional token and keeps
   tracked-team fixtures
2. Polls /matches/recent the same way and keeps every match
3. Fetches replay data, one match at a time, for tracked-team matches that
   completed and have no replay stored yet

Sync Schedule (see core.scheduler):
- sync_matches: every 15 minutes
- sync_matches(full_rescan=True): daily, ignores stored tokens and sweeps the
  backlog of completed tracked-team matches without replay data

Public operations never raise. Every failure becomes a sync_log row, a log
record and an ``error_count`` increment.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from shockball_analytics.core.config import settings
from shockball_analytics.core.logging import correlation_scope, get_logger
from shockball_analytics.models import ApiMatch
from shockball_analytics.services.shockball import ShockballClient, filter_tracked_team_matches
from shockball_analytics.services.sync.persistence import PersistenceGateway

logger = get_logger(__name__)

UPCOMING_ENDPOINT = "upcoming"
RECENT_ENDPOINT = "recent"


def replay_endpoint(match_id: str) -> str:
    return f"replay:{match_id}"


class SyncOrchestrator:
    """
    Coordinates listing polls, match persistence and replay backfill.

    This is the main entry point for the sync layer; the scheduler, the
    admin routes and the CLI all go through it.
    """

    def __init__(
        self,
        db: Session,
        client: Optional[ShockballClient] = None,
        tracked_team_id: Optional[str] = None,
        gateway: Optional[PersistenceGateway] = None,
    ):
        """
        Args:
            db: SQLAlchemy database session
            client: Shockball API client (built from settings when omitted)
            tracked_team_id: Team whose matches get replay backfill
            gateway: Persistence gateway override
        """
        self.db = db
        self.tracked_team_id = tracked_team_id or settings.TRACKED_TEAM_ID
        self.client = client or ShockballClient()
        self.gateway = gateway or PersistenceGateway(db, tracked_team_id=self.tracked_team_id)

    async def close(self) -> None:
        """Release the HTTP client."""
        await self.client.close()

    # ========================================================================
    # Full sync run
    # ========================================================================

    async def sync_matches(self, full_rescan: bool = False) -> Dict[str, int]:
        """
        Run one sync cycle.

        Args:
            full_rescan: Ignore stored conditional tokens and also backfill
                persisted tracked-team matches still lacking replay data

        Returns:
            Dict with upcoming_count, recent_count, replays_queued, error_count
        """
        results = {
            "upcoming_count": 0,
            "recent_count": 0,
            "replays_queued": 0,
            "error_count": 0,
        }

        with correlation_scope("sync"):
            start_time = datetime.utcnow()
            logger.info(f"Starting match sync (full_rescan={full_rescan})")

            upcoming_token: Optional[str] = None
            recent_token: Optional[str] = None
            if not full_rescan:
                upcoming_token = self.gateway.get_last_modified(UPCOMING_ENDPOINT)
                recent_token = self.gateway.get_last_modified(RECENT_ENDPOINT)

            results["upcoming_count"] = await self._sync_upcoming(upcoming_token, results)
            recent_matches = await self._sync_recent(recent_token, results)
            results["recent_count"] = len(recent_matches)

            backlog = self._replay_candidates(recent_matches, full_rescan, results)
            if backlog and self.client.rate_budget.is_low:
                logger.warning(
                    f"Rate budget low ({self.client.rate_budget.remaining} remaining) "
                    f"with {len(backlog)} replays to fetch"
                )

            for match_id in backlog:
                try:
                    outcome = await self.sync_match_replay(match_id)
                except Exception as e:
                    logger.error(f"Replay backfill failed for {match_id}: {e}", exc_info=True)
                    results["error_count"] += 1
                    continue
                results["replays_queued"] += 1
                if not outcome["success"]:
                    results["error_count"] += 1

            duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            logger.info(
                f"Match sync complete: {results['upcoming_count']} upcoming, "
                f"{results['recent_count']} recent, {results['replays_queued']} replays, "
                f"{results['error_count']} errors in {duration_ms}ms"
            )

        return results

    async def _sync_upcoming(self, token: Optional[str], results: Dict[str, int]) -> int:
        try:
            listing = await self.client.get_upcoming_matches(conditional_token=token)
        except Exception as e:
            logger.error(f"Upcoming matches poll failed: {e}")
            self.gateway.record_sync_attempt(UPCOMING_ENDPOINT, 0, error=str(e))
            results["error_count"] += 1
            return 0

        if listing.was_unchanged:
            self.gateway.record_sync_attempt(UPCOMING_ENDPOINT, 304, last_modified=listing.new_token)
            return 0

        results["error_count"] += listing.skipped
        tracked = filter_tracked_team_matches(listing.records, self.tracked_team_id)
        upserted = self._upsert_matches(tracked, results)
        self.gateway.record_sync_attempt(
            UPCOMING_ENDPOINT,
            200,
            last_modified=listing.new_token,
            matches_found=len(listing.records) + listing.skipped,
            matches_new=upserted,
        )
        return len(tracked)

    async def _sync_recent(self, token: Optional[str], results: Dict[str, int]) -> List[ApiMatch]:
        try:
            listing = await self.client.get_recent_matches(conditional_token=token)
        except Exception as e:
            logger.error(f"Recent matches poll failed: {e}")
            self.gateway.record_sync_attempt(RECENT_ENDPOINT, 0, error=str(e))
            results["error_count"] += 1
            return []

        if listing.was_unchanged:
            self.gateway.record_sync_attempt(RECENT_ENDPOINT, 304, last_modified=listing.new_token)
            return []

        results["error_count"] += listing.skipped
        upserted = self._upsert_matches(listing.records, results)
        self.gateway.record_sync_attempt(
            RECENT_ENDPOINT,
            200,
            last_modified=listing.new_token,
            matches_found=len(listing.records) + listing.skipped,
            matches_new=upserted,
        )
        return listing.records

    def _upsert_matches(self, matches: List[ApiMatch], results: Dict[str, int]) -> int:
        upserted = self.gateway.upsert_matches(matches)
        results["error_count"] += len(matches) - upserted
        return upserted

    def _replay_candidates(self, recent: List[ApiMatch], full_rescan: bool, results: Dict[str, int]) -> List[str]:
        """Match IDs needing replay data, recent listing first, then the stored backlog."""
        candidates: List[str] = []
        try:
            for match in filter_tracked_team_matches(recent, self.tracked_team_id):
                if match.status == "COMPLETED" and not self.gateway.is_replay_fetched(match.id):
                    candidates.append(match.id)

            if full_rescan:
                for match in self.gateway.find_replay_backlog(self.tracked_team_id):
                    if match.id not in candidates:
                        candidates.append(match.id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to build replay backlog: {e}")
            results["error_count"] += 1

        return candidates

    # ========================================================================
    # Single replay
    # ========================================================================

    async def sync_match_replay(self, match_id: str) -> Dict[str, bool]:
        """
        Fetch and persist replay data for one match.

        Returns:
            Dict with ``success`` and ``was_unchanged``
        """
        endpoint = replay_endpoint(match_id)

        with correlation_scope("replay"):
            try:
                token = self.gateway.get_last_modified(endpoint)
                detail = await self.client.fetch_detail(match_id, conditional_token=token)
            except Exception as e:
                logger.error(f"Replay fetch failed for {match_id}: {e}")
                self.gateway.record_sync_attempt(endpoint, 0, error=str(e))
                return {"success": False, "was_unchanged": False}

            if detail.was_unchanged:
                self.gateway.record_sync_attempt(endpoint, 304, last_modified=detail.new_token)
                return {"success": True, "was_unchanged": True}

            counts = self.gateway.persist_match_detail(match_id, detail.data)
            if not counts["match_persisted"]:
                # No token stored, so the next attempt fetches again
                self.gateway.record_sync_attempt(
                    endpoint, 0, matches_found=1, error="failed to persist match"
                )
                return {"success": False, "was_unchanged": False}

            if counts["failed_batches"]:
                # Partial write: keep the token out so the retry gets full data
                self.gateway.record_sync_attempt(
                    endpoint,
                    0,
                    matches_found=1,
                    matches_new=1,
                    error=f"{counts['failed_batches']} batches failed",
                )
                return {"success": False, "was_unchanged": False}

            self.gateway.record_sync_attempt(
                endpoint, 200, last_modified=detail.new_token, matches_found=1, matches_new=1
            )
            return {"success": True, "was_unchanged": False}

    # ========================================================================
    # Status
    # ========================================================================

    def get_sync_status(self, limit: int = 20) -> Dict:
        """Rate budget, newest poll per listing and the recent audit trail."""
        rate_limit = self.client.get_rate_budget_status()
        latest = self.gateway.sync_log.latest_per_endpoint([UPCOMING_ENDPOINT, RECENT_ENDPOINT])

        return {
            "rate_limit": rate_limit,
            "degraded": rate_limit["is_low"],
            "tracked_team_id": self.tracked_team_id,
            "last_polls": {
                endpoint: {
                    "fetched_at": row.fetched_at.isoformat() if row.fetched_at else None,
                    "http_status": row.http_status,
                    "error": row.error,
                }
                for endpoint, row in latest.items()
            },
            "recent_log": self.gateway.recent_sync_log(limit),
        }
