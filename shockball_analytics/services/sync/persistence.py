"""
Persistence gateway for the sync worker.

Owns every transaction boundary the sync layer needs:
- match summaries are written as one unit (teams, references, match)
- replay data is written as a match update followed by independently
  committed batches of player stats, events and energy snapshots
- audit rows are appended one at a time

Write failures never propagate. They are rolled back, logged with the
entity and key involved, counted in Prometheus, and reported through the
return value so the orchestrator can keep going.
"""
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shockball_analytics.core import metrics
from shockball_analytics.core.config import settings
from shockball_analytics.core.logging import get_logger
from shockball_analytics.models import ApiMatch, ApiPlayerStats, ApiReplayData, Match
from shockball_analytics.repositories import (
    EnergySnapshotRepository,
    MatchEventRepository,
    MatchRepository,
    PlayerMatchStatRepository,
    SyncLogRepository,
    TeamRepository,
    iter_batches,
)
from shockball_analytics.services.energy import extract_energy_snapshots

logger = get_logger(__name__)


def goal_conversion_rate(goals: int, shots: int) -> Optional[float]:
    """Goals per shot, or None when the player took no shots."""
    if not shots:
        return None
    return goals / shots


def foul_rate(fouls: int, tackles: int) -> Optional[float]:
    """Fouls per tackle, or None when the player made no tackles."""
    if not tackles:
        return None
    return fouls / tackles


class PersistenceGateway:
    """
    Conflict-aware writes for matches, replay data and the sync audit log.

    Args:
        db: SQLAlchemy session; the gateway commits and rolls it back
        tracked_team_id: Team whose matches are flagged ``involves_tracked_team``
        batch_size: Rows per committed batch for replay tables
    """

    def __init__(self, db: Session, tracked_team_id: Optional[str] = None, batch_size: Optional[int] = None):
        self.db = db
        self.tracked_team_id = tracked_team_id or settings.TRACKED_TEAM_ID
        self.batch_size = batch_size or settings.PERSIST_BATCH_SIZE

        self.teams = TeamRepository(db)
        self.matches = MatchRepository(db)
        self.player_stats = PlayerMatchStatRepository(db)
        self.events = MatchEventRepository(db)
        self.energy = EnergySnapshotRepository(db)
        self.sync_log = SyncLogRepository(db)

    def _fail(self, entity: str, key: str, error: Exception) -> None:
        self.db.rollback()
        metrics.record_persistence_failure(entity)
        logger.error(
            f"Failed to persist {entity} {key}: {error}",
            extra={"entity": entity, "key": key},
        )

    # ========================================================================
    # Reference entities and match summaries
    # ========================================================================

    def upsert_team(self, team) -> None:
        self.teams.upsert_team(team, self.tracked_team_id)

    def upsert_competition(self, competition) -> None:
        self.teams.upsert_competition(competition)

    def upsert_conference(self, conference) -> None:
        self.teams.upsert_conference(conference)

    def upsert_league(self, league) -> None:
        self.teams.upsert_league(league)

    def upsert_match(self, match: ApiMatch) -> bool:
        """
        Write a match summary and everything it references in one transaction.

        Teams first, then competition/conference/league, then the match row,
        so foreign keys are always satisfied.

        Returns:
            True on success, False if the write was rolled back
        """
        try:
            self.upsert_team(match.home_team)
            self.upsert_team(match.away_team)
            if match.competition:
                self.upsert_competition(match.competition)
            if match.conference:
                self.upsert_conference(match.conference)
            if match.league:
                self.upsert_league(match.league)
            self.matches.upsert_summary(match, self.tracked_team_id)
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self._fail("match", match.id, e)
            return False

    def upsert_matches(self, matches: List[ApiMatch]) -> int:
        """Upsert each match independently; returns how many succeeded."""
        return sum(1 for match in matches if self.upsert_match(match))

    # ========================================================================
    # Replay data
    # ========================================================================

    def _stat_rows(self, match_id: str, replay: ApiReplayData) -> List[Dict]:
        payload = replay.data
        sides = (
            (payload.player_stats.home, payload.match.home_team.id, True),
            (payload.player_stats.away, payload.match.away_team.id, False),
        )

        # Keyed by player so a repeated entry cannot hit the same row twice in one statement
        rows: Dict[str, Dict] = {}
        for stats, team_id, is_home in sides:
            for player in stats:
                rows[player.player_id] = self._stat_row(match_id, player, team_id, is_home)
        return list(rows.values())

    @staticmethod
    def _stat_row(match_id: str, player: ApiPlayerStats, team_id: str, is_home: bool) -> Dict:
        return {
            "match_id": match_id,
            "player_id": player.player_id,
            "player_name": player.player_name,
            "team_id": team_id,
            "is_home_team": is_home,
            "shots": player.shots,
            "goals": player.goals,
            "passes": player.passes,
            "tackles": player.tackles,
            "blocks": player.blocks,
            "fouls": player.fouls,
            "was_injured": player.was_injured,
            "shot_conversion_rate": goal_conversion_rate(player.goals, player.shots),
            "foul_rate": foul_rate(player.fouls, player.tackles),
        }

    @staticmethod
    def _event_rows(match_id: str, replay: ApiReplayData) -> List[Dict]:
        return [
            {
                "match_id": match_id,
                "turn": event.turn,
                "type": event.type,
                "description": event.description,
                "players_involved": event.players_involved,
                "home_score": event.home_score,
                "away_score": event.away_score,
                "context": event.context,
            }
            for event in replay.data.events
        ]

    def _write_batches(self, entity: str, match_id: str, rows: List[Dict], write) -> Dict[str, int]:
        written = 0
        failed = 0
        for index, batch in enumerate(iter_batches(rows, self.batch_size)):
            try:
                write(batch)
                self.db.commit()
                written += len(batch)
            except SQLAlchemyError as e:
                self._fail(entity, f"{match_id} batch {index}", e)
                failed += 1
        return {"written": written, "failed": failed}

    def persist_match_detail(self, match_id: str, replay: ApiReplayData) -> Dict:
        """
        Persist a match's replay data.

        Steps:
            1. Upsert both teams and mark the match COMPLETED with final
               scores, ``replay_fetched=True`` and the simulator version
            2. Upsert player stats for both sides with derived rates
            3. Insert events in batches, ignoring duplicates
            4. Extract energy snapshots and insert in batches, ignoring duplicates

        Each batch commits on its own; a failing batch is rolled back and
        skipped. If step 1 fails the remaining steps are skipped, since
        every child row references the match.
        When any later batch fails the match goes back to
        ``replay_fetched=False`` so the next run fetches it again.

        Returns:
            Dict with ``match_persisted`` and per-table written/failed counts
        """
        counts = {
            "match_persisted": False,
            "player_stats": 0,
            "events": 0,
            "energy_snapshots": 0,
            "failed_batches": 0,
        }
        replay_match = replay.data.match

        try:
            self.upsert_team(replay_match.home_team)
            self.upsert_team(replay_match.away_team)
            self.matches.mark_replay_fetched(match_id, replay_match, self.tracked_team_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("match", match_id, e)
            counts["failed_batches"] += 1
            return counts

        counts["match_persisted"] = True

        steps = (
            ("player_stats", self._stat_rows(match_id, replay), self.player_stats.upsert_stats),
            ("events", self._event_rows(match_id, replay), self.events.insert_events),
            ("energy_snapshots", extract_energy_snapshots(match_id, replay.data.events), self.energy.insert_snapshots),
        )
        for entity, rows, write in steps:
            result = self._write_batches(entity, match_id, rows, write)
            counts[entity] = result["written"]
            counts["failed_batches"] += result["failed"]

        if counts["failed_batches"]:
            self._reopen_replay(match_id)

        logger.info(
            f"Persisted replay for {match_id}: {counts['player_stats']} player stats, "
            f"{counts['events']} events, {counts['energy_snapshots']} energy snapshots"
        )
        return counts

    def _reopen_replay(self, match_id: str) -> None:
        try:
            self.matches.clear_replay_fetched(match_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("match", match_id, e)

    # ========================================================================
    # Sync audit log and lookups
    # ========================================================================

    def record_sync_attempt(
        self,
        endpoint: str,
        http_status: int,
        last_modified: Optional[str] = None,
        matches_found: int = 0,
        matches_new: int = 0,
        error: Optional[str] = None,
    ) -> None:
        """Append one audit row. A failed audit write is logged, not raised."""
        metrics.record_sync_attempt(endpoint, http_status)
        try:
            self.sync_log.record(
                endpoint=endpoint,
                http_status=http_status,
                last_modified=last_modified,
                matches_found=matches_found,
                matches_new=matches_new,
                error=error,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("sync_log", endpoint, e)

    def get_last_modified(self, endpoint: str) -> Optional[str]:
        try:
            return self.sync_log.get_last_modified(endpoint)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to read sync token for {endpoint}: {e}")
            return None

    def is_replay_fetched(self, match_id: str) -> bool:
        return self.matches.is_replay_fetched(match_id)

    def find_replay_backlog(self, team_id: Optional[str] = None, limit: Optional[int] = None) -> List[Match]:
        return self.matches.find_replay_backlog(
            team_id or self.tracked_team_id,
            limit or settings.REPLAY_BACKLOG_LIMIT,
        )

    def recent_sync_log(self, limit: int = 20) -> List[Dict]:
        """Newest audit rows as plain dicts for admin display."""
        return [
            {
                "endpoint": row.endpoint,
                "fetched_at": row.fetched_at.isoformat() if row.fetched_at else None,
                "http_status": row.http_status,
                "last_modified": row.last_modified,
                "matches_found": row.matches_found,
                "matches_new": row.matches_new,
                "error": row.error,
            }
            for row in self.sync_log.recent(limit)
        ]
