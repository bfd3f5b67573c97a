"""
Match repository.

Two write paths touch ``matches``:
- listing polls refresh the summary (schedule, status, scores, references)
  and never touch ``replay_fetched`` or ``sim_version``
- replay persistence marks the match COMPLETED with final scores,
  ``replay_fetched=True`` and the simulator version, and clears the flag
  again when some replay rows could not be written

Callers must upsert both teams (and any competition/conference/league)
before either write; see ``PersistenceGateway.upsert_match``.
"""
from datetime import datetime
from typing import List

from sqlalchemy import or_, select, update

from shockball_analytics.models import ApiMatch, ApiReplayMatch, Match
from shockball_analytics.repositories.base import BaseRepository

# Columns a listing poll may overwrite on an existing match
SUMMARY_UPDATE_COLUMNS = [
    "scheduled_time",
    "status",
    "home_team_id",
    "away_team_id",
    "home_score",
    "away_score",
    "competition_id",
    "conference_id",
    "league_id",
    "involves_tracked_team",
    "updated_at",
]

# Columns the replay write may overwrite on an existing match
REPLAY_UPDATE_COLUMNS = [
    "status",
    "home_score",
    "away_score",
    "sim_version",
    "replay_fetched",
    "updated_at",
]


class MatchRepository(BaseRepository[Match]):
    """Repository for match rows."""

    def __init__(self, db):
        super().__init__(Match, db)

    def upsert_summary(self, match: ApiMatch, tracked_team_id: str) -> None:
        """Insert or refresh a match from a listing payload."""
        self.upsert(
            [{
                "id": match.id,
                "scheduled_time": match.scheduled_time,
                "status": match.status,
                "home_team_id": match.home_team.id,
                "away_team_id": match.away_team.id,
                "home_score": match.home_score,
                "away_score": match.away_score,
                "competition_id": match.competition.id if match.competition else None,
                "conference_id": match.conference.id if match.conference else None,
                "league_id": match.league.id if match.league else None,
                "involves_tracked_team": match.involves_team(tracked_team_id),
                "updated_at": datetime.utcnow(),
            }],
            conflict_columns=["id"],
            update_columns=SUMMARY_UPDATE_COLUMNS,
        )

    def mark_replay_fetched(self, match_id: str, replay_match: ApiReplayMatch, tracked_team_id: str) -> None:
        """
        Record that replay data for ``match_id`` has been persisted.

        Creates the match when it was never seen in a listing (manual
        backfill of an old match).
        """
        self.upsert(
            [{
                "id": match_id,
                "scheduled_time": replay_match.scheduled_time,
                "status": "COMPLETED",
                "home_team_id": replay_match.home_team.id,
                "away_team_id": replay_match.away_team.id,
                "home_score": replay_match.home_score,
                "away_score": replay_match.away_score,
                "sim_version": replay_match.sim_version,
                "involves_tracked_team": tracked_team_id in (
                    replay_match.home_team.id, replay_match.away_team.id
                ),
                "replay_fetched": True,
                "updated_at": datetime.utcnow(),
            }],
            conflict_columns=["id"],
            update_columns=REPLAY_UPDATE_COLUMNS,
        )

    def clear_replay_fetched(self, match_id: str) -> None:
        """Put the match back in the replay backlog."""
        self.db.execute(
            update(Match)
            .where(Match.id == match_id)
            .values(replay_fetched=False, updated_at=datetime.utcnow())
        )

    def is_replay_fetched(self, match_id: str) -> bool:
        """True once replay data has been persisted for the match; False if unknown."""
        fetched = self.db.execute(
            select(Match.replay_fetched).where(Match.id == match_id)
        ).scalar_one_or_none()
        return bool(fetched)

    def find_replay_backlog(self, team_id: str, limit: int = 10) -> List[Match]:
        """Completed matches of ``team_id`` still missing replay data, oldest first."""
        return self.db.query(Match).filter(
            or_(Match.home_team_id == team_id, Match.away_team_id == team_id),
            Match.status == "COMPLETED",
            Match.replay_fetched.is_(False),
        ).order_by(Match.scheduled_time).limit(limit).all()

