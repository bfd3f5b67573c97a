"""
Team and reference-entity repository.

Teams, competitions, conferences and leagues are lightweight reference
rows keyed by their Shockball IDs. They are upserted whenever a match
payload mentions them and are never deleted.

Usage:
    repo = TeamRepository(db)
    repo.upsert_team(match.home_team, tracked_team_id)
    repo.upsert_competition(match.competition)
"""
from datetime import datetime

from shockball_analytics.models import (
    ApiCompetition,
    ApiConference,
    ApiLeague,
    ApiTeam,
    Competition,
    Conference,
    League,
    Team,
)
from shockball_analytics.repositories.base import BaseRepository


class TeamRepository(BaseRepository[Team]):
    """Repository for teams and competition/conference/league reference rows."""

    def __init__(self, db):
        super().__init__(Team, db)

    def upsert_team(self, team: ApiTeam, tracked_team_id: str) -> None:
        """Insert or refresh a team; ``is_tracked_team`` is derived from its ID."""
        self.upsert(
            [{
                "id": team.id,
                "name": team.name,
                "image_url": team.image_url,
                "venue": team.venue,
                "is_tracked_team": team.id == tracked_team_id,
                "updated_at": datetime.utcnow(),
            }],
            conflict_columns=["id"],
        )

    def upsert_competition(self, competition: ApiCompetition) -> None:
        self.upsert(
            [{
                "id": competition.id,
                "name": competition.name,
                "type": competition.type,
                "status": competition.status,
                "start_date": competition.start_date,
                "season": competition.season,
            }],
            conflict_columns=["id"],
            model=Competition,
        )

    def upsert_conference(self, conference: ApiConference) -> None:
        self.upsert(
            [{"id": conference.id, "name": conference.name}],
            conflict_columns=["id"],
            model=Conference,
        )

    def upsert_league(self, league: ApiLeague) -> None:
        self.upsert(
            [{"id": league.id, "name": league.name}],
            conflict_columns=["id"],
            model=League,
        )
