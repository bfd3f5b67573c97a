"""
Pydantic models for Shockball API payloads.

Field names are snake_case in Python and camelCase on the wire. Event
``context`` is kept as the raw dict: its shape varies by event type and it
is stored verbatim in ``match_events.context``. Match ``status`` is kept as
sent; the ``ck_matches_status`` constraint rejects unknown values per row.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CompetitionType = Literal["ALL", "FRIENDLY", "DIVISION", "CONFERENCE", "LEAGUE"]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ApiTeam(ApiModel):
    id: str
    name: str
    image_url: Optional[str] = None
    venue: Optional[str] = None


class ApiCompetition(ApiModel):
    id: str
    name: str
    type: str
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    season: Optional[int] = None


class ApiConference(ApiModel):
    id: str
    name: str


class ApiLeague(ApiModel):
    id: str
    name: str


class ApiMatch(ApiModel):
    """Match summary as returned by the upcoming/recent listings."""
    id: str
    scheduled_time: datetime
    status: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    home_team: ApiTeam
    away_team: ApiTeam
    competition: Optional[ApiCompetition] = None
    conference: Optional[ApiConference] = None
    league: Optional[ApiLeague] = None

    def involves_team(self, team_id: str) -> bool:
        return team_id in (self.home_team.id, self.away_team.id)


class ApiListMeta(ApiModel):
    total: int = 0
    limit: int = 0
    offset: int = 0
    has_more: bool = False


class ApiMatchListResponse(ApiModel):
    """One listing page. Matches stay raw so each is validated on its own."""
    matches: List[Dict[str, Any]] = Field(default_factory=list)
    meta: ApiListMeta = Field(default_factory=ApiListMeta)


class ApiPlayerStats(ApiModel):
    player_id: str
    player_name: str
    shots: int = 0
    goals: int = 0
    passes: int = 0
    tackles: int = 0
    blocks: int = 0
    fouls: int = 0
    was_injured: bool = False


class ApiGameEvent(ApiModel):
    """
    One replay event.

    MATCH_START carries ``context.initialEnergy`` and TURN_UPDATE carries
    ``context.turnEnergy``, both keyed by player ID.
    """
    turn: int
    type: str
    description: Optional[str] = None
    players_involved: List[str] = Field(default_factory=list)
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    context: Optional[Dict[str, Any]] = None


class ApiReplayMatch(ApiModel):
    id: str
    home_team: ApiTeam
    away_team: ApiTeam
    home_score: int
    away_score: int
    scheduled_time: datetime
    sim_version: Optional[str] = None


class ApiReplayPlayerStats(ApiModel):
    home: List[ApiPlayerStats] = Field(default_factory=list)
    away: List[ApiPlayerStats] = Field(default_factory=list)


class ApiReplayPayload(ApiModel):
    match: ApiReplayMatch
    player_stats: ApiReplayPlayerStats = Field(default_factory=ApiReplayPlayerStats)
    events: List[ApiGameEvent] = Field(default_factory=list)


class ApiReplayData(ApiModel):
    """Full replay payload for one completed match."""
    success: bool = True
    data: ApiReplayPayload
    timestamp: Optional[str] = None
