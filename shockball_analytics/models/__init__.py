"""
Models for the Shockball analytics store.

Usage:
    from shockball_analytics.models import Match, SyncLog

- ``models``: SQLAlchemy tables written by the sync worker
- ``schemas``: pydantic models for Shockball API payloads
"""
from shockball_analytics.models.models import (
    Base,
    Team,
    Competition,
    Conference,
    League,
    Match,
    PlayerMatchStat,
    MatchEvent,
    EnergySnapshot,
    SyncLog,
)
from shockball_analytics.models.schemas import (
    ApiTeam,
    ApiCompetition,
    ApiConference,
    ApiLeague,
    ApiMatch,
    ApiMatchListResponse,
    ApiPlayerStats,
    ApiGameEvent,
    ApiReplayMatch,
    ApiReplayData,
)

__all__ = [
    "Base",
    "Team",
    "Competition",
    "Conference",
    "League",
    "Match",
    "PlayerMatchStat",
    "MatchEvent",
    "EnergySnapshot",
    "SyncLog",
    "ApiTeam",
    "ApiCompetition",
    "ApiConference",
    "ApiLeague",
    "ApiMatch",
    "ApiMatchListResponse",
    "ApiPlayerStats",
    "ApiGameEvent",
    "ApiReplayMatch",
    "ApiReplayData",
]
