"""
Repository pattern for data access.

Repositories wrap a SQLAlchemy session and expose conflict-aware writes.
They never commit; ``PersistenceGateway`` owns the transaction boundaries.

Usage:
    from shockball_analytics.repositories import MatchRepository

    repo = MatchRepository(db)
    backlog = repo.find_replay_backlog(limit=10)
"""
from shockball_analytics.repositories.base import BaseRepository, iter_batches
from shockball_analytics.repositories.team_repository import TeamRepository
from shockball_analytics.repositories.match_repository import MatchRepository
from shockball_analytics.repositories.replay_repository import (
    PlayerMatchStatRepository,
    MatchEventRepository,
    EnergySnapshotRepository,
)
from shockball_analytics.repositories.sync_log_repository import SyncLogRepository

__all__ = [
    "BaseRepository",
    "iter_batches",
    "TeamRepository",
    "MatchRepository",
    "PlayerMatchStatRepository",
    "MatchEventRepository",
    "EnergySnapshotRepository",
    "SyncLogRepository",
]
