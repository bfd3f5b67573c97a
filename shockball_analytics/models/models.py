"""
Database models for the Shockball analytics store.

The sync worker is the only writer. Natural keys from the upstream API are
used as primary keys for reference entities and matches; child tables carry
unique constraints matching the ON CONFLICT targets used by the
repositories.
"""
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Float, Integer, DateTime, ForeignKey, Boolean, Text, Index,
    UniqueConstraint, CheckConstraint, JSON,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()

MATCH_STATUSES = ("SCHEDULED", "IN_PROGRESS", "COMPLETED")
COMPETITION_TYPES = ("FRIENDLY", "DIVISION", "CONFERENCE", "LEAGUE")


def _uuid() -> str:
    return str(uuid.uuid4())


def _in_clause(column: str, values) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# =============================================================================
# REFERENCE TABLES
# =============================================================================

class Team(Base):
    """Shockball team. Upserted on every sighting, never deleted."""
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True)  # Shockball team ID
    name = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=True)
    venue = Column(String(255), nullable=True)
    is_tracked_team = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Competition(Base):
    """Competition a match belongs to (friendly, division, conference, league)."""
    __tablename__ = "competitions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    status = Column(String(32), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    season = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            _in_clause("type", COMPETITION_TYPES),
            name="ck_competitions_type",
        ),
    )


class Conference(Base):
    __tablename__ = "conferences"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class League(Base):
    __tablename__ = "leagues"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# =============================================================================
# MATCHES
# =============================================================================

class Match(Base):
    """
    A fixture between two teams.

    ``replay_fetched`` flips to True once detail data has been persisted;
    list polls never reset it.
    """
    __tablename__ = "matches"

    id = Column(String(64), primary_key=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(16), nullable=False, index=True)  # SCHEDULED, IN_PROGRESS, COMPLETED
    home_team_id = Column(String(64), ForeignKey("teams.id"), nullable=False, index=True)
    away_team_id = Column(String(64), ForeignKey("teams.id"), nullable=False, index=True)
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    competition_id = Column(String(64), ForeignKey("competitions.id"), nullable=True)
    conference_id = Column(String(64), ForeignKey("conferences.id"), nullable=True)
    league_id = Column(String(64), ForeignKey("leagues.id"), nullable=True)
    sim_version = Column(String(16), nullable=True)  # 'v1' or 'v2'
    involves_tracked_team = Column(Boolean, nullable=False, default=False, index=True)
    replay_fetched = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    home_team = relationship("Team", foreign_keys=[home_team_id])
    away_team = relationship("Team", foreign_keys=[away_team_id])
    competition = relationship("Competition")
    player_stats = relationship("PlayerMatchStat", back_populates="match", passive_deletes=True)
    events = relationship("MatchEvent", back_populates="match", passive_deletes=True)
    energy_snapshots = relationship("EnergySnapshot", back_populates="match", passive_deletes=True)

    __table_args__ = (
        CheckConstraint(
            _in_clause("status", MATCH_STATUSES),
            name="ck_matches_status",
        ),
    )


# =============================================================================
# REPLAY-DERIVED TABLES
# =============================================================================

class PlayerMatchStat(Base):
    """One row per player per match, with conversion and foul rates computed at ingestion."""
    __tablename__ = "player_match_stats"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(64), nullable=False, index=True)
    player_name = Column(String(255), nullable=False)
    team_id = Column(String(64), ForeignKey("teams.id"), nullable=False, index=True)
    is_home_team = Column(Boolean, nullable=False)
    shots = Column(Integer, nullable=False, default=0)
    goals = Column(Integer, nullable=False, default=0)
    passes = Column(Integer, nullable=False, default=0)
    tackles = Column(Integer, nullable=False, default=0)
    blocks = Column(Integer, nullable=False, default=0)
    fouls = Column(Integer, nullable=False, default=0)
    was_injured = Column(Boolean, nullable=False, default=False)
    shot_conversion_rate = Column(Float, nullable=True)  # goals / shots, NULL when shots = 0
    foul_rate = Column(Float, nullable=True)  # fouls / tackles, NULL when tackles = 0
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    match = relationship("Match", back_populates="player_stats")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_player_match_stats_match_player"),
    )


class MatchEvent(Base):
    """Turn-by-turn event log from replay data. Deduplicated on (match, turn, type)."""
    __tablename__ = "match_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    turn = Column(Integer, nullable=False)
    type = Column(String(32), nullable=False, index=True)  # GOAL, TACKLE, PASS, TURN_UPDATE, ...
    description = Column(Text, nullable=True)
    players_involved = Column(JSON, nullable=True)  # list of player IDs
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    context = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    match = relationship("Match", back_populates="events")

    __table_args__ = (
        UniqueConstraint("match_id", "turn", "type", name="uq_match_events_match_turn_type"),
        Index("ix_match_events_match_turn", "match_id", "turn"),
    )


class EnergySnapshot(Base):
    """
    Per-player energy reading for one turn.

    ``penalty_tier`` and ``penalty_magnitude`` are written from
    ``services.energy`` so stored and query-time values agree.
    """
    __tablename__ = "energy_snapshots"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(64), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(String(64), nullable=False, index=True)
    turn = Column(Integer, nullable=False)
    energy = Column(Integer, nullable=False)
    penalty_tier = Column(String(10), nullable=False, index=True)  # none, moderate, severe
    penalty_magnitude = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    match = relationship("Match", back_populates="energy_snapshots")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", "turn", name="uq_energy_snapshots_match_player_turn"),
        CheckConstraint("energy >= 0 AND energy <= 100", name="ck_energy_snapshots_energy_range"),
        Index("ix_energy_snapshots_match_player", "match_id", "player_id"),
    )


# =============================================================================
# SYNC AUDIT LOG
# =============================================================================

class SyncLog(Base):
    """
    Append-only audit record of every poll or replay fetch.

    The newest 200 row per endpoint supplies the next If-Modified-Since
    token. ``http_status`` is 0 when the attempt failed before a usable
    response.
    """
    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(100), nullable=False)  # upcoming, recent, replay:{match_id}
    fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_modified = Column(String(64), nullable=True)
    http_status = Column(Integer, nullable=True)
    matches_found = Column(Integer, nullable=False, default=0)
    matches_new = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sync_log_endpoint_fetched", "endpoint", "fetched_at"),
    )
