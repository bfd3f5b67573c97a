"""
Repositories for replay-derived tables.

- ``player_match_stats``: upserted on (match_id, player_id) so a re-fetch
  refreshes the numbers
- ``match_events``: insert-or-ignore on (match_id, turn, type)
- ``energy_snapshots``: insert-or-ignore on (match_id, player_id, turn)
"""
from typing import Any, Dict, Sequence

from shockball_analytics.models import EnergySnapshot, MatchEvent, PlayerMatchStat
from shockball_analytics.repositories.base import BaseRepository


class PlayerMatchStatRepository(BaseRepository[PlayerMatchStat]):

    def __init__(self, db):
        super().__init__(PlayerMatchStat, db)

    def upsert_stats(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self.upsert(rows, conflict_columns=["match_id", "player_id"])


class MatchEventRepository(BaseRepository[MatchEvent]):

    def __init__(self, db):
        super().__init__(MatchEvent, db)

    def insert_events(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self.insert_ignore(rows, conflict_columns=["match_id", "turn", "type"])


class EnergySnapshotRepository(BaseRepository[EnergySnapshot]):

    def __init__(self, db):
        super().__init__(EnergySnapshot, db)

    def insert_snapshots(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self.insert_ignore(rows, conflict_columns=["match_id", "player_id", "turn"])

