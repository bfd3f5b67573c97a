"""
Energy time-series extraction and fatigue penalty formulas.

Replay events carry energy in two shapes:
- MATCH_START: ``context.initialEnergy`` maps every player to their
  starting energy (recorded as turn 0)
- TURN_UPDATE: ``context.turnEnergy`` maps a subset of players to their
  energy at that event's turn

Penalty tiers follow the game's rules:
    energy >= 30        -> none,     magnitude 0
    10 <= energy < 30   -> moderate, magnitude (30 - energy) * 0.5
    energy < 10         -> severe,   magnitude (10 - energy) * 1.5 + 10

These functions are the single definition used both when snapshots are
written and when they are analysed, so stored and computed values agree.
"""
from typing import Dict, Iterable, List, NamedTuple, Optional

from shockball_analytics.models.schemas import ApiGameEvent

MODERATE_PENALTY_THRESHOLD = 30
AUTO_SUB_THRESHOLD = 20
SEVERE_PENALTY_THRESHOLD = 10


class EnergyReading(NamedTuple):
    player_id: str
    turn: int
    energy: float


def penalty_tier(energy: float) -> str:
    """Penalty tier for an energy value: ``none``, ``moderate`` or ``severe``."""
    if energy >= MODERATE_PENALTY_THRESHOLD:
        return "none"
    if energy >= SEVERE_PENALTY_THRESHOLD:
        return "moderate"
    return "severe"


def penalty_magnitude(energy: float) -> float:
    """Penalty magnitude for an energy value (0 when no penalty applies)."""
    if energy >= MODERATE_PENALTY_THRESHOLD:
        return 0.0
    if energy >= SEVERE_PENALTY_THRESHOLD:
        return (MODERATE_PENALTY_THRESHOLD - energy) * 0.5
    return (SEVERE_PENALTY_THRESHOLD - energy) * 1.5 + 10


def extract_energy_readings(events: Iterable[ApiGameEvent]) -> List[EnergyReading]:
    """
    Flatten replay events into (player, turn, energy) readings.

    Pure and order-preserving. Energy bounds are not checked here; the
    ``energy_snapshots`` table rejects out-of-range values.
    """
    readings: List[EnergyReading] = []

    for event in events:
        context = event.context or {}

        initial = context.get("initialEnergy")
        if initial:
            for player_id, energy in initial.items():
                readings.append(EnergyReading(player_id, 0, energy))

        per_turn = context.get("turnEnergy")
        if per_turn:
            for player_id, energy in per_turn.items():
                readings.append(EnergyReading(player_id, event.turn, energy))

    return readings


def build_snapshot_rows(match_id: str, readings: Iterable[EnergyReading]) -> List[Dict]:
    """Turn readings into ``energy_snapshots`` rows with penalty fields filled in."""
    return [
        {
            "match_id": match_id,
            "player_id": reading.player_id,
            "turn": reading.turn,
            "energy": reading.energy,
            "penalty_tier": penalty_tier(reading.energy),
            "penalty_magnitude": penalty_magnitude(reading.energy),
        }
        for reading in readings
    ]


def _first_turn_below(readings: List[EnergyReading], threshold: float) -> Optional[int]:
    turns = [r.turn for r in readings if r.energy < threshold]
    return min(turns) if turns else None


def energy_thresholds(readings: Iterable[EnergyReading]) -> Dict[str, Dict]:
    """
    Summarise one match's readings per player.

    Returns a mapping of player ID to the first turn energy dropped below
    30 (moderate penalty), 20 (auto-substitution) and 10 (severe penalty),
    the minimum energy reached, the last tracked turn, and the average
    penalty magnitude rounded to two places.
    """
    by_player: Dict[str, List[EnergyReading]] = {}
    for reading in readings:
        by_player.setdefault(reading.player_id, []).append(reading)

    summary = {}
    for player_id, player_readings in by_player.items():
        magnitudes = [penalty_magnitude(r.energy) for r in player_readings]
        summary[player_id] = {
            "first_turn_below_30": _first_turn_below(player_readings, MODERATE_PENALTY_THRESHOLD),
            "first_turn_below_20": _first_turn_below(player_readings, AUTO_SUB_THRESHOLD),
            "first_turn_below_10": _first_turn_below(player_readings, SEVERE_PENALTY_THRESHOLD),
            "min_energy_reached": min(r.energy for r in player_readings),
            "last_turn_tracked": max(r.turn for r in player_readings),
            "avg_penalty_magnitude": round(sum(magnitudes) / len(magnitudes), 2),
        }

    return summary


def extract_energy_snapshots(match_id: str, events: Iterable[ApiGameEvent]) -> List[Dict]:
    """Snapshot rows for every energy reading carried by a match's events."""
    return build_snapshot_rows(match_id, extract_energy_readings(events))
