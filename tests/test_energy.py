"""Tests for energy extraction and penalty formulas."""
import pytest

from shockball_analytics.models import ApiGameEvent
from shockball_analytics.services.energy import (
    EnergyReading,
    energy_thresholds,
    extract_energy_readings,
    extract_energy_snapshots,
    penalty_magnitude,
    penalty_tier,
)


class TestPenaltyFormulas:

    @pytest.mark.parametrize(
        "energy,tier,magnitude",
        [
            (100, "none", 0.0),
            (30, "none", 0.0),
            (29, "moderate", 0.5),
            (20, "moderate", 5.0),
            (10, "moderate", 10.0),
            (9, "severe", 11.5),
            (0, "severe", 25.0),
        ],
    )
    def test_tier_and_magnitude(self, energy, tier, magnitude):
        assert penalty_tier(energy) == tier
        assert penalty_magnitude(energy) == magnitude

    def test_magnitude_never_decreases_as_energy_drops(self):
        magnitudes = [penalty_magnitude(e) for e in range(100, -1, -1)]
        assert magnitudes == sorted(magnitudes)


class TestExtraction:

    def _events(self):
        return [
            ApiGameEvent(turn=0, type="MATCH_START", context={"initialEnergy": {"a": 100, "b": 90}}),
            ApiGameEvent(turn=3, type="PASS", players_involved=["a", "b"]),
            ApiGameEvent(turn=4, type="TURN_UPDATE", context={"turnEnergy": {"a": 25}}),
            ApiGameEvent(turn=9, type="TURN_UPDATE", context={"turnEnergy": {"a": 8, "b": 19}}),
        ]

    def test_initial_energy_is_turn_zero_and_updates_use_event_turn(self):
        readings = extract_energy_readings(self._events())

        assert readings == [
            EnergyReading("a", 0, 100),
            EnergyReading("b", 0, 90),
            EnergyReading("a", 4, 25),
            EnergyReading("a", 9, 8),
            EnergyReading("b", 9, 19),
        ]

    def test_events_without_energy_yield_nothing(self):
        events = [ApiGameEvent(turn=1, type="GOAL"), ApiGameEvent(turn=2, type="FOUL", context={"foul": True})]
        assert extract_energy_readings(events) == []

    def test_out_of_range_values_pass_through(self):
        events = [ApiGameEvent(turn=2, type="TURN_UPDATE", context={"turnEnergy": {"a": 140}})]
        assert extract_energy_readings(events) == [EnergyReading("a", 2, 140)]

    def test_snapshot_rows_carry_penalty_fields(self):
        rows = extract_energy_snapshots("m-1", self._events())

        severe = next(r for r in rows if r["player_id"] == "a" and r["turn"] == 9)
        assert severe == {
            "match_id": "m-1",
            "player_id": "a",
            "turn": 9,
            "energy": 8,
            "penalty_tier": "severe",
            "penalty_magnitude": 13.0,
        }
        assert len(rows) == 5


class TestThresholds:

    def test_first_turns_below_each_threshold(self):
        readings = [
            EnergyReading("a", 0, 100),
            EnergyReading("a", 4, 25),
            EnergyReading("a", 9, 8),
            EnergyReading("b", 0, 90),
            EnergyReading("b", 9, 35),
        ]

        summary = energy_thresholds(readings)

        assert summary["a"]["first_turn_below_30"] == 4
        assert summary["a"]["first_turn_below_20"] == 9
        assert summary["a"]["first_turn_below_10"] == 9
        assert summary["a"]["min_energy_reached"] == 8
        assert summary["a"]["last_turn_tracked"] == 9
        # (0 + 2.5 + 13.0) / 3
        assert summary["a"]["avg_penalty_magnitude"] == 5.17

        assert summary["b"]["first_turn_below_30"] is None
        assert summary["b"]["avg_penalty_magnitude"] == 0.0
