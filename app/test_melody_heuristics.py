"""
Unit Tests for Melody Heuristics and Mix Levels
Run with: pytest test_melody_heuristics.py -v
"""

import math

import pytest

from tick_schema import Direction, TickStats, WindowEntry
from music_theory import ScaleType
from melody_heuristics import (
    auto_duck_multiplier,
    calculate_tick_stats,
    generate_arpeggio,
    is_lateral_movement,
    lateral_percussion_pattern,
    note_duration,
    pad_filter_frequency,
    pad_lfo_rate,
    should_play_percussion,
    tick_character,
    tick_rate,
    velocity_from_magnitude,
)
from mix_levels import (
    SoundMode,
    db_to_linear,
    final_volume_db,
    layer_volumes,
    linear_to_db,
)


class TestVoiceCurves:

    def test_velocity_band(self):
        assert velocity_from_magnitude(0.0) == pytest.approx(0.1)
        assert velocity_from_magnitude(1.0) == pytest.approx(0.8)
        assert velocity_from_magnitude(0.5) == pytest.approx(0.45)
        assert velocity_from_magnitude(3.0) == pytest.approx(0.8)

    def test_note_duration(self):
        assert note_duration(0) == 0.08
        assert note_duration(1) == 0.08
        assert note_duration(50) == pytest.approx(0.045)
        assert note_duration(100) == pytest.approx(0.01)
        assert note_duration(400) == pytest.approx(0.01)

    def test_auto_duck(self):
        assert auto_duck_multiplier(10) == 1.0
        assert auto_duck_multiplier(50) == 1.0
        assert auto_duck_multiplier(100) == pytest.approx(0.65)
        assert auto_duck_multiplier(150) == pytest.approx(0.3)
        assert auto_duck_multiplier(1000) == 0.3

    def test_percussion_on_flip_only(self):
        assert should_play_percussion(Direction.UP, Direction.DOWN)
        assert should_play_percussion(Direction.DOWN, Direction.UP)
        assert not should_play_percussion(Direction.UP, Direction.UP)
        assert not should_play_percussion(Direction.UP, Direction.NEUTRAL)
        assert not should_play_percussion(Direction.NEUTRAL, Direction.DOWN)

    def test_tick_character(self):
        assert tick_character(Direction.UP).brightness == 1.0
        assert tick_character(Direction.DOWN).decay == 0.05
        assert tick_character(Direction.NEUTRAL).attack == 0.01


class TestArpeggioWalk:

    def test_walk_up(self):
        assert generate_arpeggio(60, Direction.UP, ScaleType.PENTATONIC) == [60, 62, 64, 67]

    def test_walk_down(self):
        assert generate_arpeggio(60, Direction.DOWN, ScaleType.PENTATONIC) == [60, 57, 55, 52]

    def test_starts_at_next_scale_note(self):
        assert generate_arpeggio(61, Direction.UP, ScaleType.PENTATONIC) == [62, 64, 67, 69]

    def test_stops_at_band_edge(self):
        walk = generate_arpeggio(60, Direction.DOWN, ScaleType.PENTATONIC, length=10)
        assert walk[-1] == 48
        assert len(walk) == 6


class TestTickStats:

    def test_tick_rate_window(self):
        assert tick_rate([0, 500, 1000, 1999], now=2000) == 1
        assert tick_rate([], now=2000) == 0

    def test_rising_session(self):
        entries = [WindowEntry(price=100.0 + i, timestamp=i * 100.0, direction=Direction.UP) for i in range(10)]
        stats = calculate_tick_stats(entries, now=900.0)
        assert stats.ticks_per_second == 10
        assert stats.average_price == pytest.approx(104.5)
        assert stats.trend_direction == Direction.UP
        assert stats.trend_strength == 1.0
        assert stats.price_volatility > 0
        assert not is_lateral_movement(stats)

    def test_empty_session(self):
        stats = calculate_tick_stats([], now=0.0)
        assert stats.ticks_per_second == 0
        assert stats.average_price == 0.0
        assert stats.trend_direction == Direction.NEUTRAL
        assert is_lateral_movement(stats)

    def test_lateral_when_directions_cancel(self):
        stats = TickStats(
            ticks_per_second=5,
            average_price=100.0,
            price_volatility=0.0,
            trend_direction=Direction.UP,
            trend_strength=0.2,
        )
        assert is_lateral_movement(stats)

    def test_lateral_percussion_pattern(self):
        assert lateral_percussion_pattern(60) == [(0.0, 0.5), (500.0, 0.3), (1000.0, 0.5), (1500.0, 0.3)]

    def test_pad_modulation(self):
        assert pad_filter_frequency(0.0) == 200.0
        assert pad_filter_frequency(0.0005) == pytest.approx(1100.0)
        assert pad_filter_frequency(0.01) == 2000.0
        assert pad_lfo_rate(0.0) == pytest.approx(0.1)
        assert pad_lfo_rate(0.002) == pytest.approx(2.0)


class TestMixLevels:

    def test_presets(self):
        assert layer_volumes(SoundMode.MINIMAL).bass == 0.0
        assert layer_volumes(SoundMode.AMBIENT).pad == 0.7
        assert layer_volumes(SoundMode.FULL).tick == 0.7

    def test_db_conversions(self):
        assert linear_to_db(1.0) == 0.0
        assert linear_to_db(0.0) == -math.inf
        assert db_to_linear(-math.inf) == 0.0
        assert db_to_linear(linear_to_db(0.5)) == pytest.approx(0.5)

    def test_final_volume(self):
        assert final_volume_db(1.0, 1.0) == pytest.approx(0.0)
        assert final_volume_db(0.7, 0.7) == pytest.approx(20 * math.log10(0.49))
        assert final_volume_db(0.7, 0.0) == -math.inf
