# melody_heuristics.py
# Stateless per-tick derivations for the melodic, rhythmic and timbral layers
# Numbers in, numbers out. The orchestrator decides what actually sounds.

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from tick_schema import Direction, TickStats, WindowEntry
from music_theory import ScaleType, scale_notes


@dataclass(frozen=True)
class ToneCharacter:
    """Envelope/brightness hints for the tick voice."""
    attack: float      # seconds
    decay: float       # seconds
    brightness: float  # [0, 1]


TICK_CHARACTERS = {
    Direction.UP: ToneCharacter(attack=0.002, decay=0.03, brightness=1.0),      # Bright bell, snappy
    Direction.DOWN: ToneCharacter(attack=0.005, decay=0.05, brightness=0.6),    # Darker pluck
    Direction.NEUTRAL: ToneCharacter(attack=0.01, decay=0.08, brightness=0.4),  # Soft, ambient
}

TICK_RATE_HORIZON_MS = 1000
STATS_PRICE_SAMPLES = 20
STATS_DIRECTION_SAMPLES = 10
STATS_TREND_HORIZON_MS = 2000
STATS_TREND_NEUTRAL = 0.0001
LATERAL_TREND_STRENGTH = 0.3


def generate_arpeggio(
    base_pitch: int,
    direction: Direction,
    scale: ScaleType,
    length: int = 4,
    root: int = 0,
) -> List[int]:
    """
    Scale-relative walk for trending periods.

    Starts at the first scale note at or above base_pitch and steps one
    degree per note in the given direction, within [base - 12, base + 24].
    The walk stops early at the edge of that band.
    """
    notes_in_band = scale_notes(scale, root, base_pitch - 12, base_pitch + 24)
    start = next((i for i, note in enumerate(notes_in_band) if note >= base_pitch), None)
    if start is None:
        return [base_pitch]

    step = -1 if direction == Direction.DOWN else 1
    walk = []
    for i in range(length):
        index = start + step * i
        if 0 <= index < len(notes_in_band):
            walk.append(notes_in_band[index])
    return walk


def velocity_from_magnitude(magnitude: float, floor: float = 0.1, ceiling: float = 0.8) -> float:
    """Small moves are quiet, saturated moves hit the ceiling."""
    magnitude = min(max(magnitude, 0.0), 1.0)
    return floor + magnitude * (ceiling - floor)


def note_duration(
    tick_rate: float,
    min_duration: float = 0.01,
    max_duration: float = 0.08,
    rate_threshold: float = 100,
) -> float:
    """
    Note length in seconds, shrinking linearly as the tick rate rises.

    At most 1 tick/s gives max_duration; rate_threshold and above give
    min_duration.
    """
    if tick_rate <= 1:
        return max_duration
    ratio = min(tick_rate / rate_threshold, 1.0)
    return max_duration - ratio * (max_duration - min_duration)


def auto_duck_multiplier(
    tick_rate: float,
    threshold: float = 50,
    max_rate: float = 150,
    min_multiplier: float = 0.3,
) -> float:
    """
    Volume multiplier in [min_multiplier, 1] for busy markets.

    Full volume up to `threshold` ticks/s, then a linear ramp down to
    min_multiplier at `max_rate`.
    """
    if tick_rate <= threshold:
        return 1.0
    duck_amount = (tick_rate - threshold) / (max_rate - threshold)
    multiplier = 1.0 - duck_amount * (1.0 - min_multiplier)
    return max(min_multiplier, min(1.0, multiplier))


def should_play_percussion(current: Direction, previous: Direction) -> bool:
    """Hit only on a clean up<->down flip."""
    if current == Direction.NEUTRAL or previous == Direction.NEUTRAL:
        return False
    return current != previous


def tick_rate(timestamps: Sequence[float], now: float, horizon_ms: float = TICK_RATE_HORIZON_MS) -> int:
    """Ticks strictly inside the last horizon_ms."""
    cutoff = now - horizon_ms
    return sum(1 for t in timestamps if t > cutoff)


def calculate_tick_stats(entries: Sequence[WindowEntry], now: float) -> TickStats:
    """
    Activity summary over recent window entries.

    - ticks_per_second: entries in the last second
    - average_price: mean of the last 20 prices
    - price_volatility: std of absolute tick-to-tick returns (last 20)
    - trend_direction: net move over the last 2 seconds
    - trend_strength: |ups - downs| / 10 over the last 10 directions
    """
    timestamps = [e.timestamp for e in entries]
    recent = np.array([e.price for e in entries[-STATS_PRICE_SAMPLES:]], dtype=float)

    average_price = float(recent.mean()) if len(recent) else 0.0

    price_volatility = 0.0
    if len(recent) > 1:
        changes = np.abs(np.diff(recent)) / recent[:-1]
        price_volatility = float(np.std(changes))

    trend_direction = Direction.NEUTRAL
    trend_strength = 0.0
    two_second = [e.price for e in entries if e.timestamp > now - STATS_TREND_HORIZON_MS]
    if len(two_second) >= 2:
        change = (two_second[-1] - two_second[0]) / two_second[0]
        if abs(change) >= STATS_TREND_NEUTRAL:
            trend_direction = Direction.UP if change > 0 else Direction.DOWN

        directions = [e.direction for e in entries[-STATS_DIRECTION_SAMPLES:]]
        ups = sum(1 for d in directions if d == Direction.UP)
        downs = sum(1 for d in directions if d == Direction.DOWN)
        trend_strength = abs(ups - downs) / STATS_DIRECTION_SAMPLES

    return TickStats(
        ticks_per_second=tick_rate(timestamps, now),
        average_price=average_price,
        price_volatility=price_volatility,
        trend_direction=trend_direction,
        trend_strength=trend_strength,
    )


def is_lateral_movement(stats: TickStats) -> bool:
    return stats.trend_direction == Direction.NEUTRAL or stats.trend_strength < LATERAL_TREND_STRENGTH


def lateral_percussion_pattern(bpm: float = 60) -> List[Tuple[float, float]]:
    """
    One bar of soft hi-hat for lateral periods: (offset_ms, velocity) pairs,
    accented on the beat, ghosted on the off-beat.
    """
    beat_ms = 60000.0 / bpm
    return [
        (0.0, 0.5),
        (beat_ms / 2, 0.3),
        (beat_ms, 0.5),
        (beat_ms * 1.5, 0.3),
    ]


def pad_filter_frequency(vol: float, min_freq: float = 200.0, max_freq: float = 2000.0) -> float:
    """Brighter pad in busier markets. Tick volatility of 0.1% opens fully."""
    normalized = min(vol / 0.001, 1.0)
    return min_freq + normalized * (max_freq - min_freq)


def pad_lfo_rate(vol: float, min_rate: float = 0.1, max_rate: float = 2.0) -> float:
    """Filter LFO speed in Hz, same normalization as pad_filter_frequency."""
    normalized = min(vol / 0.001, 1.0)
    return min_rate + normalized * (max_rate - min_rate)


def tick_character(direction: Direction) -> ToneCharacter:
    return TICK_CHARACTERS[direction]
