# tick_schema.py
# FROZEN SCHEMA v1.0.0 - DO NOT MODIFY WITHOUT VERSION BUMP
# Every record the analytics core hands to the outside world lives here

from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple
from enum import IntEnum


class Direction(IntEnum):
    """
    Tick-to-tick price direction.
    Neutral covers sub-threshold moves, not only exact repeats.
    """
    DOWN = 0
    NEUTRAL = 1
    UP = 2


DIRECTION_NAMES = {
    Direction.DOWN: "down",
    Direction.NEUTRAL: "neutral",
    Direction.UP: "up",
}


class PatternType(IntEnum):
    """
    Nine discrete market micro-states classified from the pattern window.

    Reversal and breakout are sharp, actionable signals and preempt the
    slower trend/volatility/consolidation states during detection.
    """
    NEUTRAL = 0
    STRONG_UPTREND = 1
    STRONG_DOWNTREND = 2
    HIGH_VOLATILITY = 3
    CONSOLIDATION = 4
    REVERSAL_UP = 5
    REVERSAL_DOWN = 6
    BREAKOUT_UP = 7
    BREAKOUT_DOWN = 8


PATTERN_NAMES = {
    PatternType.NEUTRAL: "neutral",
    PatternType.STRONG_UPTREND: "strong_uptrend",
    PatternType.STRONG_DOWNTREND: "strong_downtrend",
    PatternType.HIGH_VOLATILITY: "high_volatility",
    PatternType.CONSOLIDATION: "consolidation",
    PatternType.REVERSAL_UP: "reversal_up",
    PatternType.REVERSAL_DOWN: "reversal_down",
    PatternType.BREAKOUT_UP: "breakout_up",
    PatternType.BREAKOUT_DOWN: "breakout_down",
}

PATTERN_DESCRIPTIONS = {
    PatternType.NEUTRAL: "Neutral market conditions",
    PatternType.STRONG_UPTREND: "Strong upward momentum",
    PatternType.STRONG_DOWNTREND: "Strong downward pressure",
    PatternType.HIGH_VOLATILITY: "High market volatility",
    PatternType.CONSOLIDATION: "Price consolidating",
    PatternType.REVERSAL_UP: "Bullish reversal detected",
    PatternType.REVERSAL_DOWN: "Bearish reversal detected",
    PatternType.BREAKOUT_UP: "Breakout to upside",
    PatternType.BREAKOUT_DOWN: "Breakout to downside",
}


class ChordQuality(IntEnum):
    """Harmonic flavor of a chord, independent of its root."""
    MAJOR = 0
    MINOR = 1
    MAJOR7 = 2
    MINOR7 = 3
    DOMINANT7 = 4
    DIMINISHED = 5
    AUGMENTED = 6
    SUSPENDED = 7


CHORD_QUALITY_NAMES = {
    ChordQuality.MAJOR: "major",
    ChordQuality.MINOR: "minor",
    ChordQuality.MAJOR7: "major7",
    ChordQuality.MINOR7: "minor7",
    ChordQuality.DOMINANT7: "dominant7",
    ChordQuality.DIMINISHED: "diminished",
    ChordQuality.AUGMENTED: "augmented",
    ChordQuality.SUSPENDED: "suspended",
}


@dataclass(frozen=True)
class Tick:
    """One inbound price observation. Timestamp is monotonic milliseconds."""
    price: float
    timestamp: float


@dataclass(frozen=True)
class PriceChange:
    """
    Classification of a tick relative to the tick before it.

    Derived, never stored: recomputed from the immediately preceding price.
    """
    direction: Direction
    magnitude: float       # [0, 1], saturates at the configured move size
    percent_change: float  # Fraction, 0.01 == 1%


@dataclass(frozen=True)
class AdaptiveRange:
    """
    Price band mapped onto the pitch window.

    Invariant: high - low >= low * min_span_fraction (0.2% by default),
    so a flat market never collapses every tick onto one pitch.
    """
    low: float
    high: float

    @property
    def span(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class WindowEntry:
    """Single sample held by the pattern window."""
    price: float
    timestamp: float
    direction: Direction


@dataclass(frozen=True)
class PatternStats:
    """Metrics the detector computed while classifying the window."""
    trend_strength: float        # [-1, 1]
    volatility: float            # [0, 1]
    price_change_percent: float  # First-to-last change over the window
    support_level: float
    resistance_level: float
    tick_count: int


EMPTY_STATS = PatternStats(
    trend_strength=0.0,
    volatility=0.0,
    price_change_percent=0.0,
    support_level=0.0,
    resistance_level=0.0,
    tick_count=0,
)


@dataclass(frozen=True)
class DetectedPattern:
    """
    Result of one classification pass over the window.

    Recomputed on demand. Only the harmony engine keeps anything derived
    from it across calls.
    """
    type: PatternType
    strength: float     # [0, 1]
    duration_ms: float
    stats: PatternStats

    @property
    def name(self) -> str:
        return PATTERN_NAMES[self.type]


@dataclass(frozen=True)
class HarmonyState:
    """
    The single harmonic state held by a harmony engine.

    Replaced wholesale on every update so callers can keep snapshots.
    """
    chord_root: int
    chord_quality: ChordQuality
    progression: Tuple[int, ...]
    progression_index: int
    intensity: float  # [0, 1]


INITIAL_HARMONY_STATE = HarmonyState(
    chord_root=60,
    chord_quality=ChordQuality.MAJOR,
    progression=(0,),
    progression_index=0,
    intensity=0.5,
)


@dataclass(frozen=True)
class HarmonyUpdate:
    """What the harmonic layer should play for the next chord slot."""
    chord_notes: Tuple[int, ...]
    arpeggio_notes: Tuple[int, ...]
    quality: ChordQuality
    rhythm_ms: int
    intensity: float


@dataclass(frozen=True)
class TickStats:
    """Rolling activity summary for display and lateral-movement checks."""
    ticks_per_second: int
    average_price: float
    price_volatility: float
    trend_direction: Direction
    trend_strength: float  # [0, 1], consistency of recent directions


@dataclass(frozen=True)
class TickResult:
    """
    Everything the orchestrator needs to voice one tick.

    bass_update, pad_chord and harmony are None unless their slow cadence
    fired on this tick and their layer is audible in the sound mode.

    Schema Version: 1.0.0
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0.0"

    # === Input ===
    price: float
    timestamp: float

    # === Pitch ===
    pitch: int
    bass_pitch: int
    note_name: str
    frequency: float

    # === Analysis ===
    change: PriceChange
    pattern: DetectedPattern
    smoothed_price: Optional[float]

    # === Tick voice ===
    velocity: float
    duration_s: float
    duck_multiplier: float
    level_db: float
    tick_rate: int
    percussion: bool

    # === Slow cadences ===
    bass_update: Optional[int] = None
    pad_chord: Optional[Tuple[int, ...]] = None
    harmony: Optional[HarmonyUpdate] = None
