"""
Harmony Engine
Rule-based chord selection driven by detected market patterns.
Holds exactly one harmonic state; every update replaces it.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np

from tick_schema import (
    ChordQuality,
    CHORD_QUALITY_NAMES,
    DetectedPattern,
    HarmonyState,
    HarmonyUpdate,
    INITIAL_HARMONY_STATE,
    PatternType,
)
from music_theory import chord_notes

logger = logging.getLogger(__name__)


class Rhythm(IntEnum):
    """How long each chord is held."""
    SLOW = 0
    MEDIUM = 1
    FAST = 2


RHYTHM_MS = {
    Rhythm.SLOW: 4000,
    Rhythm.MEDIUM: 2000,
    Rhythm.FAST: 1000,
}


class ArpeggioDirection(IntEnum):
    UP = 0
    DOWN = 1
    RANDOM = 2
    NONE = 3


# Chord-root offsets in semitones from the base pitch
PROGRESSIONS: Dict[str, Tuple[int, ...]] = {
    "major_resolution": (0, 5, 7, 0),   # I-IV-V-I
    "minor_resolution": (0, 5, 7, 0),   # i-iv-V-i
    "jazz_cadence": (2, 7, 0),          # ii-V-I
    "pop": (0, 7, 9, 5),                # I-V-vi-IV
    "epic_minor": (0, 10, 8, 10),       # i-VII-VI-VII
    "classic_major": (0, 9, 5, 7),      # I-vi-IV-V
    "chromatic_down": (0, -1, -2, -3),
    "fifths_up": (0, 7, 2, 9),
    "hold": (0, 0, 0, 0),
}

CHORD_LABELS = {
    ChordQuality.MAJOR: "Major",
    ChordQuality.MINOR: "Minor",
    ChordQuality.MAJOR7: "Maj7",
    ChordQuality.MINOR7: "Min7",
    ChordQuality.DOMINANT7: "Dom7",
    ChordQuality.DIMINISHED: "Dim",
    ChordQuality.AUGMENTED: "Aug",
    ChordQuality.SUSPENDED: "Sus4",
}

BREAKOUT_INTENSITY_BOOST = 0.3
CONSOLIDATION_INTENSITY_CUT = 0.2
CONSOLIDATION_INTENSITY_FLOOR = 0.2


@dataclass(frozen=True)
class HarmonyRule:
    """
    Musical response to one pattern.

    chord_qualities is ordered by intensity: stronger patterns pick
    later entries.
    """
    pattern: PatternType
    chord_qualities: Tuple[ChordQuality, ...]
    progression: Tuple[int, ...]
    rhythm: Rhythm
    arpeggio: ArpeggioDirection


HARMONY_RULES: Dict[PatternType, HarmonyRule] = {
    PatternType.STRONG_UPTREND: HarmonyRule(
        pattern=PatternType.STRONG_UPTREND,
        chord_qualities=(ChordQuality.MAJOR7, ChordQuality.MAJOR, ChordQuality.AUGMENTED),
        progression=PROGRESSIONS["major_resolution"],
        rhythm=Rhythm.MEDIUM,
        arpeggio=ArpeggioDirection.UP,
    ),
    PatternType.STRONG_DOWNTREND: HarmonyRule(
        pattern=PatternType.STRONG_DOWNTREND,
        chord_qualities=(ChordQuality.MINOR7, ChordQuality.MINOR, ChordQuality.DIMINISHED),
        progression=PROGRESSIONS["epic_minor"],
        rhythm=Rhythm.MEDIUM,
        arpeggio=ArpeggioDirection.DOWN,
    ),
    PatternType.HIGH_VOLATILITY: HarmonyRule(
        pattern=PatternType.HIGH_VOLATILITY,
        chord_qualities=(ChordQuality.DOMINANT7, ChordQuality.AUGMENTED, ChordQuality.DIMINISHED),
        progression=PROGRESSIONS["chromatic_down"],
        rhythm=Rhythm.FAST,
        arpeggio=ArpeggioDirection.RANDOM,
    ),
    PatternType.CONSOLIDATION: HarmonyRule(
        pattern=PatternType.CONSOLIDATION,
        chord_qualities=(ChordQuality.SUSPENDED, ChordQuality.MAJOR, ChordQuality.MINOR),
        progression=PROGRESSIONS["hold"],
        rhythm=Rhythm.SLOW,
        arpeggio=ArpeggioDirection.NONE,
    ),
    PatternType.REVERSAL_UP: HarmonyRule(
        pattern=PatternType.REVERSAL_UP,
        chord_qualities=(ChordQuality.DOMINANT7, ChordQuality.MAJOR),
        progression=PROGRESSIONS["jazz_cadence"],
        rhythm=Rhythm.MEDIUM,
        arpeggio=ArpeggioDirection.UP,
    ),
    PatternType.REVERSAL_DOWN: HarmonyRule(
        pattern=PatternType.REVERSAL_DOWN,
        chord_qualities=(ChordQuality.MINOR7, ChordQuality.DIMINISHED),
        progression=PROGRESSIONS["minor_resolution"],
        rhythm=Rhythm.MEDIUM,
        arpeggio=ArpeggioDirection.DOWN,
    ),
    PatternType.BREAKOUT_UP: HarmonyRule(
        pattern=PatternType.BREAKOUT_UP,
        chord_qualities=(ChordQuality.MAJOR, ChordQuality.AUGMENTED, ChordQuality.MAJOR7),
        progression=PROGRESSIONS["fifths_up"],
        rhythm=Rhythm.FAST,
        arpeggio=ArpeggioDirection.UP,
    ),
    PatternType.BREAKOUT_DOWN: HarmonyRule(
        pattern=PatternType.BREAKOUT_DOWN,
        chord_qualities=(ChordQuality.MINOR, ChordQuality.DIMINISHED, ChordQuality.MINOR7),
        progression=PROGRESSIONS["chromatic_down"],
        rhythm=Rhythm.FAST,
        arpeggio=ArpeggioDirection.DOWN,
    ),
    PatternType.NEUTRAL: HarmonyRule(
        pattern=PatternType.NEUTRAL,
        chord_qualities=(ChordQuality.MAJOR, ChordQuality.MINOR, ChordQuality.SUSPENDED),
        progression=PROGRESSIONS["pop"],
        rhythm=Rhythm.SLOW,
        arpeggio=ArpeggioDirection.NONE,
    ),
}


def harmony_rule(pattern: PatternType) -> HarmonyRule:
    """Rule for a pattern. A missing entry is a bug, so KeyError propagates."""
    return HARMONY_RULES[pattern]


def rhythm_ms(rhythm: Rhythm) -> int:
    return RHYTHM_MS[rhythm]


class HarmonyEngine:
    """
    Small state machine: pattern in, chord/progression/intensity out.

    Reaction rules per update:
    - Quality: candidate list indexed by floor(strength * n), clamped
    - Progression: index advances one step, wrapping on the rule's length
    - Root: base pitch + progression offset at the new index
    - Intensity: raw strength, boosted for breakouts, damped for consolidation
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        min_pitch: int = 36,
        max_pitch: int = 96,
        arpeggio_count: int = 4,
    ):
        """
        Initialize harmony engine.

        Args:
            seed: Seed for the random arpeggio shuffle (None = nondeterministic)
            min_pitch: Lowest arpeggio pitch allowed
            max_pitch: Highest arpeggio pitch allowed
            arpeggio_count: Default arpeggio length for generate_response
        """
        self.seed = seed
        self.min_pitch = min_pitch
        self.max_pitch = max_pitch
        self.arpeggio_count = arpeggio_count
        self.rng = np.random.default_rng(seed)
        self._state: HarmonyState = INITIAL_HARMONY_STATE

    @property
    def state(self) -> HarmonyState:
        return self._state

    def update(self, pattern: DetectedPattern, base_pitch: int) -> HarmonyState:
        """
        Advance the harmonic state for a detected pattern.

        Args:
            pattern: Latest detection result
            base_pitch: MIDI number the progression offsets are added to

        Returns:
            The new state (also kept as the engine's current state)
        """
        rule = harmony_rule(pattern.type)

        qualities = rule.chord_qualities
        quality_index = min(int(np.floor(pattern.strength * len(qualities))), len(qualities) - 1)
        quality = qualities[max(quality_index, 0)]

        index = (self._state.progression_index + 1) % len(rule.progression)
        root = base_pitch + rule.progression[index]

        intensity = pattern.strength
        if pattern.type in (PatternType.BREAKOUT_UP, PatternType.BREAKOUT_DOWN):
            intensity = min(1.0, intensity + BREAKOUT_INTENSITY_BOOST)
        elif pattern.type == PatternType.CONSOLIDATION:
            intensity = max(CONSOLIDATION_INTENSITY_FLOOR, intensity - CONSOLIDATION_INTENSITY_CUT)

        self._state = HarmonyState(
            chord_root=root,
            chord_quality=quality,
            progression=rule.progression,
            progression_index=index,
            intensity=intensity,
        )
        logger.debug(
            "Harmony -> %s root=%d step=%d/%d intensity=%.2f",
            CHORD_QUALITY_NAMES[quality], root, index, len(rule.progression), intensity,
        )
        return self._state

    def arpeggio_notes(
        self,
        root: int,
        quality: ChordQuality,
        direction: ArpeggioDirection,
        count: int = 4,
    ) -> List[int]:
        """
        Arpeggio drawn from the spread chord replicated across three octaves.

        Args:
            root: Chord root
            quality: Chord quality
            direction: UP (lowest first), DOWN (highest first), RANDOM
                (shuffled without replacement) or NONE (empty)
            count: Maximum number of notes

        Returns:
            Up to `count` pitches inside [min_pitch, max_pitch]
        """
        if direction == ArpeggioDirection.NONE or count <= 0:
            return []

        base = chord_notes(root, quality, "spread")
        extended = [note + octave * 12 for octave in (-1, 0, 1) for note in base]
        valid = sorted(n for n in extended if self.min_pitch <= n <= self.max_pitch)

        if direction == ArpeggioDirection.UP:
            return valid[:count]
        if direction == ArpeggioDirection.DOWN:
            return list(reversed(valid[-count:]))
        if direction == ArpeggioDirection.RANDOM:
            return [int(n) for n in self.rng.permutation(valid)[:count]]
        return []

    def generate_response(self, pattern: DetectedPattern, base_pitch: int) -> HarmonyUpdate:
        """
        Update the state and derive everything the harmonic layer plays next.
        """
        rule = harmony_rule(pattern.type)
        state = self.update(pattern, base_pitch)

        return HarmonyUpdate(
            chord_notes=tuple(chord_notes(state.chord_root, state.chord_quality, "spread")),
            arpeggio_notes=tuple(
                self.arpeggio_notes(state.chord_root, state.chord_quality, rule.arpeggio, self.arpeggio_count)
            ),
            quality=state.chord_quality,
            rhythm_ms=rhythm_ms(rule.rhythm),
            intensity=state.intensity,
        )

    def describe(self) -> str:
        """e.g. "Maj7 chord (intensity: 80%)"."""
        return f"{CHORD_LABELS[self._state.chord_quality]} chord (intensity: {round(self._state.intensity * 100)}%)"

    def reset(self):
        """Back to the initial state; the RNG is reseeded so runs repeat."""
        self._state = INITIAL_HARMONY_STATE
        self.rng = np.random.default_rng(self.seed)

    def __repr__(self) -> str:
        return f"HarmonyEngine(state={self._state})"
