"""
Music Theory Primitives
Pure functions mapping between pitch numbers, note names, frequencies
and scale/chord membership. No state, no side effects.
"""

import math
import re
from enum import IntEnum
from typing import List, Sequence

from tick_schema import ChordQuality, Direction


class ScaleType(IntEnum):
    """Scales available for quantization."""
    PENTATONIC = 0
    MAJOR = 1
    MINOR = 2
    CHROMATIC = 3


SCALE_NAMES = {
    ScaleType.PENTATONIC: "pentatonic",
    ScaleType.MAJOR: "major",
    ScaleType.MINOR: "minor",
    ScaleType.CHROMATIC: "chromatic",
}

# Semitones from root
SCALE_INTERVALS = {
    ScaleType.PENTATONIC: (0, 2, 4, 7, 9),       # Always pleasant
    ScaleType.MAJOR: (0, 2, 4, 5, 7, 9, 11),
    ScaleType.MINOR: (0, 2, 3, 5, 7, 8, 10),     # Natural minor
    ScaleType.CHROMATIC: tuple(range(12)),
}

CHORD_INTERVALS = {
    ChordQuality.MAJOR: (0, 4, 7),
    ChordQuality.MINOR: (0, 3, 7),
    ChordQuality.MAJOR7: (0, 4, 7, 11),
    ChordQuality.MINOR7: (0, 3, 7, 10),
    ChordQuality.DOMINANT7: (0, 4, 7, 10),
    ChordQuality.DIMINISHED: (0, 3, 6),
    ChordQuality.AUGMENTED: (0, 4, 8),
    ChordQuality.SUSPENDED: (0, 5, 7),
}

# 4-voice pad voicings: triad plus octave (suspended adds the 9th)
PAD_CHORD_INTERVALS = {
    ChordQuality.MAJOR: (0, 4, 7, 12),
    ChordQuality.MINOR: (0, 3, 7, 12),
    ChordQuality.SUSPENDED: (0, 5, 7, 14),
}

NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

REFERENCE_PITCH = 69        # A4
REFERENCE_FREQUENCY = 440.0
DEFAULT_PITCH = 60          # Middle C, returned for unparseable note names
MAX_QUANTIZE_SHIFT = 6

_NOTE_NAME_PATTERN = re.compile(r"^([A-G]#?)(-?\d+)$")


def parse_scale(value) -> ScaleType:
    """Accept a ScaleType, its integer value or its name ("pentatonic")."""
    if isinstance(value, ScaleType):
        return value
    if isinstance(value, str):
        try:
            return ScaleType[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown scale '{value}', expected one of "
                f"{sorted(SCALE_NAMES.values())}"
            ) from None
    return ScaleType(value)


def scale_intervals(scale: ScaleType, root: int = 0) -> List[int]:
    """Pitch classes of the scale rotated onto a root, in scale-degree order."""
    return [(interval + root) % 12 for interval in SCALE_INTERVALS[scale]]


def quantize_to_scale(pitch: int, scale: ScaleType, root: int = 0) -> int:
    """
    Snap a pitch to the nearest member of the scale.

    Distance inside the octave is measured both directly and across the
    octave wrap; on an exact tie the lower-indexed scale degree wins.
    The result is rebuilt at the input's octave and shifted by one octave
    toward the input if that rebuild lands more than 6 semitones away.

    Args:
        pitch: MIDI number to quantize
        scale: Target scale
        root: Pitch class of the scale root (0 = C)

    Returns:
        In-scale MIDI number, never more than 6 semitones from the input
    """
    intervals = SCALE_INTERVALS[scale]
    octave = pitch // 12
    adjusted = (pitch % 12 - root) % 12

    closest = intervals[0]
    min_distance = math.inf
    for interval in intervals:
        direct = abs(adjusted - interval)
        wrapped = abs(adjusted - (interval + 12))
        distance = min(direct, wrapped)
        if distance < min_distance:
            min_distance = distance
            closest = interval

    quantized = octave * 12 + (closest + root) % 12

    if quantized > pitch + MAX_QUANTIZE_SHIFT:
        return quantized - 12
    if quantized < pitch - MAX_QUANTIZE_SHIFT:
        return quantized + 12
    return quantized


def is_in_scale(pitch: int, scale: ScaleType, root: int = 0) -> bool:
    return (pitch - root) % 12 in SCALE_INTERVALS[scale]


def scale_notes(
    scale: ScaleType,
    root: int,
    min_pitch: int,
    max_pitch: int,
) -> List[int]:
    """All in-scale pitches within [min_pitch, max_pitch], ascending."""
    notes = []
    for octave in range(min_pitch // 12, max_pitch // 12 + 2):
        for interval in SCALE_INTERVALS[scale]:
            pitch = octave * 12 + (interval + root) % 12
            if min_pitch <= pitch <= max_pitch:
                notes.append(pitch)
    return sorted(notes)


def chord_intervals(quality: ChordQuality) -> Sequence[int]:
    return CHORD_INTERVALS[quality]


def chord_notes(root: int, quality: ChordQuality, voicing: str = "close") -> List[int]:
    """
    Chord tones for a root.

    Spread voicing lifts every odd-indexed tone an octave.
    """
    intervals = CHORD_INTERVALS[quality]
    if voicing == "close":
        return [root + interval for interval in intervals]
    if voicing == "spread":
        return [
            root + interval + (12 if index % 2 else 0)
            for index, interval in enumerate(intervals)
        ]
    raise ValueError(f"Unknown voicing '{voicing}', expected 'close' or 'spread'")


def pad_chord_notes(root: int, quality: ChordQuality = ChordQuality.MAJOR) -> List[int]:
    """4-voice pad voicing. Only major, minor and suspended are defined."""
    if quality not in PAD_CHORD_INTERVALS:
        raise ValueError(f"No pad voicing for {quality.name}")
    return [root + interval for interval in PAD_CHORD_INTERVALS[quality]]


def trend_chord_quality(percent_change: float) -> ChordQuality:
    """Suspended for lateral movement, otherwise major/minor by sign."""
    if abs(percent_change) < 0.0001:
        return ChordQuality.SUSPENDED
    return ChordQuality.MAJOR if percent_change > 0 else ChordQuality.MINOR


def octave_offset(direction: Direction) -> int:
    if direction == Direction.UP:
        return 12
    if direction == Direction.DOWN:
        return -12
    return 0


def midi_to_frequency(pitch: float) -> float:
    """Equal temperament, A4 (69) = 440 Hz."""
    return REFERENCE_FREQUENCY * 2 ** ((pitch - REFERENCE_PITCH) / 12)


def frequency_to_midi(frequency: float) -> int:
    if frequency <= 0:
        raise ValueError(f"Frequency must be positive, got {frequency}")
    return int(round(REFERENCE_PITCH + 12 * math.log2(frequency / REFERENCE_FREQUENCY)))


def midi_to_note_name(pitch: int) -> str:
    """60 -> "C4"."""
    octave = pitch // 12 - 1
    return f"{NOTE_NAMES[pitch % 12]}{octave}"


def note_name_to_midi(name: str) -> int:
    """
    "C4" -> 60. Malformed names fall back to middle C.
    """
    match = _NOTE_NAME_PATTERN.match(name.strip()) if isinstance(name, str) else None
    if not match:
        return DEFAULT_PITCH
    note, octave = match.groups()
    return (int(octave) + 1) * 12 + NOTE_NAMES.index(note)
