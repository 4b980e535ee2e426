# mix_levels.py
# Layer volume presets and linear <-> dB conversions
# Levels only. Building the audio graph belongs to the renderer.

import math
from dataclasses import dataclass
from enum import IntEnum

BASE_VOLUME_DB = -12.0
VOLUME_RANGE_DB = 12.0


class SoundMode(IntEnum):
    MINIMAL = 0
    STANDARD = 1
    FULL = 2
    AMBIENT = 3


@dataclass(frozen=True)
class LayerVolumes:
    """Linear [0, 1] volume per layer."""
    tick: float
    bass: float
    pad: float
    percussion: float


SOUND_MODE_PRESETS = {
    SoundMode.MINIMAL: LayerVolumes(tick=0.6, bass=0.0, pad=0.0, percussion=0.0),
    SoundMode.STANDARD: LayerVolumes(tick=0.7, bass=0.4, pad=0.0, percussion=0.2),
    SoundMode.FULL: LayerVolumes(tick=0.7, bass=0.5, pad=0.4, percussion=0.3),
    SoundMode.AMBIENT: LayerVolumes(tick=0.3, bass=0.6, pad=0.7, percussion=0.1),
}

DEFAULT_LAYER_VOLUMES = LayerVolumes(tick=0.7, bass=0.5, pad=0.4, percussion=0.3)


def layer_volumes(mode: SoundMode) -> LayerVolumes:
    return SOUND_MODE_PRESETS[mode]


def linear_to_db(linear: float) -> float:
    if linear <= 0:
        return -math.inf
    return 20 * math.log10(linear)


def db_to_linear(db: float) -> float:
    if db == -math.inf:
        return 0.0
    return 10 ** (db / 20)


def final_volume_db(master: float, layer: float, duck: float = 1.0) -> float:
    """
    Output level in dB for one layer.

    Unity (master * layer * duck == 1) sits at BASE_VOLUME_DB + VOLUME_RANGE_DB.
    """
    return BASE_VOLUME_DB + linear_to_db(master * layer * duck) + VOLUME_RANGE_DB
