"""
Sonification Configuration
Every tunable the analytics core reads at construction time.
Never hot-reloaded: build a new engine to change settings.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from music_theory import ScaleType, SCALE_NAMES, parse_scale
from mix_levels import SoundMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SonificationConfig:
    """
    Configuration surface of the sonification engine.

    Thresholds are independent fields. The tick magnitude
    saturation (0.5%) and the detector's trend/consolidation thresholds
    (0.1%, 0.05%) are not derived from one shared constant; tuning one
    does not move the others.

    Config Version: 1.0.0
    """

    # === Pitch space ===
    scale: ScaleType = ScaleType.PENTATONIC
    root: int = 0
    min_pitch: int = 48                 # C3
    max_pitch: int = 72                 # C5
    arpeggio_min_pitch: int = 36
    arpeggio_max_pitch: int = 96
    arpeggio_count: int = 4

    # === Tick analyzer ===
    neutral_threshold: float = 1e-6
    magnitude_saturation: float = 0.005
    ema_alpha: float = 0.3

    # === Adaptive range ===
    range_smoothing: float = 0.1
    min_span_fraction: float = 0.002
    max_tracked_prices: int = 1000
    range_warmup_samples: int = 10
    initial_range: Optional[Tuple[float, float]] = None
    initial_span_fraction: float = 0.01

    # === Pattern window ===
    window_ms: float = 60000
    max_window_entries: int = 5000
    min_samples: int = 30
    reversal_ticks: int = 10
    reversal_threshold: float = 0.3
    breakout_lookback: int = 30
    breakout_recent: int = 5
    breakout_fraction: float = 0.5
    trend_reference: float = 0.01
    trend_threshold: float = 0.001
    trend_strength_threshold: float = 0.5
    volatility_reference: float = 0.005
    volatility_high: float = 0.7
    consolidation_range: float = 0.0005
    consolidation_volatility: float = 0.3

    # === Tick voice curves ===
    min_velocity: float = 0.1
    max_velocity: float = 0.8
    min_duration: float = 0.01
    max_duration: float = 0.08
    duration_rate_threshold: float = 100
    duck_threshold: float = 50
    duck_max_rate: float = 150
    duck_min_multiplier: float = 0.3

    # === Mix ===
    master_volume: float = 0.7
    sound_mode: SoundMode = SoundMode.FULL

    # === Slow cadences (ms) ===
    bass_interval_ms: float = 500
    pad_interval_ms: float = 2000
    harmony_interval_ms: float = 3000

    # === Reproducibility ===
    seed: Optional[int] = None

    def __post_init__(self):
        # Normalize enum-ish inputs (names or ints) on a frozen instance
        object.__setattr__(self, "scale", parse_scale(self.scale))
        if not isinstance(self.sound_mode, SoundMode):
            mode = self.sound_mode
            object.__setattr__(
                self, "sound_mode",
                SoundMode[mode.upper()] if isinstance(mode, str) else SoundMode(mode),
            )
        if self.initial_range is not None:
            object.__setattr__(self, "initial_range", tuple(float(v) for v in self.initial_range))

        self._validate()

    def _validate(self):
        """Fail loudly on settings the engine cannot honour."""
        if not 0 <= self.root < 12:
            raise ValueError(f"root must be a pitch class 0-11, got {self.root}")
        if self.max_pitch <= self.min_pitch:
            raise ValueError(f"max_pitch ({self.max_pitch}) must exceed min_pitch ({self.min_pitch})")
        if self.arpeggio_max_pitch <= self.arpeggio_min_pitch:
            raise ValueError("arpeggio_max_pitch must exceed arpeggio_min_pitch")
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {self.window_ms}")
        if self.min_samples < 1:
            raise ValueError(f"min_samples must be at least 1, got {self.min_samples}")
        if self.breakout_recent >= self.breakout_lookback:
            raise ValueError("breakout_recent must be smaller than breakout_lookback")
        if not 0 < self.ema_alpha <= 1:
            raise ValueError(f"ema_alpha must be in (0, 1], got {self.ema_alpha}")
        if not 0 < self.range_smoothing <= 1:
            raise ValueError(f"range_smoothing must be in (0, 1], got {self.range_smoothing}")
        if self.magnitude_saturation <= 0:
            raise ValueError("magnitude_saturation must be positive")
        if not 0 <= self.min_velocity <= self.max_velocity <= 1:
            raise ValueError("velocity band must satisfy 0 <= min <= max <= 1")
        if not 0 < self.min_duration <= self.max_duration:
            raise ValueError("duration band must satisfy 0 < min <= max")
        if self.duck_max_rate <= self.duck_threshold:
            raise ValueError("duck_max_rate must exceed duck_threshold")
        if not 0 <= self.duck_min_multiplier <= 1:
            raise ValueError("duck_min_multiplier must be in [0, 1]")
        if self.initial_range is not None and self.initial_range[1] <= self.initial_range[0]:
            raise ValueError(f"initial_range must be (low, high) with high > low, got {self.initial_range}")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["scale"] = SCALE_NAMES[self.scale]
        data["sound_mode"] = self.sound_mode.name.lower()
        if self.initial_range is not None:
            data["initial_range"] = list(self.initial_range)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SonificationConfig":
        """
        Build a config from plain values.

        Raises:
            ValueError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**data)

    def save(self, filepath: Union[str, Path]):
        """
        Save configuration to a JSON file.

        Args:
            filepath: Path to save file
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> "SonificationConfig":
        """
        Load configuration from a JSON file.

        Args:
            filepath: Path to load file

        Returns:
            SonificationConfig with loaded values (defaults for missing keys)
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")

        with open(filepath, "r") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Config file must hold a JSON object: {filepath}")

        missing = sorted({f.name for f in fields(cls)} - set(data))
        if missing:
            logger.warning("Config %s omits %d keys, using defaults: %s", filepath, len(missing), missing)

        return cls.from_dict(data)
