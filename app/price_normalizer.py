# price_normalizer.py
# Maps raw prices onto a quantized two-octave pitch window
# The range follows the market; the pitch band never moves

import logging
from collections import deque
from typing import Dict, List, Optional, Tuple

import numpy as np

from tick_schema import AdaptiveRange
from music_theory import (
    ScaleType,
    midi_to_frequency,
    midi_to_note_name,
    quantize_to_scale,
    scale_notes,
)

logger = logging.getLogger(__name__)


def rank_percentile(sorted_values: np.ndarray, q: float) -> float:
    """
    Lower-rank percentile: sorted[floor(n * q)].

    No interpolation, so the level is always a price that was actually seen.
    """
    index = min(int(np.floor(len(sorted_values) * q)), len(sorted_values) - 1)
    return float(sorted_values[index])


class PriceNormalizer:
    """
    Adaptive price range plus price -> pitch mapping.

    Design principles:
    - The range is long-lived and exponentially smoothed toward the
      5th/95th percentile of recent prices
    - A minimum span keeps a flat market from collapsing onto one pitch
    - Out-of-range prices are clamped, never rejected
    - Read paths (price_to_pitch, bass_pitch) never mutate state
    """

    def __init__(
        self,
        min_pitch: int = 48,   # C3
        max_pitch: int = 72,   # C5
        max_samples: int = 1000,
        smoothing: float = 0.1,
        min_span_fraction: float = 0.002,
        warmup_samples: int = 10,
        initial_range: Optional[Tuple[float, float]] = None,
        initial_span_fraction: float = 0.01,
        root: int = 0,
    ):
        """
        Initialize normalizer.

        Args:
            min_pitch: Lowest MIDI number a price can map to
            max_pitch: Highest MIDI number a price can map to
            max_samples: Hard cap on stored prices
            smoothing: Blend factor toward the new percentile bounds
            min_span_fraction: Minimum range as a fraction of the low bound
            warmup_samples: Percentile blending starts once more than this
                many prices are stored
            initial_range: Fixed (low, high) to start from; if None the
                range is seeded around the first price seen
            initial_span_fraction: Width of the seeded range relative to
                the first price
            root: Pitch class of the scale root used for quantization
        """
        if max_pitch <= min_pitch:
            raise ValueError(f"max_pitch ({max_pitch}) must exceed min_pitch ({min_pitch})")
        if initial_range is not None and initial_range[1] <= initial_range[0]:
            raise ValueError(f"Invalid initial_range: {initial_range}")

        self.min_pitch = min_pitch
        self.max_pitch = max_pitch
        self.max_samples = max_samples
        self.smoothing = smoothing
        self.min_span_fraction = min_span_fraction
        self.warmup_samples = warmup_samples
        self.initial_range = initial_range
        self.initial_span_fraction = initial_span_fraction
        self.root = root

        self.prices: deque = deque(maxlen=max_samples)
        self._low: Optional[float] = None
        self._high: Optional[float] = None
        if initial_range is not None:
            self._low, self._high = (float(v) for v in initial_range)
            self._enforce_min_span()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def range(self) -> Optional[AdaptiveRange]:
        """Current band, or None before the first price when unseeded."""
        if self._low is None:
            return None
        return AdaptiveRange(low=self._low, high=self._high)

    def range_info(self) -> Dict[str, float]:
        if self._low is None:
            return {"low": 0.0, "high": 0.0, "span": 0.0}
        return {"low": self._low, "high": self._high, "span": self._high - self._low}

    def update(self, price: float) -> AdaptiveRange:
        """
        Ingest one price and recompute the adaptive range.

        Args:
            price: Latest trade price

        Returns:
            The range after the update
        """
        self.prices.append(float(price))

        if self._low is None:
            half_span = price * self.initial_span_fraction / 2
            self._low = price - half_span
            self._high = price + half_span

        if len(self.prices) > self.warmup_samples:
            sorted_prices = np.sort(np.fromiter(self.prices, dtype=float))
            p5 = rank_percentile(sorted_prices, 0.05)
            p95 = rank_percentile(sorted_prices, 0.95)

            alpha = self.smoothing
            self._low = alpha * p5 + (1 - alpha) * self._low
            self._high = alpha * p95 + (1 - alpha) * self._high

        self._enforce_min_span()
        logger.debug("Price range now [%.6f, %.6f]", self._low, self._high)
        return AdaptiveRange(low=self._low, high=self._high)

    def _enforce_min_span(self):
        """Re-centre on the midpoint when the band is narrower than the floor."""
        min_span = self._low * self.min_span_fraction
        if self._high - self._low < min_span:
            mid = (self._high + self._low) / 2
            self._low = mid - min_span / 2
            self._high = mid + min_span / 2

    def reset(self):
        """Drop history and range back to construction state."""
        self.prices.clear()
        self._low = None
        self._high = None
        if self.initial_range is not None:
            self._low, self._high = (float(v) for v in self.initial_range)
            self._enforce_min_span()

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def price_to_raw_pitch(self, price: float) -> int:
        """Clamp into the range and interpolate linearly onto the pitch band."""
        if self._low is None:
            return int(round((self.min_pitch + self.max_pitch) / 2))

        clamped = max(self._low, min(self._high, price))
        ratio = (clamped - self._low) / (self._high - self._low)
        return int(round(self.min_pitch + ratio * (self.max_pitch - self.min_pitch)))

    def price_to_pitch(self, price: float, scale: ScaleType = ScaleType.PENTATONIC) -> int:
        return quantize_to_scale(self.price_to_raw_pitch(price), scale, self.root)

    def price_to_frequency(self, price: float, scale: ScaleType = ScaleType.PENTATONIC) -> float:
        return midi_to_frequency(self.price_to_pitch(price, scale))

    def price_to_note_name(self, price: float, scale: ScaleType = ScaleType.PENTATONIC) -> str:
        return midi_to_note_name(self.price_to_pitch(price, scale))

    def bass_pitch(self, price: float, scale: ScaleType = ScaleType.PENTATONIC) -> int:
        """Scale root of the octave below the price's pitch."""
        octave = self.price_to_pitch(price, scale) // 12
        return quantize_to_scale((octave - 1) * 12 + self.root, scale, self.root)

    def available_notes(self, scale: ScaleType = ScaleType.PENTATONIC) -> List[int]:
        return scale_notes(scale, self.root, self.min_pitch, self.max_pitch)

    def __repr__(self) -> str:
        band = "unseeded" if self._low is None else f"[{self._low:.4f}, {self._high:.4f}]"
        return f"PriceNormalizer(samples={len(self.prices)}, range={band})"
