# pattern_window.py
# Sliding window of recent ticks + market micro-pattern classification
# Perception, not prediction: nine discrete states, recomputed on demand

import time
from collections import deque
from typing import Callable, List, Optional, Tuple

import numpy as np

from tick_schema import (
    DetectedPattern,
    Direction,
    PatternStats,
    PatternType,
    PATTERN_DESCRIPTIONS,
    WindowEntry,
)
from price_normalizer import rank_percentile

BREAKOUT_STRENGTH = 0.9
BREAKOUT_DURATION_MS = 5000
REVERSAL_MS_PER_TICK = 100
WINDOW_MS_PER_TICK = 50
NEUTRAL_STRENGTH = 0.5


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


# ============================================================================
# Window metrics
# ============================================================================

def trend_strength(prices: np.ndarray, reference: float = 0.01) -> float:
    """
    Net first-to-last move normalized into [-1, 1].

    A move of `reference` (1% by default) or more saturates.
    """
    if len(prices) < 2:
        return 0.0
    first = prices[0]
    change = (prices[-1] - first) / first
    return float(np.clip(change / reference, -1.0, 1.0))


def volatility(prices: np.ndarray, reference: float = 0.005) -> float:
    """
    Normalized coefficient of variation in [0, 1].

    Dispersion is measured around the least-squares linear trend of the
    window, so a clean ramp reads as calm and only noise on top of the
    drift counts. `reference` (0.5% CV by default) maps to 1.
    """
    if len(prices) < 3:
        return 0.0
    mean = float(np.mean(prices))
    if mean <= 0:
        return 0.0

    x = np.arange(len(prices), dtype=float)
    slope, intercept = np.polyfit(x, prices, 1)
    residuals = prices - (slope * x + intercept)

    cv = float(np.std(residuals)) / mean
    return min(1.0, cv / reference)


def support_resistance(prices: np.ndarray) -> Tuple[float, float]:
    """
    10th/90th lower-rank percentiles as (support, resistance).

    Fewer than 5 samples: both levels collapse onto the last price.
    """
    if len(prices) < 5:
        last = float(prices[-1]) if len(prices) else 0.0
        return last, last
    ordered = np.sort(prices)
    return rank_percentile(ordered, 0.1), rank_percentile(ordered, 0.9)


def detect_reversal(
    prices: np.ndarray,
    ticks: int = 10,
    threshold: float = 0.3,
    reference: float = 0.01,
) -> Optional[Direction]:
    """
    Compare the trend of the last `ticks` samples to the `ticks` before them.

    Returns:
        Direction.UP for a down-then-up turn, Direction.DOWN for the
        mirror image, None otherwise
    """
    if len(prices) < ticks * 2:
        return None

    recent = prices[-ticks:]
    prior = prices[-ticks * 2:-ticks]

    recent_trend = trend_strength(recent, reference)
    prior_trend = trend_strength(prior, reference)

    if prior_trend < -threshold and recent_trend > threshold:
        return Direction.UP
    if prior_trend > threshold and recent_trend < -threshold:
        return Direction.DOWN
    return None


def detect_breakout(
    prices: np.ndarray,
    lookback: int = 30,
    recent: int = 5,
    fraction: float = 0.5,
) -> Optional[Direction]:
    """
    Latest price escaping the support/resistance band of an older slice.

    The band is built from samples [-lookback, -recent). A breakout needs
    the latest price beyond the band by more than `fraction` of its width.
    """
    if len(prices) < 10:
        return None

    prior = prices[-lookback:-recent]
    if len(prior) < 10:
        return None

    support, resistance = support_resistance(prior)
    last_price = prices[-1]

    threshold = (resistance - support) * fraction
    if last_price > resistance + threshold:
        return Direction.UP
    if last_price < support - threshold:
        return Direction.DOWN
    return None


# ============================================================================
# Window
# ============================================================================

class PatternWindow:
    """
    Time-ordered buffer of (price, timestamp, direction) samples.

    Design principles:
    - Bounded by a time horizon and a hard entry count
    - Eviction is lazy: every read and append compacts first
    - Timestamps never go backwards (loud failure if they do)
    - Classification is recomputed from scratch on every query,
      nothing is cached between calls

    Detection priority (first match wins):
        insufficient data -> reversal -> breakout -> high volatility
        -> strong trend -> consolidation -> neutral
    """

    def __init__(
        self,
        window_ms: float = 60000,
        max_entries: int = 5000,
        min_samples: int = 30,
        reversal_ticks: int = 10,
        reversal_threshold: float = 0.3,
        breakout_lookback: int = 30,
        breakout_recent: int = 5,
        breakout_fraction: float = 0.5,
        trend_reference: float = 0.01,      # 1% net move = full trend strength
        trend_threshold: float = 0.001,     # 0.1% window change for a strong trend
        trend_strength_threshold: float = 0.5,
        volatility_reference: float = 0.005,
        volatility_high: float = 0.7,
        consolidation_range: float = 0.0005,  # 0.05% support/resistance band
        consolidation_volatility: float = 0.3,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the window.

        Args:
            window_ms: Time horizon; entries at or before now - window_ms are dropped
            max_entries: Hard cap on stored entries
            min_samples: Below this count the window always reads neutral
            clock: Millisecond clock used when a caller passes no `now`
            (remaining args are detector thresholds, see module functions)
        """
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        if breakout_recent >= breakout_lookback:
            raise ValueError("breakout_recent must be smaller than breakout_lookback")

        self.window_ms = window_ms
        self.max_entries = max_entries
        self.min_samples = min_samples
        self.reversal_ticks = reversal_ticks
        self.reversal_threshold = reversal_threshold
        self.breakout_lookback = breakout_lookback
        self.breakout_recent = breakout_recent
        self.breakout_fraction = breakout_fraction
        self.trend_reference = trend_reference
        self.trend_threshold = trend_threshold
        self.trend_strength_threshold = trend_strength_threshold
        self.volatility_reference = volatility_reference
        self.volatility_high = volatility_high
        self.consolidation_range = consolidation_range
        self.consolidation_volatility = consolidation_volatility
        self.clock = clock or monotonic_ms

        self._entries: deque = deque(maxlen=max_entries)

    # ------------------------------------------------------------------
    # Buffer
    # ------------------------------------------------------------------

    def append(self, price: float, direction: Direction, timestamp: Optional[float] = None):
        """
        Add a sample and evict anything that fell out of the horizon.

        Raises:
            ValueError: If the timestamp is older than the newest entry
        """
        if timestamp is None:
            timestamp = self.clock()

        if self._entries and timestamp < self._entries[-1].timestamp:
            raise ValueError(
                f"TEMPORAL INCONSISTENCY: tick timestamp {timestamp} is before "
                f"newest window entry {self._entries[-1].timestamp}"
            )

        self._entries.append(WindowEntry(price=float(price), timestamp=timestamp, direction=direction))
        self.compact(timestamp)

    def compact(self, now: Optional[float] = None) -> int:
        """
        Drop entries with timestamp <= now - window_ms.

        Returns:
            Number of entries evicted
        """
        if now is None:
            now = self.clock()
        cutoff = now - self.window_ms

        evicted = 0
        while self._entries and self._entries[0].timestamp <= cutoff:
            self._entries.popleft()
            evicted += 1
        return evicted

    def entries(self, now: Optional[float] = None) -> List[WindowEntry]:
        self.compact(now)
        return list(self._entries)

    def prices(self, now: Optional[float] = None) -> np.ndarray:
        self.compact(now)
        return np.fromiter((e.price for e in self._entries), dtype=float, count=len(self._entries))

    def latest(self, count: int, now: Optional[float] = None) -> List[WindowEntry]:
        self.compact(now)
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def detect(self, now: Optional[float] = None) -> DetectedPattern:
        """
        Classify the current window contents.

        Args:
            now: Millisecond timestamp used for eviction (defaults to clock)

        Returns:
            DetectedPattern with the supporting metrics attached
        """
        prices = self.prices(now)
        count = len(prices)

        if count < self.min_samples:
            return DetectedPattern(
                type=PatternType.NEUTRAL,
                strength=0.0,
                duration_ms=0.0,
                stats=PatternStats(
                    trend_strength=0.0,
                    volatility=0.0,
                    price_change_percent=0.0,
                    support_level=0.0,
                    resistance_level=0.0,
                    tick_count=count,
                ),
            )

        trend = trend_strength(prices, self.trend_reference)
        vol = volatility(prices, self.volatility_reference)
        support, resistance = support_resistance(prices)

        first_price = float(prices[0])
        last_price = float(prices[-1])
        change = (last_price - first_price) / first_price

        stats = PatternStats(
            trend_strength=trend,
            volatility=vol,
            price_change_percent=change,
            support_level=support,
            resistance_level=resistance,
            tick_count=count,
        )
        window_duration = count * WINDOW_MS_PER_TICK

        reversal = detect_reversal(
            prices, self.reversal_ticks, self.reversal_threshold, self.trend_reference
        )
        if reversal is not None:
            return DetectedPattern(
                type=PatternType.REVERSAL_UP if reversal == Direction.UP else PatternType.REVERSAL_DOWN,
                strength=abs(trend),
                duration_ms=self.reversal_ticks * REVERSAL_MS_PER_TICK,
                stats=stats,
            )

        breakout = detect_breakout(
            prices, self.breakout_lookback, self.breakout_recent, self.breakout_fraction
        )
        if breakout is not None:
            return DetectedPattern(
                type=PatternType.BREAKOUT_UP if breakout == Direction.UP else PatternType.BREAKOUT_DOWN,
                strength=BREAKOUT_STRENGTH,
                duration_ms=BREAKOUT_DURATION_MS,
                stats=stats,
            )

        if vol > self.volatility_high:
            return DetectedPattern(PatternType.HIGH_VOLATILITY, vol, window_duration, stats)

        if change > self.trend_threshold and trend > self.trend_strength_threshold:
            return DetectedPattern(PatternType.STRONG_UPTREND, trend, window_duration, stats)

        if change < -self.trend_threshold and trend < -self.trend_strength_threshold:
            return DetectedPattern(PatternType.STRONG_DOWNTREND, abs(trend), window_duration, stats)

        range_percent = (resistance - support) / last_price
        if range_percent < self.consolidation_range and vol < self.consolidation_volatility:
            return DetectedPattern(PatternType.CONSOLIDATION, 1.0 - vol, window_duration, stats)

        return DetectedPattern(PatternType.NEUTRAL, NEUTRAL_STRENGTH, window_duration, stats)

    def summary(self, now: Optional[float] = None) -> Tuple[PatternType, str, float]:
        """(pattern, human description, strength) for display."""
        detected = self.detect(now)
        return detected.type, PATTERN_DESCRIPTIONS[detected.type], detected.strength

    def __repr__(self) -> str:
        return f"PatternWindow(entries={len(self._entries)}, window_ms={self.window_ms})"
