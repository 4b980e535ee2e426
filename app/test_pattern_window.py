"""
Unit Tests for the Pattern Window
Run with: pytest test_pattern_window.py -v

Each market shape is built so exactly one detector rule applies,
except where a test checks detection priority.
"""

import numpy as np
import pytest

from tick_schema import Direction, PatternType
from pattern_window import (
    PatternWindow,
    detect_breakout,
    detect_reversal,
    support_resistance,
    trend_strength,
    volatility,
)


def fill(window: PatternWindow, prices, step_ms: float = 100.0) -> float:
    """Append prices at fixed spacing; returns the last timestamp."""
    timestamp = 0.0
    for i, price in enumerate(prices):
        timestamp = i * step_ms
        window.append(price, Direction.NEUTRAL, timestamp)
    return timestamp


def ramp(n: int, step: float) -> list:
    return [100.0 * (1 + step) ** i for i in range(n)]


def alternating(n: int, low: float, high: float) -> list:
    return [low if i % 2 == 0 else high for i in range(n)]


def reversal_up_prices() -> list:
    """Flat, then a 0.54% slide, then a sharp 1.5% recovery."""
    base = alternating(20, 100.00, 100.01)
    falling = [100.0 - 0.06 * k for k in range(1, 11)]
    rising = [99.5 + 0.17 * k for k in range(1, 11)]
    return base + falling + rising


def reversal_down_prices() -> list:
    base = alternating(20, 100.00, 100.01)
    rising = [100.0 + 0.06 * k for k in range(1, 11)]
    falling = [100.5 - 0.17 * k for k in range(1, 11)]
    return base + rising + falling


# ============================================================================
# Window metrics
# ============================================================================

class TestMetrics:

    def test_trend_strength(self):
        assert trend_strength(np.array([100.0, 100.5])) == pytest.approx(0.5)
        assert trend_strength(np.array([100.0, 102.0])) == 1.0
        assert trend_strength(np.array([100.0, 97.0])) == -1.0
        assert trend_strength(np.array([100.0])) == 0.0

    def test_volatility_of_clean_ramp_is_calm(self):
        """Drift alone is not volatility."""
        assert volatility(np.array(ramp(40, 0.0005))) < 0.05

    def test_volatility_of_noise(self):
        assert volatility(np.array(alternating(40, 100.0, 101.0))) > 0.9
        assert volatility(np.array([100.0, 101.0])) == 0.0

    def test_support_resistance(self):
        prices = np.arange(100.0, 110.0)
        assert support_resistance(prices) == (101.0, 109.0)
        assert support_resistance(np.array([1.0, 2.0, 3.0])) == (3.0, 3.0)

    def test_detect_reversal(self):
        assert detect_reversal(np.array(reversal_up_prices())) == Direction.UP
        assert detect_reversal(np.array(reversal_down_prices())) == Direction.DOWN
        assert detect_reversal(np.array(ramp(40, 0.0005))) is None
        assert detect_reversal(np.array(ramp(19, -0.01))) is None

    def test_detect_breakout(self):
        up = alternating(34, 100.00, 100.02) + [100.5]
        down = alternating(34, 100.00, 100.02) + [99.5]
        assert detect_breakout(np.array(up)) == Direction.UP
        assert detect_breakout(np.array(down)) == Direction.DOWN
        assert detect_breakout(np.array(alternating(40, 100.00, 100.02))) is None
        assert detect_breakout(np.array([100.0] * 9)) is None


# ============================================================================
# Buffer behaviour
# ============================================================================

class TestWindowBuffer:

    def test_eviction_on_horizon(self):
        window = PatternWindow(window_ms=1000)
        window.append(100.0, Direction.NEUTRAL, 0.0)
        window.append(100.1, Direction.UP, 500.0)
        window.append(100.2, Direction.UP, 1000.0)
        assert len(window) == 2

        entries = window.entries(now=1600.0)
        assert [e.timestamp for e in entries] == [1000.0]

    def test_count_cap(self):
        window = PatternWindow(max_entries=5)
        fill(window, ramp(10, 0.001))
        assert len(window) == 5
        assert window.latest(2, now=900.0)[-1].price == pytest.approx(100.0 * 1.001 ** 9)

    def test_latest_evicts_first(self):
        window = PatternWindow(window_ms=1000)
        window.append(100.0, Direction.NEUTRAL, 0.0)
        window.append(100.1, Direction.UP, 800.0)

        assert [e.timestamp for e in window.latest(5, now=900.0)] == [0.0, 800.0]
        assert [e.timestamp for e in window.latest(5, now=1500.0)] == [800.0]
        assert window.latest(5, now=2000.0) == []

    def test_out_of_order_fails_loudly(self):
        window = PatternWindow()
        window.append(100.0, Direction.NEUTRAL, 1000.0)
        with pytest.raises(ValueError, match="TEMPORAL INCONSISTENCY"):
            window.append(100.0, Direction.NEUTRAL, 999.0)

    def test_equal_timestamps_allowed(self):
        window = PatternWindow()
        window.append(100.0, Direction.NEUTRAL, 1000.0)
        window.append(100.1, Direction.UP, 1000.0)
        assert len(window) == 2

    def test_clock_used_without_timestamp(self):
        now = [5000.0]
        window = PatternWindow(window_ms=1000, clock=lambda: now[0])
        window.append(100.0, Direction.NEUTRAL)
        assert window.latest(1)[0].timestamp == 5000.0

        now[0] = 7000.0
        assert window.prices().size == 0

    def test_clear(self):
        window = PatternWindow()
        fill(window, ramp(10, 0.001))
        window.clear()
        assert len(window) == 0


# ============================================================================
# Classification
# ============================================================================

class TestDetection:

    def test_insufficient_data_is_neutral(self):
        window = PatternWindow()
        last = fill(window, ramp(29, 0.01))
        pattern = window.detect(last)
        assert pattern.type == PatternType.NEUTRAL
        assert pattern.strength == 0.0
        assert pattern.stats.tick_count == 29

    def test_strong_uptrend(self):
        window = PatternWindow()
        last = fill(window, ramp(40, 0.0005))
        pattern = window.detect(last)
        assert pattern.type == PatternType.STRONG_UPTREND
        assert pattern.strength == 1.0
        assert pattern.duration_ms == 40 * 50
        assert pattern.stats.tick_count == 40
        assert pattern.stats.price_change_percent > 0.001

    def test_strong_downtrend(self):
        window = PatternWindow()
        last = fill(window, ramp(40, -0.0005))
        pattern = window.detect(last)
        assert pattern.type == PatternType.STRONG_DOWNTREND
        assert pattern.strength == 1.0

    def test_high_volatility(self):
        window = PatternWindow()
        last = fill(window, alternating(40, 100.0, 101.0))
        pattern = window.detect(last)
        assert pattern.type == PatternType.HIGH_VOLATILITY
        assert pattern.strength > 0.7

    def test_consolidation(self):
        window = PatternWindow()
        last = fill(window, alternating(40, 100.00, 100.03))
        pattern = window.detect(last)
        assert pattern.type == PatternType.CONSOLIDATION
        assert pattern.strength == pytest.approx(1.0 - pattern.stats.volatility)
        assert pattern.stats.support_level == 100.00
        assert pattern.stats.resistance_level == 100.03

    def test_neutral(self):
        window = PatternWindow()
        last = fill(window, alternating(40, 100.00, 100.08))
        pattern = window.detect(last)
        assert pattern.type == PatternType.NEUTRAL
        assert pattern.strength == 0.5

    def test_breakout_up(self):
        window = PatternWindow()
        last = fill(window, alternating(34, 100.00, 100.02) + [100.5])
        pattern = window.detect(last)
        assert pattern.type == PatternType.BREAKOUT_UP
        assert pattern.strength == 0.9
        assert pattern.duration_ms == 5000

    def test_breakout_down(self):
        window = PatternWindow()
        last = fill(window, alternating(34, 100.00, 100.02) + [99.5])
        assert window.detect(last).type == PatternType.BREAKOUT_DOWN

    def test_reversal_beats_breakout(self):
        """Both detectors fire on this shape; reversal is checked first."""
        prices = reversal_up_prices()
        assert detect_breakout(np.array(prices)) == Direction.UP

        window = PatternWindow()
        last = fill(window, prices)
        pattern = window.detect(last)
        assert pattern.type == PatternType.REVERSAL_UP
        assert pattern.duration_ms == 10 * 100
        assert pattern.strength == pytest.approx(abs(pattern.stats.trend_strength))

    def test_reversal_down(self):
        window = PatternWindow()
        last = fill(window, reversal_down_prices())
        assert window.detect(last).type == PatternType.REVERSAL_DOWN

    def test_evicted_window_reads_neutral(self):
        window = PatternWindow()
        last = fill(window, ramp(40, 0.0005))
        pattern = window.detect(last + 60000)
        assert pattern.type == PatternType.NEUTRAL
        assert pattern.stats.tick_count == 0

    def test_detection_is_stateless(self):
        window = PatternWindow()
        last = fill(window, ramp(40, 0.0005))
        assert window.detect(last) == window.detect(last)

    def test_summary(self):
        window = PatternWindow()
        last = fill(window, ramp(40, 0.0005))
        pattern, description, strength = window.summary(last)
        assert pattern == PatternType.STRONG_UPTREND
        assert description == "Strong upward momentum"
        assert strength == 1.0

    def test_invalid_configuration(self):
        with pytest.raises(ValueError, match="window_ms"):
            PatternWindow(window_ms=0)
        with pytest.raises(ValueError, match="breakout_recent"):
            PatternWindow(breakout_lookback=5, breakout_recent=5)
