# tick_analyzer.py
# Per-tick direction/magnitude classification
# Immediate: no debouncing, no throttling, every tick is classified

import math
from typing import Optional

from tick_schema import Direction, PriceChange


class TickAnalyzer:
    """
    Classifies each tick against the one before it.

    Also keeps an exponential moving average for trend display. The EMA
    has no influence on direction or magnitude.
    """

    def __init__(
        self,
        neutral_threshold: float = 1e-6,  # 0.0001%
        saturation: float = 0.005,        # 0.5% move -> magnitude 1
        ema_alpha: float = 0.3,
    ):
        if saturation <= 0:
            raise ValueError(f"saturation must be positive, got {saturation}")
        if not 0 < ema_alpha <= 1:
            raise ValueError(f"ema_alpha must be in (0, 1], got {ema_alpha}")

        self.neutral_threshold = neutral_threshold
        self.saturation = saturation
        self.ema_alpha = ema_alpha
        self.ema: Optional[float] = None

    def classify(self, price: float, previous: Optional[float]) -> PriceChange:
        """
        Classify a tick.

        Args:
            price: Current price
            previous: Price of the preceding tick, None for the first tick

        Returns:
            PriceChange; neutral ticks (including the first) carry zero magnitude
        """
        if previous is None:
            self.ema = price
            return PriceChange(direction=Direction.NEUTRAL, magnitude=0.0, percent_change=0.0)

        if self.ema is None:
            self.ema = price
        else:
            self.ema = self.ema_alpha * price + (1 - self.ema_alpha) * self.ema

        percent_change = (price - previous) / previous
        abs_change = abs(percent_change)

        # Threshold is inclusive; isclose absorbs float error on exact-threshold moves
        if abs_change < self.neutral_threshold or math.isclose(
            abs_change, self.neutral_threshold, rel_tol=1e-6
        ):
            return PriceChange(
                direction=Direction.NEUTRAL,
                magnitude=0.0,
                percent_change=percent_change,
            )

        direction = Direction.UP if percent_change > 0 else Direction.DOWN
        magnitude = min(abs_change / self.saturation, 1.0)

        return PriceChange(
            direction=direction,
            magnitude=magnitude,
            percent_change=percent_change,
        )

    @property
    def smoothed_price(self) -> Optional[float]:
        return self.ema

    def reset(self):
        self.ema = None


def format_price(price: float) -> str:
    """50000.5 -> "$50,000.50"."""
    return f"${price:,.2f}"


def format_percent_change(change: float) -> str:
    """0.00123 -> "+0.1230%"."""
    return f"{change * 100:+.4f}%"
