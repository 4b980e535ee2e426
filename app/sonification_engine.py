# sonification_engine.py
# One sonification session: price ticks in, musical decisions out
# Owns every stateful component. No module globals, so sessions can coexist.

import logging
import math
import numbers
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from tick_schema import (
    DetectedPattern,
    Direction,
    HarmonyUpdate,
    PatternType,
    PATTERN_NAMES,
    TickResult,
    TickStats,
)
from music_theory import midi_to_frequency, midi_to_note_name, pad_chord_notes, trend_chord_quality
from price_normalizer import PriceNormalizer
from tick_analyzer import TickAnalyzer
from pattern_window import PatternWindow, monotonic_ms
from harmony_engine import HarmonyEngine
from melody_heuristics import (
    TICK_RATE_HORIZON_MS,
    auto_duck_multiplier,
    calculate_tick_stats,
    note_duration,
    should_play_percussion,
    velocity_from_magnitude,
)
from mix_levels import final_volume_db, layer_volumes
from sonify_config import SonificationConfig

logger = logging.getLogger(__name__)


class CadenceGate:
    """
    Polling throttle for the slow layers.

    Not a timer: due() has to be asked on every tick and fires when more
    than interval_ms has passed since it last fired. The first call fires.
    """

    def __init__(self, interval_ms: float):
        self.interval_ms = interval_ms
        self.last_fired: Optional[float] = None

    def due(self, now: float) -> bool:
        if self.last_fired is None or now - self.last_fired > self.interval_ms:
            self.last_fired = now
            return True
        return False

    def reset(self):
        self.last_fired = None


@dataclass
class SessionState:
    """
    What the session remembers between ticks.
    Everything else lives inside the components.
    """
    previous_price: Optional[float] = None
    previous_direction: Direction = Direction.NEUTRAL
    last_timestamp: Optional[float] = None
    current_pattern: PatternType = PatternType.NEUTRAL
    tick_count: int = 0


class SonificationEngine:
    """
    Per-session entry point for the analytics core.

    Per tick (synchronous, run to completion):
        TickAnalyzer -> PatternWindow.append -> PriceNormalizer -> voice curves

    Slow cadences, re-evaluated on every tick:
        bass (500 ms), pad chord (2000 ms), pattern -> harmony (3000 ms)

    Usage:
        engine = SonificationEngine(SonificationConfig(seed=7))
        result = engine.on_tick(50123.5)
        if result.harmony:
            play(result.harmony.chord_notes)
    """

    def __init__(
        self,
        config: Optional[SonificationConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize a session.

        Args:
            config: Settings read once here; defaults if None
            clock: Millisecond clock for ticks without explicit timestamps
        """
        self.config = config or SonificationConfig()
        self.clock = clock or monotonic_ms
        cfg = self.config

        self.analyzer = TickAnalyzer(
            neutral_threshold=cfg.neutral_threshold,
            saturation=cfg.magnitude_saturation,
            ema_alpha=cfg.ema_alpha,
        )
        self.normalizer = PriceNormalizer(
            min_pitch=cfg.min_pitch,
            max_pitch=cfg.max_pitch,
            max_samples=cfg.max_tracked_prices,
            smoothing=cfg.range_smoothing,
            min_span_fraction=cfg.min_span_fraction,
            warmup_samples=cfg.range_warmup_samples,
            initial_range=cfg.initial_range,
            initial_span_fraction=cfg.initial_span_fraction,
            root=cfg.root,
        )
        self.window = PatternWindow(
            window_ms=cfg.window_ms,
            max_entries=cfg.max_window_entries,
            min_samples=cfg.min_samples,
            reversal_ticks=cfg.reversal_ticks,
            reversal_threshold=cfg.reversal_threshold,
            breakout_lookback=cfg.breakout_lookback,
            breakout_recent=cfg.breakout_recent,
            breakout_fraction=cfg.breakout_fraction,
            trend_reference=cfg.trend_reference,
            trend_threshold=cfg.trend_threshold,
            trend_strength_threshold=cfg.trend_strength_threshold,
            volatility_reference=cfg.volatility_reference,
            volatility_high=cfg.volatility_high,
            consolidation_range=cfg.consolidation_range,
            consolidation_volatility=cfg.consolidation_volatility,
            clock=self.clock,
        )
        self.harmony = HarmonyEngine(
            seed=cfg.seed,
            min_pitch=cfg.arpeggio_min_pitch,
            max_pitch=cfg.arpeggio_max_pitch,
            arpeggio_count=cfg.arpeggio_count,
        )

        self.bass_gate = CadenceGate(cfg.bass_interval_ms)
        self.pad_gate = CadenceGate(cfg.pad_interval_ms)
        self.harmony_gate = CadenceGate(cfg.harmony_interval_ms)

        self.layers = layer_volumes(cfg.sound_mode)
        self.tick_times: deque = deque()
        self.state = SessionState()

        logger.info(
            "Sonification session ready: scale=%s window=%.0fms min_samples=%d",
            cfg.scale.name.lower(), cfg.window_ms, cfg.min_samples,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def _validate_tick(self, price: float, timestamp: float):
        """Reject garbage before it reaches any window."""
        if isinstance(price, bool) or not isinstance(price, numbers.Real):
            raise ValueError(f"Invalid price type: {type(price).__name__}")
        if not math.isfinite(price):
            raise ValueError(f"Invalid price: {price} (non-finite)")
        if price <= 0:
            raise ValueError(f"Invalid price: {price} (must be positive)")
        if not math.isfinite(timestamp):
            raise ValueError(f"Invalid timestamp: {timestamp}")
        last = self.state.last_timestamp
        if last is not None and timestamp < last:
            raise ValueError(
                f"TEMPORAL INCONSISTENCY: tick at {timestamp} arrived after tick at {last}"
            )

    def on_tick(self, price: float, timestamp: Optional[float] = None) -> TickResult:
        """
        Process one inbound price.

        Args:
            price: Trade price, finite and positive
            timestamp: Monotonic milliseconds; defaults to the session clock

        Returns:
            TickResult with pitch, bass pitch, change, pattern and the
            voice/cadence decisions for this tick

        Raises:
            ValueError: On non-finite/non-positive prices or time going backwards
        """
        now = self.clock() if timestamp is None else float(timestamp)
        self._validate_tick(price, now)
        price = float(price)
        cfg = self.config

        # Per-tick analytics
        change = self.analyzer.classify(price, self.state.previous_price)
        self.window.append(price, change.direction, now)
        self.normalizer.update(price)

        self.tick_times.append(now)
        while self.tick_times and self.tick_times[0] <= now - TICK_RATE_HORIZON_MS:
            self.tick_times.popleft()
        rate = len(self.tick_times)

        pitch = self.normalizer.price_to_pitch(price, cfg.scale)
        bass = self.normalizer.bass_pitch(price, cfg.scale)

        velocity = velocity_from_magnitude(change.magnitude, cfg.min_velocity, cfg.max_velocity)
        duration = note_duration(rate, cfg.min_duration, cfg.max_duration, cfg.duration_rate_threshold)
        duck = auto_duck_multiplier(rate, cfg.duck_threshold, cfg.duck_max_rate, cfg.duck_min_multiplier)
        level_db = final_volume_db(cfg.master_volume, self.layers.tick, duck)
        percussion = self.layers.percussion > 0 and should_play_percussion(
            change.direction, self.state.previous_direction
        )

        pattern = self.window.detect(now)
        if pattern.type != self.state.current_pattern:
            logger.info(
                "Pattern %s -> %s (strength %.2f, %d ticks)",
                PATTERN_NAMES[self.state.current_pattern], pattern.name,
                pattern.strength, pattern.stats.tick_count,
            )

        # Slow cadences: gates keep their schedule, muted layers emit nothing
        bass_update = None
        if self.bass_gate.due(now) and self.layers.bass > 0:
            bass_update = bass

        pad_chord = None
        if self.pad_gate.due(now) and self.layers.pad > 0:
            quality = trend_chord_quality(change.percent_change)
            pad_chord = tuple(pad_chord_notes(pitch - 12, quality))

        # Harmony voices through the pad layer
        harmony = None
        if (
            self.harmony_gate.due(now)
            and pattern.type != PatternType.NEUTRAL
            and self.layers.pad > 0
        ):
            harmony = self.get_harmony_update(pattern, pitch - 12)

        self.state.previous_price = price
        self.state.previous_direction = change.direction
        self.state.last_timestamp = now
        self.state.current_pattern = pattern.type
        self.state.tick_count += 1

        return TickResult(
            price=price,
            timestamp=now,
            pitch=pitch,
            bass_pitch=bass,
            note_name=midi_to_note_name(pitch),
            frequency=midi_to_frequency(pitch),
            change=change,
            pattern=pattern,
            smoothed_price=self.analyzer.smoothed_price,
            velocity=velocity,
            duration_s=duration,
            duck_multiplier=duck,
            level_db=level_db,
            tick_rate=rate,
            percussion=percussion,
            bass_update=bass_update,
            pad_chord=pad_chord,
            harmony=harmony,
        )

    # ------------------------------------------------------------------
    # Slow-cadence queries
    # ------------------------------------------------------------------

    def get_harmony_update(self, pattern: DetectedPattern, base_pitch: int) -> HarmonyUpdate:
        """Advance the harmonic state and return what to voice next."""
        return self.harmony.generate_response(pattern, base_pitch)

    def detect_pattern(self, now: Optional[float] = None) -> DetectedPattern:
        return self.window.detect(self._query_time(now))

    def tick_stats(self, now: Optional[float] = None) -> TickStats:
        now = self._query_time(now)
        return calculate_tick_stats(self.window.entries(now), now)

    def harmony_description(self) -> str:
        return self.harmony.describe()

    @property
    def current_pattern(self) -> PatternType:
        return self.state.current_pattern

    def _query_time(self, now: Optional[float]) -> float:
        """Explicitly timestamped sessions query at their own latest tick time."""
        if now is not None:
            return now
        if self.state.last_timestamp is not None and self.clock is monotonic_ms:
            return max(self.clock(), self.state.last_timestamp)
        return self.clock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self):
        """Clear every window, range, smoother, gate and the harmonic state."""
        self.analyzer.reset()
        self.normalizer.reset()
        self.window.clear()
        self.harmony.reset()
        self.bass_gate.reset()
        self.pad_gate.reset()
        self.harmony_gate.reset()
        self.tick_times.clear()
        ticks = self.state.tick_count
        self.state = SessionState()
        logger.info("Sonification session reset after %d ticks", ticks)

    def __repr__(self) -> str:
        return (
            f"SonificationEngine(ticks={self.state.tick_count}, "
            f"pattern={PATTERN_NAMES[self.state.current_pattern]}, "
            f"range={self.normalizer.range})"
        )
