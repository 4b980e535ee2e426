"""
Tick Replay
Feeds a recorded price series through a sonification session.

DataFrame in, DataFrame out: one row per tick with the musical
decisions the engine made. Useful for tuning thresholds offline and
for checking what a session would have sounded like.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from tick_schema import CHORD_QUALITY_NAMES, DIRECTION_NAMES, PATTERN_NAMES
from sonify_config import SonificationConfig
from sonification_engine import SonificationEngine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["time", "price"]

RESULT_COLUMNS = [
    "time",
    "price",
    "pitch",
    "note",
    "direction",
    "magnitude",
    "pattern",
    "pattern_strength",
    "velocity",
    "percussion",
    "bass_pitch",
    "harmony_quality",
    "harmony_intensity",
]


def _validate_input(df: pd.DataFrame) -> None:
    """Ensure required columns exist and every price is usable"""
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    if len(df) == 0:
        return

    prices = pd.to_numeric(df["price"], errors="coerce").to_numpy(dtype=float)
    if not np.all(np.isfinite(prices)):
        raise ValueError("Invalid price: non-finite or non-numeric values in 'price'")
    if np.any(prices <= 0):
        raise ValueError("Invalid price: prices must be positive")


def _timestamps_ms(times: pd.Series) -> pd.Series:
    """
    Convert the time column to milliseconds.

    Datetimes become epoch milliseconds; numeric columns are taken as
    milliseconds already.
    """
    if pd.api.types.is_datetime64_any_dtype(times):
        return times.map(lambda t: t.timestamp() * 1000.0).astype(float)
    if pd.api.types.is_numeric_dtype(times):
        return times.astype(float)
    raise ValueError(f"Unsupported time column dtype: {times.dtype}")


def replay_ticks(
    df: pd.DataFrame,
    engine: Optional[SonificationEngine] = None,
    config: Optional[SonificationConfig] = None,
) -> pd.DataFrame:
    """
    Run every row of a price frame through a session.

    Args:
        df: Frame with 'time' (datetime or ms) and 'price' columns
        engine: Session to feed; a fresh one is built from `config` if None
        config: Settings for the fresh session (ignored when engine is given)

    Returns:
        One row per tick, columns as RESULT_COLUMNS. harmony_* columns are
        empty on ticks where the harmony cadence did not fire.

    Raises:
        ValueError: On missing columns, bad prices or time going backwards
    """
    _validate_input(df)

    if len(df) == 0:
        logger.warning("Replay called with an empty frame, nothing to sonify")
        return pd.DataFrame(columns=RESULT_COLUMNS)

    times = _timestamps_ms(df["time"])
    if not times.is_monotonic_increasing:
        raise ValueError("TEMPORAL INCONSISTENCY: 'time' column is not monotonic increasing")

    if engine is None:
        engine = SonificationEngine(config)

    logger.info("Replaying %d ticks", len(df))

    rows = []
    for timestamp, price in zip(times.to_numpy(), df["price"].to_numpy(dtype=float)):
        result = engine.on_tick(float(price), float(timestamp))
        harmony = result.harmony
        rows.append({
            "time": result.timestamp,
            "price": result.price,
            "pitch": result.pitch,
            "note": result.note_name,
            "direction": DIRECTION_NAMES[result.change.direction],
            "magnitude": result.change.magnitude,
            "pattern": result.pattern.name,
            "pattern_strength": result.pattern.strength,
            "velocity": result.velocity,
            "percussion": result.percussion,
            "bass_pitch": result.bass_pitch,
            "harmony_quality": CHORD_QUALITY_NAMES[harmony.quality] if harmony else None,
            "harmony_intensity": harmony.intensity if harmony else np.nan,
        })

    results = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    logger.info(
        "Replay finished: %d ticks, final pattern %s",
        len(results), PATTERN_NAMES[engine.current_pattern],
    )
    return results


def pattern_breakdown(results: pd.DataFrame) -> pd.DataFrame:
    """
    How often each pattern was detected during a replay.

    Returns:
        Frame indexed by pattern name with 'count' and 'share' columns,
        most frequent first
    """
    if "pattern" not in results.columns:
        raise ValueError("Missing required columns: ['pattern']")

    counts = results["pattern"].value_counts()
    total = int(counts.sum())
    breakdown = pd.DataFrame({
        "count": counts.astype(int),
        "share": counts / total if total else counts.astype(float),
    })
    breakdown.index.name = "pattern"
    return breakdown
