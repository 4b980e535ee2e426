"""
Session Demo
Drives a sonification session with a synthetic random walk and prints
what the music layer would have done.

Run directly:
    python app/session_demo.py
"""

import logging

import numpy as np
import pandas as pd

from sonify_config import SonificationConfig
from sonification_engine import SonificationEngine
from tick_analyzer import format_price
from tick_replay import pattern_breakdown, replay_ticks


def synthetic_prices(
    n: int,
    start: float = 50000.0,
    step_pct: float = 0.0005,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Geometric random walk sampled every 100 ms.

    Args:
        n: Number of ticks
        start: First price
        step_pct: Std of per-tick returns (0.0005 == 0.05%)
        seed: RNG seed

    Returns:
        Frame with 'time' (ms) and 'price' columns
    """
    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0, step_pct, size=n)
    returns[0] = 0.0
    prices = start * np.cumprod(1.0 + returns)

    return pd.DataFrame({
        "time": np.arange(n, dtype=float) * 100.0,
        "price": prices,
    })


def run_demo(n_ticks: int = 600, seed: int = 42) -> pd.DataFrame:
    """Replay a synthetic session with a seeded engine."""
    df = synthetic_prices(n_ticks, seed=seed)
    engine = SonificationEngine(SonificationConfig(seed=seed))
    return replay_ticks(df, engine=engine)


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("PRICE SONIFICATION SESSION DEMO")
    print("=" * 60)

    results = run_demo()

    print(f"\nTicks: {len(results)}")
    print(f"Price: {format_price(results['price'].iloc[0])} -> {format_price(results['price'].iloc[-1])}")
    print(f"Pitch range: {results['pitch'].min()} - {results['pitch'].max()}")
    print(f"Percussion hits: {int(results['percussion'].sum())}")
    print(f"Harmony changes: {int(results['harmony_quality'].notna().sum())}")

    print("\nPattern breakdown:")
    for pattern, row in pattern_breakdown(results).iterrows():
        print(f"  {pattern:<18} {int(row['count']):>5}  ({row['share'] * 100:.1f}%)")

    print("\nLast 5 ticks:")
    print(results[["price", "note", "direction", "pattern", "velocity"]].tail(5).to_string(index=False))

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
