"""
Unit Tests for the Adaptive Price Normalizer
Run with: pytest test_price_normalizer.py -v
"""

import numpy as np
import pytest

from music_theory import ScaleType, is_in_scale
from price_normalizer import PriceNormalizer, rank_percentile


class TestRankPercentile:

    def test_lower_rank(self):
        values = np.arange(1.0, 11.0)
        assert rank_percentile(values, 0.05) == 1.0
        assert rank_percentile(values, 0.5) == 6.0
        assert rank_percentile(values, 0.95) == 10.0

    def test_top_quantile_clamped(self):
        assert rank_percentile(np.array([1.0, 2.0]), 1.0) == 2.0


class TestAdaptiveRange:

    def test_unseeded_before_first_price(self):
        """No range yet: pitch falls back to the middle of the band."""
        normalizer = PriceNormalizer()
        assert normalizer.range is None
        assert normalizer.price_to_raw_pitch(123.0) == 60
        assert normalizer.range_info()["span"] == 0.0

    def test_seeded_around_first_price(self):
        normalizer = PriceNormalizer()
        band = normalizer.update(100.0)
        assert band.low == pytest.approx(99.5)
        assert band.high == pytest.approx(100.5)

    def test_min_span_invariant_random_walk(self):
        """high - low >= 0.2% of low after every update."""
        rng = np.random.default_rng(3)
        prices = 50000 * np.cumprod(1 + rng.normal(0, 0.0003, size=2000))
        normalizer = PriceNormalizer(max_samples=500)

        for price in prices:
            band = normalizer.update(price)
            assert band.high > band.low
            assert band.span >= band.low * 0.002 - 1e-9

    def test_min_span_invariant_flat_market(self):
        """A perfectly flat market still spreads over the floor span."""
        normalizer = PriceNormalizer()
        for _ in range(300):
            band = normalizer.update(100.0)

        assert band.span >= band.low * 0.002 - 1e-9
        assert band.low < 100.0 < band.high
        assert normalizer.price_to_pitch(100.0) == 60

    def test_history_bounded(self):
        normalizer = PriceNormalizer(max_samples=50)
        for i in range(200):
            normalizer.update(100.0 + i * 0.01)
        assert len(normalizer.prices) == 50

    def test_initial_range(self):
        normalizer = PriceNormalizer(initial_range=(90000.0, 110000.0))
        assert normalizer.price_to_raw_pitch(100000.0) == 60
        assert normalizer.price_to_raw_pitch(110000.0) == 72

    def test_invalid_initial_range(self):
        with pytest.raises(ValueError, match="initial_range"):
            PriceNormalizer(initial_range=(2.0, 1.0))

    def test_reset(self):
        normalizer = PriceNormalizer()
        normalizer.update(100.0)
        normalizer.reset()
        assert normalizer.range is None
        assert len(normalizer.prices) == 0

        seeded = PriceNormalizer(initial_range=(90.0, 110.0))
        seeded.update(500.0)
        seeded.reset()
        assert seeded.range.low == 90.0
        assert seeded.range.high == 110.0


class TestPitchMapping:

    def test_clamps_out_of_range_prices(self):
        normalizer = PriceNormalizer()
        normalizer.update(100.0)
        assert normalizer.price_to_pitch(1000.0) == 72
        assert normalizer.price_to_pitch(1.0) == 48

    def test_pitch_stays_in_band_and_scale(self):
        rng = np.random.default_rng(11)
        prices = 100 * np.cumprod(1 + rng.normal(0, 0.002, size=500))
        normalizer = PriceNormalizer()

        for scale in ScaleType:
            normalizer.reset()
            for price in prices:
                normalizer.update(price)
                pitch = normalizer.price_to_pitch(price, scale)
                assert 48 <= pitch <= 72
                assert is_in_scale(pitch, scale)

    def test_bass_pitch_one_octave_down(self):
        normalizer = PriceNormalizer()
        normalizer.update(100.0)
        assert normalizer.price_to_pitch(100.0) == 60
        assert normalizer.bass_pitch(100.0) == 48
        assert normalizer.bass_pitch(100.5) == 60

    def test_note_name_and_frequency(self):
        normalizer = PriceNormalizer()
        normalizer.update(100.0)
        assert normalizer.price_to_note_name(100.0) == "C4"
        assert normalizer.price_to_frequency(100.0) == pytest.approx(261.6256, rel=1e-5)

    def test_available_notes(self):
        normalizer = PriceNormalizer()
        assert normalizer.available_notes()[0] == 48
        assert normalizer.available_notes()[-1] == 72
