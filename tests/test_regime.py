"""Tests for trapline.strategy.regime — Hurst exponent and regression channel."""

import math

import pytest

from trapline.strategy.models import Bar
from trapline.strategy.regime import (
    MEAN_REVERTING,
    RANDOM,
    TRENDING,
    UNKNOWN,
    calculate_hurst,
    calculate_regression_channel,
    clamp_hurst,
    classify_hurst,
)


def _bars_from_closes(closes, step: int = 900) -> list[Bar]:
    return [
        Bar(time=i * step, open=c, high=c + 1, low=c - 1, close=c)
        for i, c in enumerate(closes)
    ]


def _bars_from_returns(returns, start: float = 100.0) -> list[Bar]:
    closes = [start]
    for r in returns:
        closes.append(closes[-1] * math.exp(r))
    return _bars_from_closes(closes)


class TestHurst:
    def test_short_series_unknown(self):
        result = calculate_hurst(_bars_from_closes([100.0] * 199))
        assert result.value == 0.0
        assert result.regime == UNKNOWN

    def test_flat_series_is_random(self):
        result = calculate_hurst(_bars_from_closes([100.0] * 200))
        assert result.value == 0.5
        assert result.regime == RANDOM

    def test_persistent_returns_trend(self):
        """100 up-moves then 99 down-moves: a long excursion → H ≈ 0.87."""
        bars = _bars_from_returns([0.01] * 100 + [-0.01] * 99)
        result = calculate_hurst(bars)
        assert result.regime == TRENDING
        assert 0.8 < result.value < 0.95

    def test_alternating_returns_mean_revert(self):
        bars = _bars_from_returns([0.01, -0.01] * 99 + [0.01])
        result = calculate_hurst(bars)
        assert result.regime == MEAN_REVERTING
        assert 0.0 < result.value < 0.45

    def test_uses_trailing_window(self):
        noise = _bars_from_returns([0.01, -0.01] * 99 + [0.01])
        trend = _bars_from_returns([0.01] * 100 + [-0.01] * 99)
        assert calculate_hurst(noise + trend) == calculate_hurst(trend)

    def test_clamp_bounds(self):
        assert clamp_hurst(0.995) == 0.99
        assert clamp_hurst(1.3) == 0.99
        assert clamp_hurst(0.005) == 0.01
        assert clamp_hurst(-0.2) == 0.01
        assert clamp_hurst(0.6) == 0.6

    def test_value_within_bounds(self):
        for returns in ([0.01] * 199, [0.01] * 198 + [0.0], [0.01, -0.01] * 99 + [0.01]):
            value = calculate_hurst(_bars_from_returns(returns)).value
            assert 0.01 <= value <= 0.99

    def test_classification_bounds(self):
        assert classify_hurst(0.56) == TRENDING
        assert classify_hurst(0.55) == RANDOM
        assert classify_hurst(0.45) == RANDOM
        assert classify_hurst(0.44) == MEAN_REVERTING


class TestRegressionChannel:
    def test_not_enough_bars(self):
        assert calculate_regression_channel(_bars_from_closes([1.0] * 99)) is None

    def test_perfect_line_has_zero_width(self):
        bars = _bars_from_closes([100.0 + i for i in range(150)], step=3600)
        channel = calculate_regression_channel(bars, period=100, interval="1h")
        assert channel.slope == pytest.approx(1.0)
        assert channel.std_dev == pytest.approx(0.0, abs=1e-9)
        assert channel.t1 == 50 * 3600
        assert channel.t2 == 149 * 3600 + 20 * 3600
        assert channel.mid1 == pytest.approx(150.0)
        assert channel.mid2 == pytest.approx(150.0 + 119.0)
        assert channel.upper1 == pytest.approx(channel.lower1, abs=1e-6)

    def test_bands_sit_std_mult_apart(self):
        closes = [100.0 + (1.0 if i % 2 else -1.0) for i in range(100)]
        channel = calculate_regression_channel(_bars_from_closes(closes), std_mult=2.0)
        assert channel.std_dev == pytest.approx(1.0, rel=1e-3)
        assert channel.upper1 - channel.mid1 == pytest.approx(2.0 * channel.std_dev)
        assert channel.mid1 - channel.lower1 == pytest.approx(2.0 * channel.std_dev)

    def test_unknown_interval_defaults_to_15m(self):
        bars = _bars_from_closes([100.0 + i for i in range(100)])
        channel = calculate_regression_channel(bars, interval="3w")
        assert channel.t2 == bars[-1].time + 20 * 900
