"""Regime indicators — Hurst exponent and linear-regression channel.

Both are pure functions of the trailing bar window, computed with numpy.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from trapline.strategy.models import Bar

HURST_WINDOW = 200
HURST_MIN = 0.01
HURST_MAX = 0.99

TRENDING = "trending"
MEAN_REVERTING = "mean_reverting"
RANDOM = "random"
UNKNOWN = "unknown"

INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "1h": 3600,
    "4h": 14400,
    "1d": 86400,
}


@dataclass(frozen=True)
class HurstResult:
    """Hurst exponent and the regime it implies."""

    value: float
    regime: str


@dataclass(frozen=True)
class RegressionChannel:
    """OLS mid line with ± ``std_mult`` residual bands, start → projected end."""

    t1: int
    t2: int
    mid1: float
    mid2: float
    upper1: float
    upper2: float
    lower1: float
    lower2: float
    slope: float
    std_dev: float


def clamp_hurst(value: float) -> float:
    return min(max(value, HURST_MIN), HURST_MAX)


def classify_hurst(value: float) -> str:
    if value > 0.55:
        return TRENDING
    if value < 0.45:
        return MEAN_REVERTING
    return RANDOM


def calculate_hurst(bars: Sequence[Bar], window: int = HURST_WINDOW) -> HurstResult:
    """Rescaled-range Hurst estimate over the last *window* closes.

    ``H = log(R / S) / log(n)`` on the ``window - 1`` log returns, clamped
    to ``[0.01, 0.99]``.  Fewer than *window* bars returns
    ``HurstResult(0.0, "unknown")``; a flat series is treated as a random
    walk.
    """
    if len(bars) < window:
        return HurstResult(0.0, UNKNOWN)

    closes = np.array([b.close for b in bars[-window:]], dtype=np.float64)
    returns = np.diff(np.log(closes))
    std = float(returns.std())
    if std == 0 or not math.isfinite(std):
        return HurstResult(0.5, RANDOM)

    cumulative = np.cumsum(returns - returns.mean())
    rescaled = float(cumulative.max() - cumulative.min()) / std
    if rescaled <= 0:
        return HurstResult(HURST_MIN, MEAN_REVERTING)

    hurst = clamp_hurst(math.log(rescaled) / math.log(len(returns)))
    return HurstResult(hurst, classify_hurst(hurst))


def calculate_regression_channel(
    bars: Sequence[Bar],
    period: int = 100,
    std_mult: float = 2.0,
    interval: str = "15m",
    future_bars: int = 20,
) -> Optional[RegressionChannel]:
    """Least-squares channel over the last *period* closes.

    The mid line is projected *future_bars* bars past the last bar; the
    bands sit ``std_mult`` population standard deviations of the residuals
    either side.  Returns ``None`` when fewer than *period* bars exist.
    """
    if period < 2 or len(bars) < period:
        return None

    window = bars[-period:]
    y = np.array([b.close for b in window], dtype=np.float64)
    x = np.arange(len(y), dtype=np.float64)
    slope, intercept = np.polyfit(x, y, 1)
    residuals = y - (slope * x + intercept)
    std_dev = float(np.sqrt(np.mean(residuals ** 2)))

    step = INTERVAL_SECONDS.get(interval, 900)
    start = float(intercept)
    end = float(intercept + slope * (len(y) - 1 + future_bars))
    band = std_dev * std_mult
    return RegressionChannel(
        t1=window[0].time,
        t2=bars[-1].time + future_bars * step,
        mid1=start,
        mid2=end,
        upper1=start + band,
        upper2=end + band,
        lower1=start - band,
        lower2=end - band,
        slope=float(slope),
        std_dev=std_dev,
    )
