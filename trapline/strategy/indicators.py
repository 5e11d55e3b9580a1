"""Technical indicators — True Range, ATR and volume averages. Pure functions, no I/O."""

from typing import Sequence

from trapline.strategy.models import Bar


def true_range(bars: Sequence[Bar], index: int) -> float:
    """True Range of ``bars[index]`` against the previous close.

    ``TR = max(high - low, |high - prev_close|, |low - prev_close|)``
    """
    bar = bars[index]
    prev_close = bars[index - 1].close
    return max(
        bar.high - bar.low,
        abs(bar.high - prev_close),
        abs(bar.low - prev_close),
    )


def calculate_atr(bars: Sequence[Bar], period: int = 14) -> float:
    """Calculate the Average True Range of the last *period* bars.

    Requires at least ``period + 1`` bars (need a previous close for TR).

    Raises ``ValueError`` if insufficient data.
    """
    if len(bars) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} bars for ATR({period}), "
            f"got {len(bars)}"
        )
    recent = [true_range(bars, i) for i in range(len(bars) - period, len(bars))]
    return sum(recent) / period


def atr_series(bars: Sequence[Bar], period: int = 14) -> list[float]:
    """Rolling ATR aligned with *bars*.

    ``series[i]`` is the mean True Range of the *period* bars ending at
    ``i``.  Entries with ``i < period`` are ``0.0``; callers treat a zero
    ATR as "unavailable" and fall back to the bar's own range.
    """
    n = len(bars)
    series = [0.0] * n
    if n <= period:
        return series

    ranges = [0.0] + [true_range(bars, i) for i in range(1, n)]
    window = sum(ranges[1 : period + 1])
    series[period] = window / period
    for i in range(period + 1, n):
        window += ranges[i] - ranges[i - period]
        series[i] = window / period
    return series


def average_volume_series(
    bars: Sequence[Bar],
    period: int = 20,
    include_current: bool = True,
) -> list[float]:
    """Rolling mean volume aligned with *bars*.

    With ``include_current`` the window is ``[i - period + 1, i]``,
    otherwise the *period* bars strictly before ``i``.  Entries with
    ``i < period`` are ``0.0``.
    """
    n = len(bars)
    series = [0.0] * n
    offset = 0 if include_current else 1
    for i in range(period, n):
        window = bars[i - period + 1 - offset : i + 1 - offset]
        series[i] = sum(b.volume or 0.0 for b in window) / period
    return series
