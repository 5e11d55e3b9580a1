"""Pivot detection and trend-line fitting — pure functions.

Candidate lines connect two same-type pivots (the earlier one more
extreme), are validated against every bar in between, scored by touches
and duration, and finally de-duplicated so that only one line per price
cluster survives.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from trapline.strategy.models import ACTIVE, BROKEN, DOWN, UP, Bar, TrendLine

logger = logging.getLogger("trapline.trendlines")

MIN_BARS = 100
TOLERANCE_SCALE = 0.0005
TOUCH_TOLERANCE = 0.002
CLUSTER_PCT = 0.01
BREAK_CLUSTER_SECONDS = 3600
MAX_ACTIVE_LINES = 20


@dataclass(frozen=True)
class Pivot:
    """A swing high or swing low."""

    index: int
    time: int
    price: float
    strength: int


def pivot_strengths(fractal_strength: int) -> tuple[int, int, int]:
    """The three fractal windows scanned for a configured strength."""
    return (fractal_strength, max(2, fractal_strength - 2), fractal_strength + 3)


def find_pivots(
    bars: Sequence[Bar], strengths: Sequence[int],
) -> tuple[list[Pivot], list[Pivot]]:
    """Detect pivot highs and lows at each window in *strengths*.

    A bar is a pivot high when no bar within the window on either side has
    a strictly higher high (lows symmetric).  A bar index is recorded once
    per pivot type, at the first strength that finds it.

    Returns:
        ``(highs, lows)`` sorted by index.
    """
    highs: dict[int, Pivot] = {}
    lows: dict[int, Pivot] = {}
    for strength in strengths:
        for i in range(strength, len(bars) - strength):
            bar = bars[i]
            is_high = True
            is_low = True
            for j in range(1, strength + 1):
                if bars[i - j].high > bar.high or bars[i + j].high > bar.high:
                    is_high = False
                if bars[i - j].low < bar.low or bars[i + j].low < bar.low:
                    is_low = False
                if not is_high and not is_low:
                    break
            if is_high and i not in highs:
                highs[i] = Pivot(i, bar.time, bar.high, strength)
            if is_low and i not in lows:
                lows[i] = Pivot(i, bar.time, bar.low, strength)
    return (
        [highs[k] for k in sorted(highs)],
        [lows[k] for k in sorted(lows)],
    )


def _beyond(bar: Bar, line_type: str, theo: float, tol: float) -> bool:
    """``True`` when *bar* pierces the line by more than *tol* (fraction)."""
    if line_type == DOWN:
        return bar.high > theo * (1 + tol)
    return bar.low < theo * (1 - tol)


def _candidates(
    bars: Sequence[Bar],
    pivots: list[Pivot],
    line_type: str,
    angle_filter: bool,
    angle_max: float,
    tol: float,
    strict_mode: bool,
    show_history: bool,
) -> list[TrendLine]:
    lines: list[TrendLine] = []
    last_index = len(bars) - 1

    for a in range(len(pivots) - 1, 0, -1):
        pivot_a = pivots[a]
        for b in range(a - 1, -1, -1):
            pivot_b = pivots[b]
            if line_type == DOWN and not pivot_b.price > pivot_a.price:
                continue
            if line_type == UP and not pivot_b.price < pivot_a.price:
                continue

            slope = (pivot_a.price - pivot_b.price) / (pivot_a.index - pivot_b.index)
            slope_norm = abs(slope / pivot_b.price) * 10000
            if angle_filter and slope_norm > angle_max * 2:
                continue

            def theo(k: int) -> float:
                return pivot_b.price + slope * (k - pivot_b.index)

            if strict_mode and any(
                _beyond(bars[k], line_type, theo(k), tol)
                for k in range(pivot_b.index + 1, pivot_a.index)
            ):
                continue

            touch_indices = [pivot_b.index, pivot_a.index]
            for k in range(pivot_b.index + 1, pivot_a.index):
                touch_price = bars[k].high if line_type == DOWN else bars[k].low
                expected = theo(k)
                if abs(touch_price - expected) / expected <= TOUCH_TOLERANCE:
                    touch_indices.append(k)

            break_index = None
            for k in range(pivot_a.index + 1, len(bars)):
                if _beyond(bars[k], line_type, theo(k), tol * 0.5):
                    break_index = k
                    break

            if break_index is not None and not show_history:
                continue

            end_index = break_index if break_index is not None else last_index
            duration_hours = (bars[end_index].time - pivot_b.time) / 3600
            touches = len(touch_indices)
            lines.append(
                TrendLine(
                    type=line_type,
                    p1=pivot_b.price,
                    t1=pivot_b.time,
                    p2=theo(end_index),
                    t2=bars[end_index].time,
                    slope=slope,
                    score=max(0, touches - 2) * 15 + duration_hours * 2,
                    touch_count=touches,
                    touch_indices=tuple(touch_indices),
                    status=BROKEN if break_index is not None else ACTIVE,
                    start_index=pivot_b.index,
                    pivot_index=pivot_a.index,
                    end_index=end_index,
                    duration_hours=duration_hours,
                    slope_norm=slope_norm,
                    break_index=break_index,
                )
            )
    return lines


def filter_active_lines(
    lines: Sequence[TrendLine], last_index: int, limit: int = MAX_ACTIVE_LINES,
) -> list[TrendLine]:
    """Keep the first ACTIVE line of each same-type 1 % price cluster.

    *lines* must already be in priority order (longest first).
    """
    kept: list[TrendLine] = []
    for line in lines:
        price = line.price_at(last_index)
        dominated = any(
            k.type == line.type
            and abs(price - k.price_at(last_index)) / k.price_at(last_index) < CLUSTER_PCT
            for k in kept
        )
        if not dominated:
            kept.append(line)
        if len(kept) >= limit:
            break
    return kept


def filter_broken_lines(lines: Sequence[TrendLine]) -> list[TrendLine]:
    """Keep the first BROKEN line of each same-type break cluster.

    Two breaks cluster when they are less than an hour and 1 % apart.
    """
    kept: list[TrendLine] = []
    for line in lines:
        dominated = any(
            k.type == line.type
            and abs(line.t2 - k.t2) < BREAK_CLUSTER_SECONDS
            and abs(line.p2 - k.p2) / k.p2 < CLUSTER_PCT
            for k in kept
        )
        if not dominated:
            kept.append(line)
    return kept


def calculate_trend_lines(
    bars: Sequence[Bar],
    fractal_strength: int = 5,
    angle_filter: bool = True,
    angle_max: float = 20.0,
    tolerance: float = 1.0,
    strict_mode: bool = True,
    show_history: bool = True,
) -> list[TrendLine]:
    """Fit, validate, score and de-duplicate trend lines.

    Args:
        bars: Bar window (oldest first).
        fractal_strength: Base pivot window; ``s-2`` (min 2) and ``s+3``
            are scanned as well.
        angle_filter: Reject lines steeper than ``angle_max * 2``
            (slope normalised to basis points of the origin price per bar).
        angle_max: Angle limit used by ``angle_filter``.
        tolerance: Line adherence setting; 1.0 means 0.05 %.
        strict_mode: Reject a line when any intervening bar pierces it.
        show_history: Include BROKEN lines.

    Returns:
        Kept ACTIVE lines followed by kept BROKEN lines.  Fewer than 100
        bars yields ``[]``.
    """
    if len(bars) < MIN_BARS:
        return []

    tol = tolerance * TOLERANCE_SCALE
    highs, lows = find_pivots(bars, pivot_strengths(fractal_strength))

    candidates = _candidates(
        bars, highs, DOWN, angle_filter, angle_max, tol, strict_mode, show_history,
    ) + _candidates(
        bars, lows, UP, angle_filter, angle_max, tol, strict_mode, show_history,
    )
    candidates.sort(key=lambda line: line.duration_hours, reverse=True)

    active = filter_active_lines(
        [c for c in candidates if c.status == ACTIVE], len(bars) - 1,
    )
    broken = filter_broken_lines([c for c in candidates if c.status == BROKEN])
    logger.debug(
        "Trend-line pass: %d pivots, %d candidates, %d active, %d broken",
        len(highs) + len(lows), len(candidates), len(active), len(broken),
    )
    return active + broken
