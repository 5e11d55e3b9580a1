"""Fair value gap and order block detection — pure functions.

A bullish gap exists at bar ``i`` when ``bars[i].low > bars[i-2].high``
(bearish: ``bars[i].high < bars[i-2].low``).  Each accepted gap becomes an
FVG zone, seeds at most one order block (the nearest opposite-coloured
candle in the 10 bars before it) and, optionally, a trade idea at the gap
edge.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from trapline.backtest.lifecycle import simulate_trade, target_price
from trapline.strategy.indicators import atr_series, average_volume_series
from trapline.strategy.models import (
    BEAR,
    BULL,
    CANCELLED,
    FVG,
    LONG,
    MITIGATED,
    OB,
    SHORT,
    Bar,
    Trade,
    Zone,
)

logger = logging.getLogger("trapline.zones")

MIN_BARS = 50
WARMUP_BARS = 20
SWING_LOOKBACK = 10
OB_SEARCH_BARS = 10
BOS_LOOKAHEAD = 20
MIN_IMPULSE_PCT = 0.003
MIN_GAP_ATR = 0.2


@dataclass(frozen=True)
class GapCandidate:
    """A raw three-bar gap that passed the acceptance filters."""

    index: int
    side: str  # "BULL" or "BEAR"
    top: float
    bottom: float
    gap: float
    impulse_pct: float


@dataclass(frozen=True)
class ZoneAnalysis:
    """Zones (sorted by origin time) and gap trade ideas."""

    zones: tuple[Zone, ...]
    trades: tuple[Trade, ...]


# ── Gap detection ────────────────────────────────────────────────────────


def detect_gap(
    bars: Sequence[Bar],
    index: int,
    sensitivity: float,
    atr: float,
) -> Optional[GapCandidate]:
    """Return the gap ending at ``bars[index]`` if it passes every filter.

    Filters:
        * gap ≥ ``close × sensitivity``;
        * gap ≥ ``0.2 × atr``;
        * two-bar impulse ≥ 0.3 % in the gap direction;
        * current volume ≥ half the mean of the previous two (skipped when
          any of the three volumes is unavailable).
    """
    if index < 2:
        return None
    curr = bars[index]
    prev1 = bars[index - 1]
    prev2 = bars[index - 2]

    if curr.low > prev2.high:
        side = BULL
        top, bottom = curr.low, prev2.high
        impulse = curr.close - prev2.close
    elif curr.high < prev2.low:
        side = BEAR
        top, bottom = prev2.low, curr.high
        impulse = prev2.close - curr.close
    else:
        return None

    gap = top - bottom
    if gap < curr.close * sensitivity:
        return None
    if gap < atr * MIN_GAP_ATR:
        return None

    impulse_pct = abs(impulse / prev2.close) if prev2.close else 0.0
    if impulse <= 0 or impulse_pct < MIN_IMPULSE_PCT:
        return None

    if curr.volume and prev1.volume and prev2.volume:
        if curr.volume < (prev1.volume + prev2.volume) / 2 * 0.5:
            return None

    return GapCandidate(
        index=index,
        side=side,
        top=top,
        bottom=bottom,
        gap=gap,
        impulse_pct=impulse_pct,
    )


# ── Scoring ──────────────────────────────────────────────────────────────


def score_fvg(
    gap: float,
    impulse_pct: float,
    atr: float,
    avg_volume: float,
    impulse_bars: Sequence[Bar],
) -> int:
    """Tiered quality score of a gap: size vs ATR, impulse, volume."""
    score = 0
    gap_ratio = gap / atr if atr > 0 else 0.0
    if gap_ratio > 1.0:
        score += 30
    elif gap_ratio > 0.7:
        score += 20
    elif gap_ratio > 0.5:
        score += 12
    elif gap_ratio > 0.3:
        score += 5

    if impulse_pct > 0.015:
        score += 25
    elif impulse_pct > 0.01:
        score += 18
    elif impulse_pct > 0.005:
        score += 10

    impulse_volume = sum(b.volume or 0.0 for b in impulse_bars) / 3
    vol_ratio = impulse_volume / avg_volume if avg_volume > 0 else 1.0
    if vol_ratio > 2.0:
        score += 25
    elif vol_ratio > 1.5:
        score += 15
    elif vol_ratio > 1.2:
        score += 8
    return score


def find_swings(
    bars: Sequence[Bar], lookback: int = SWING_LOOKBACK,
) -> tuple[list[tuple[int, float]], list[tuple[int, float]]]:
    """Swing highs and lows as ``(index, price)`` pairs.

    A swing high has no bar within *lookback* on either side with a
    strictly higher high (lows symmetric).
    """
    highs: list[tuple[int, float]] = []
    lows: list[tuple[int, float]] = []
    for i in range(lookback, len(bars) - lookback):
        is_high = True
        is_low = True
        for j in range(1, lookback + 1):
            if bars[i - j].high > bars[i].high or bars[i + j].high > bars[i].high:
                is_high = False
            if bars[i - j].low < bars[i].low or bars[i + j].low < bars[i].low:
                is_low = False
        if is_high:
            highs.append((i, bars[i].high))
        if is_low:
            lows.append((i, bars[i].low))
    return highs, lows


def _last_swing_before(swings: list[tuple[int, float]], index: int) -> Optional[float]:
    for swing_index, price in reversed(swings):
        if swing_index < index:
            return price
    return None


def score_order_block(
    bars: Sequence[Bar],
    index: int,
    side: str,
    atr: float,
    avg_volume: float,
    swing_highs: list[tuple[int, float]],
    swing_lows: list[tuple[int, float]],
) -> int:
    """Score the order-block candle at ``bars[index]``.

    Relative volume, size vs ATR, a forward break of the prior swing
    extreme, an engulfing body and proximity to a round 1000 level each
    add a tiered bonus.
    """
    candle = bars[index]
    score = 0

    vol_ratio = (candle.volume or 0.0) / avg_volume if avg_volume > 0 else 1.0
    if vol_ratio > 2.0:
        score += 30
    elif vol_ratio > 1.5:
        score += 20
    elif vol_ratio > 1.2:
        score += 10

    size_ratio = candle.range / atr if atr > 0 else 1.0
    if size_ratio > 1.5:
        score += 25
    elif size_ratio > 1.0:
        score += 15
    elif size_ratio > 0.7:
        score += 8

    stop = min(index + BOS_LOOKAHEAD, len(bars))
    if side == BULL:
        level = _last_swing_before(swing_highs, index)
        if level is not None and any(bars[k].high > level for k in range(index + 1, stop)):
            score += 35
    else:
        level = _last_swing_before(swing_lows, index)
        if level is not None and any(bars[k].low < level for k in range(index + 1, stop)):
            score += 35

    if index > 0:
        prev = bars[index - 1]
        if candle.high > prev.high and candle.low < prev.low:
            score += 15

    mid = (candle.high + candle.low) / 2
    if mid > 0:
        dist_to_round = abs(mid - round(mid / 1000) * 1000) / mid
        if dist_to_round < 0.005:
            score += 20
        elif dist_to_round < 0.01:
            score += 10
    return score


# ── Mitigation ───────────────────────────────────────────────────────────


def mitigate(zone: Zone, bars: Sequence[Bar], start: int) -> Zone:
    """Return *zone* marked MITIGATED at the first bar from *start* touching it."""
    for j in range(start, len(bars)):
        if bars[j].touches(zone.top, zone.bottom):
            return replace(zone, status=MITIGATED, mitigated_time=bars[j].time)
    return zone


# ── Pass ─────────────────────────────────────────────────────────────────


def _find_order_block_index(bars: Sequence[Bar], index: int, side: str) -> Optional[int]:
    for k in range(index - 1, max(0, index - OB_SEARCH_BARS) - 1, -1):
        candle = bars[k]
        if side == BULL and candle.close < candle.open:
            return k
        if side == BEAR and candle.close > candle.open:
            return k
    return None


def _gap_trade(
    bars: Sequence[Bar], gap: GapCandidate, risk_reward: float,
) -> Optional[Trade]:
    curr = bars[gap.index]
    if gap.side == BULL:
        side = LONG
        entry = curr.low
        stop_loss = min(bars[gap.index - 1].low, bars[gap.index - 2].low)
        trade_id = f"smc-l-{gap.index}"
    else:
        side = SHORT
        entry = curr.high
        stop_loss = max(bars[gap.index - 1].high, bars[gap.index - 2].high)
        trade_id = f"smc-s-{gap.index}"

    trade = simulate_trade(
        bars,
        gap.index,
        side,
        entry,
        stop_loss,
        target_price(entry, stop_loss, side, risk_reward),
        risk_reward,
        trade_id=trade_id,
        signal_time=curr.time,
        mode="smc",
        description="SMC Setup",
    )
    return None if trade.status == CANCELLED else trade


def analyze_zones(
    bars: Sequence[Bar],
    sensitivity: float = 0.0001,
    history_window: int = 30000,
    risk_reward: float = 2.0,
    generate_trades: bool = True,
) -> ZoneAnalysis:
    """Scan the trailing *history_window* bars for FVG and OB zones.

    Args:
        bars: Bar window (oldest first).
        sensitivity: Minimum gap as a fraction of the close.
        history_window: Number of trailing bars to scan.
        risk_reward: Target multiple for gap trade ideas.
        generate_trades: When ``False`` only zones are produced.

    Returns:
        ``ZoneAnalysis`` with zones sorted by origin time.  Fewer than 50
        bars yields an empty result.
    """
    if len(bars) < MIN_BARS:
        return ZoneAnalysis(zones=(), trades=())

    atrs = atr_series(bars)
    avg_volumes = average_volume_series(bars, include_current=True)
    swing_highs, swing_lows = find_swings(bars)

    zones: list[Zone] = []
    trades: list[Trade] = []
    processed_obs: set[int] = set()
    start = max(WARMUP_BARS, len(bars) - history_window, 2)

    for i in range(start, len(bars)):
        curr = bars[i]
        atr = atrs[i] or curr.range
        avg_volume = avg_volumes[i] or 1.0

        gap = detect_gap(bars, i, sensitivity, atr)
        if gap is None:
            continue

        tag = "l" if gap.side == BULL else "s"
        fvg_score = score_fvg(
            gap.gap, gap.impulse_pct, atr, avg_volume, bars[i - 2 : i + 1],
        )
        fvg = Zone(
            id=f"fvg-{tag}-{i}",
            label=FVG,
            side=gap.side,
            top=gap.top,
            bottom=gap.bottom,
            origin_index=i,
            origin_time=bars[i - 1].time,
            quality_score=fvg_score,
            gap_size=gap.gap,
            impulse_pct=gap.impulse_pct,
        )
        zones.append(mitigate(fvg, bars, i + 1))

        ob_index = _find_order_block_index(bars, i, gap.side)
        if ob_index is not None and ob_index not in processed_obs:
            candle = bars[ob_index]
            ob_score = score_order_block(
                bars,
                ob_index,
                gap.side,
                atrs[ob_index] or atr,
                avg_volumes[ob_index] or avg_volume,
                swing_highs,
                swing_lows,
            )
            ob = Zone(
                id=f"ob-{tag}-{ob_index}",
                label=OB,
                side=gap.side,
                top=candle.high,
                bottom=candle.low,
                origin_index=ob_index,
                origin_time=candle.time,
                quality_score=ob_score,
                volume=candle.volume or 0.0,
                has_bos=ob_score >= 35,
            )
            zones.append(mitigate(ob, bars, i + 1))
            processed_obs.add(ob_index)

        if generate_trades:
            trade = _gap_trade(bars, gap, risk_reward)
            if trade is not None:
                trades.append(trade)

    zones.sort(key=lambda z: z.origin_time)
    logger.debug(
        "Zone pass: %d bars, %d zones, %d trade ideas",
        len(bars), len(zones), len(trades),
    )
    return ZoneAnalysis(zones=tuple(zones), trades=tuple(trades))
