"""Liquidity-trap strategy — order blocks left behind by broken trend lines.

A broken DOWN line traps shorts at the bearish order blocks that formed
along its touches; a broken UP line does the same for longs.  Each
surviving order block (paired with a nearby fair value gap) yields at most
one entry, which is then walked to its exit under the mode's exit plan.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from trapline.backtest.lifecycle import (
    ExitPlan,
    simulate_managed_exit,
    target_price,
)
from trapline.strategy.indicators import atr_series, average_volume_series
from trapline.strategy.models import (
    BEAR,
    BROKEN,
    BULL,
    DOWN,
    FVG,
    LONG,
    OB,
    SHORT,
    Bar,
    Trade,
    TrendLine,
    Zone,
)
from trapline.strategy.trendlines import calculate_trend_lines
from trapline.strategy.zones import analyze_zones

logger = logging.getLogger("trapline.strategy")

LOOKAHEAD_BARS = 100
OB_TOUCH_TOLERANCE = 5
OB_PROXIMITY_PCT = 0.01
FVG_MAX_DISTANCE = 10
ATR_SL_CLOSE = 1.0
ATR_SL_LIMIT = 1.1
MIN_VOLUME_SCORE = 2


@dataclass(frozen=True)
class StrategyMode:
    """Entry style and exit plan of one strategy variant."""

    key: str
    label: str
    limit_entry: bool
    plan: ExitPlan

    @property
    def description(self) -> str:
        if self.plan.partial_r is not None:
            return (
                f"{self.label} [{self.plan.partial_r:g}:1 + "
                f"{self.plan.take_profit_r:g}:1]"
            )
        return f"{self.label} [{self.plan.take_profit_r:g}:1]"


STRATEGY_MODES: dict[str, StrategyMode] = {
    "standard": StrategyMode("standard", "TL Trap", False, ExitPlan(2.0)),
    "agro": StrategyMode("agro", "TL Agro", False, ExitPlan(3.0)),
    "atr": StrategyMode("atr", "TL ATR", True, ExitPlan(2.0)),
    "atr_agro": StrategyMode("atr_agro", "TL ATR Agro", True, ExitPlan(3.0)),
    "atr_partial_1": StrategyMode(
        "atr_partial_1", "TL Partial", True,
        ExitPlan(take_profit_r=5.0, break_even_r=1.0, partial_r=3.0),
    ),
    "atr_partial_2": StrategyMode(
        "atr_partial_2", "TL Partial", True,
        ExitPlan(take_profit_r=4.0, break_even_r=1.0, partial_r=2.0),
    ),
}


def get_mode(name: str) -> StrategyMode:
    """Look up a strategy mode by key.

    Raises ``KeyError`` if the mode is not registered.
    """
    if name not in STRATEGY_MODES:
        raise KeyError(
            f"Unknown strategy mode '{name}'. "
            f"Available: {', '.join(STRATEGY_MODES.keys())}"
        )
    return STRATEGY_MODES[name]


@dataclass(frozen=True)
class EntrySignals:
    """Volume read of the entry bar."""

    absorption: bool = False
    rejection: bool = False
    high_volume: bool = False
    score: int = 0


@dataclass(frozen=True)
class TrapEntry:
    """A filled entry, independent of how it will be exited."""

    line: TrendLine
    order_block: Zone
    fvg: Zone
    side: str
    entry_index: int
    entry_price: float
    stop_loss: float
    signals: Optional[EntrySignals] = None

    @property
    def risk(self) -> float:
        return abs(self.entry_price - self.stop_loss)


@dataclass(frozen=True)
class StrategyRun:
    """Trades (newest entry first), the broken lines and the raw entries."""

    trades: tuple[Trade, ...]
    broken_lines: tuple[TrendLine, ...]
    entries: tuple[TrapEntry, ...]


# ── Zone matching ────────────────────────────────────────────────────────


def order_blocks_at_touches(
    line: TrendLine, order_blocks: Sequence[Zone], tolerance: int = OB_TOUCH_TOLERANCE,
) -> list[Zone]:
    """Order blocks whose origin lies within *tolerance* bars of a touch."""
    if not line.touch_indices:
        return []
    return [
        ob for ob in order_blocks
        if any(abs(ob.origin_index - t) <= tolerance for t in line.touch_indices)
    ]


def cluster_order_blocks(
    order_blocks: Sequence[Zone], side: str, proximity_pct: float = OB_PROXIMITY_PCT,
) -> list[Zone]:
    """Collapse order blocks whose midpoints sit within *proximity_pct*.

    Blocks are walked by ascending midpoint; each cluster is anchored on
    its first member and keeps the block furthest from price: the highest
    top for SHORT traps, the lowest bottom for LONG traps.
    """
    if len(order_blocks) <= 1:
        return list(order_blocks)

    ordered = sorted(order_blocks, key=lambda z: z.mid)
    selected: list[Zone] = []
    i = 0
    while i < len(ordered):
        anchor = ordered[i].mid
        group = [ordered[i]]
        j = i + 1
        while j < len(ordered) and abs(ordered[j].mid - anchor) / anchor <= proximity_pct:
            group.append(ordered[j])
            j += 1
        best = group[0]
        for ob in group:
            if side == SHORT and ob.top > best.top:
                best = ob
            elif side == LONG and ob.bottom < best.bottom:
                best = ob
        selected.append(best)
        i = j
    return selected


def nearest_fvg(
    order_block: Zone,
    fvgs: Sequence[Zone],
    break_index: int,
    break_time: int,
    max_distance: int = FVG_MAX_DISTANCE,
) -> Optional[Zone]:
    """Closest unmitigated gap formed before the break near the block."""
    best: Optional[Zone] = None
    best_distance = 0
    for fvg in fvgs:
        if fvg.origin_index >= break_index:
            continue
        distance = abs(fvg.origin_index - order_block.origin_index)
        if distance > max_distance:
            continue
        if fvg.mitigated_before(break_time):
            continue
        if best is None or distance < best_distance:
            best = fvg
            best_distance = distance
    return best


def read_entry_bar(bar: Bar, avg_volume: float, side: str) -> EntrySignals:
    """Score absorption, wick rejection and volume of the entry bar."""
    body = abs(bar.close - bar.open)
    bar_range = bar.high - bar.low
    body_ratio = body / bar_range if bar_range > 0 else 0.0
    vol_ratio = (bar.volume or 0.0) / avg_volume if avg_volume > 0 else 1.0
    if side == SHORT:
        wick = bar.high - max(bar.open, bar.close)
    else:
        wick = min(bar.open, bar.close) - bar.low
    wick_ratio = wick / bar_range if bar_range > 0 else 0.0

    absorption = vol_ratio > 1.2 and body_ratio < 0.4
    rejection = wick_ratio > 0.5
    high_volume = vol_ratio > 1.5
    score = 0
    if absorption:
        score += 2
    if rejection:
        score += 2
    if high_volume:
        score += 1
    if absorption and rejection:
        score += 2
    return EntrySignals(absorption, rejection, high_volume, score)


# ── Entries ──────────────────────────────────────────────────────────────


def _limit_entry(
    bars: Sequence[Bar], atrs: list[float], ob: Zone, side: str, break_index: int,
) -> Optional[tuple[int, float, float]]:
    atr_at_break = atrs[break_index] or bars[break_index].range
    price = ob.upper + atr_at_break if side == SHORT else ob.lower - atr_at_break
    for k in range(break_index + 1, min(len(bars), break_index + LOOKAHEAD_BARS)):
        bar = bars[k]
        if (side == SHORT and bar.high >= price) or (side == LONG and bar.low <= price):
            atr_at_entry = atrs[k] or bar.range
            offset = atr_at_entry * ATR_SL_LIMIT
            stop = price + offset if side == SHORT else price - offset
            return k, price, stop
    return None


def _close_entry(
    bars: Sequence[Bar], atrs: list[float], ob: Zone, side: str, break_index: int,
) -> Optional[tuple[int, float, float]]:
    for k in range(break_index + 1, min(len(bars), break_index + LOOKAHEAD_BARS)):
        bar = bars[k]
        if not bar.touches(ob.top, ob.bottom):
            continue
        closed_back = bar.close <= ob.upper if side == SHORT else bar.close >= ob.lower
        if not closed_back:
            return None
        offset = (atrs[k] or bar.range) * ATR_SL_CLOSE
        stop = ob.upper + offset if side == SHORT else ob.lower - offset
        return k, bar.close, stop
    return None


def build_entries(
    bars: Sequence[Bar],
    zones: Sequence[Zone],
    lines: Sequence[TrendLine],
    limit_entry: bool,
    use_volume_analysis: bool = False,
) -> list[TrapEntry]:
    """Derive one entry per surviving order block.

    Args:
        bars: Bar window (oldest first).
        zones: Output of the zone pass.
        lines: Output of the trend-line pass; only BROKEN lines are used.
        limit_entry: ``True`` for the ATR-offset limit order, ``False`` for
            the close-back-into-zone trigger.
        use_volume_analysis: Discard entries whose bar scores below 2.
    """
    if not bars:
        return []

    atrs = atr_series(bars)
    avg_volumes = (
        average_volume_series(bars, include_current=False)
        if use_volume_analysis else None
    )
    by_kind: dict[tuple[str, str], list[Zone]] = {
        (label, side): [z for z in zones if z.label == label and z.side == side]
        for label in (OB, FVG)
        for side in (BULL, BEAR)
    }

    entries: list[TrapEntry] = []
    processed: set[str] = set()
    find_entry = _limit_entry if limit_entry else _close_entry

    for line in lines:
        if line.status != BROKEN:
            continue
        break_index = line.break_index
        if break_index is None or break_index <= 0 or break_index >= len(bars):
            continue

        side = SHORT if line.type == DOWN else LONG
        zone_side = BEAR if side == SHORT else BULL
        break_time = bars[break_index].time

        matched = order_blocks_at_touches(line, by_kind[(OB, zone_side)])
        valid = [
            ob for ob in matched
            if ob.origin_index < break_index and not ob.mitigated_before(break_time)
        ]
        for ob in cluster_order_blocks(valid, side):
            if ob.id in processed:
                continue
            fvg = nearest_fvg(ob, by_kind[(FVG, zone_side)], break_index, break_time)
            if fvg is None:
                continue

            found = find_entry(bars, atrs, ob, side, break_index)
            if found is None:
                continue
            entry_index, entry_price, stop_loss = found

            signals = None
            if avg_volumes is not None:
                signals = read_entry_bar(
                    bars[entry_index], avg_volumes[entry_index] or 1.0, side,
                )
                if signals.score < MIN_VOLUME_SCORE:
                    continue

            processed.add(ob.id)
            if abs(entry_price - stop_loss) <= 0:
                continue
            entries.append(
                TrapEntry(
                    line=line,
                    order_block=ob,
                    fvg=fvg,
                    side=side,
                    entry_index=entry_index,
                    entry_price=entry_price,
                    stop_loss=stop_loss,
                    signals=signals,
                )
            )
    return entries


def _signal_tags(signals: Optional[EntrySignals]) -> str:
    if signals is None:
        return ""
    tags = [
        name for name, flag in (
            ("absorption", signals.absorption),
            ("rejection", signals.rejection),
            ("high-volume", signals.high_volume),
        ) if flag
    ]
    return f" ({', '.join(tags)})" if tags else ""


def entry_to_trade(
    bars: Sequence[Bar], entry: TrapEntry, mode: StrategyMode, plan: Optional[ExitPlan] = None,
) -> Trade:
    """Walk *entry* to its exit under *plan* (default: the mode's plan)."""
    plan = plan or mode.plan
    outcome = simulate_managed_exit(
        bars, entry.entry_index, entry.side, entry.entry_price, entry.stop_loss, plan,
    )
    line = entry.line
    volume_score = entry.signals.score if entry.signals is not None else 0
    return Trade(
        id=f"trap-{mode.key}-{line.type}-{entry.order_block.id}",
        side=entry.side,
        status=outcome.status,
        entry=entry.entry_price,
        stop_loss=entry.stop_loss,
        take_profit=target_price(
            entry.entry_price, entry.stop_loss, entry.side, plan.take_profit_r,
        ),
        signal_time=bars[line.break_index].time,
        entry_time=bars[entry.entry_index].time,
        exit_time=outcome.exit_time,
        pnl_r=outcome.pnl_r,
        signal_index=line.break_index,
        entry_index=entry.entry_index,
        mode=mode.key,
        description=mode.description + _signal_tags(entry.signals),
        setup_score=line.duration_hours + volume_score * 10,
        zone_id=entry.order_block.id,
        fvg_id=entry.fvg.id,
    )


def run_liquidity_strategy(
    bars: Sequence[Bar],
    mode: str = "standard",
    *,
    zones: Optional[Sequence[Zone]] = None,
    lines: Optional[Sequence[TrendLine]] = None,
    use_volume_analysis: bool = False,
    sensitivity: float = 0.0001,
    history_window: int = 30000,
    fractal_strength: int = 5,
    angle_filter: bool = True,
    angle_max: float = 20.0,
    tolerance: float = 1.0,
    strict_mode: bool = True,
) -> StrategyRun:
    """Backtest one liquidity-trap mode over *bars*.

    *zones* and *lines* may be supplied to reuse an earlier pass; when
    omitted they are computed here from the zone and trend-line settings.

    Raises ``KeyError`` for an unknown *mode*.
    """
    strategy_mode = get_mode(mode)
    if not bars:
        return StrategyRun(trades=(), broken_lines=(), entries=())

    if zones is None:
        zones = analyze_zones(
            bars, sensitivity, history_window, generate_trades=False,
        ).zones
    if lines is None:
        lines = calculate_trend_lines(
            bars,
            fractal_strength=fractal_strength,
            angle_filter=angle_filter,
            angle_max=angle_max,
            tolerance=tolerance,
            strict_mode=strict_mode,
            show_history=True,
        )

    broken = tuple(line for line in lines if line.status == BROKEN)
    entries = build_entries(
        bars, zones, broken, strategy_mode.limit_entry, use_volume_analysis,
    )
    trades = [entry_to_trade(bars, e, strategy_mode) for e in entries]
    trades.sort(key=lambda t: t.entry_time, reverse=True)

    logger.debug(
        "Strategy %s: %d broken lines, %d entries", mode, len(broken), len(entries),
    )
    return StrategyRun(trades=tuple(trades), broken_lines=broken, entries=tuple(entries))
