"""Strategy optimizer — brute-force comparison of exit configurations.

:func:`run_optimizer` compares the six liquidity-trap modes.
:func:`run_grid_optimizer` sweeps take-profit × break-even pairs over one
fixed set of base entries, so every cell trades exactly the same fills.
"""

import logging
from typing import Optional, Sequence

from trapline.backtest.lifecycle import ExitPlan
from trapline.backtest.stats import profit_factor
from trapline.strategy.liquidity_trap import (
    STRATEGY_MODES,
    StrategyMode,
    TrapEntry,
    build_entries,
    entry_to_trade,
    run_liquidity_strategy,
)
from trapline.strategy.models import (
    BE,
    LOSS,
    WIN,
    Bar,
    OptimizerResult,
    Trade,
    TrendLine,
    Zone,
)
from trapline.strategy.trendlines import calculate_trend_lines
from trapline.strategy.zones import analyze_zones

logger = logging.getLogger("trapline.optimizer")

TP_OPTIONS: tuple[float, ...] = (1.5, 2.0, 2.5, 3.0, 4.0, 5.0)
BE_OPTIONS: tuple[float, ...] = (0.0, 0.5, 1.0, 1.5, 2.0)


def summarize(
    mode: str,
    label: str,
    trades: Sequence[Trade],
    take_profit_r: float,
    break_even_r: float,
    win_rate_base: Optional[int] = None,
    closed_only: bool = True,
) -> OptimizerResult:
    """Total R, win rate and profit factor of *trades*.

    With *closed_only* only realised trades (WIN/LOSS/BE) count toward the
    totals.  Otherwise every trade contributes its R, open trades at their
    marked value, and a break-even exit counts as a win.  The win rate is
    ``wins / (wins + losses)`` unless *win_rate_base* is given, in which
    case it divides by that count instead.
    """
    if closed_only:
        counted = [t for t in trades if t.is_closed]
        win_statuses = {WIN}
    else:
        counted = list(trades)
        win_statuses = {WIN, BE}
    wins = sum(1 for t in counted if t.status in win_statuses)
    losses = sum(1 for t in counted if t.status == LOSS)
    total = sum(t.pnl_r for t in counted)
    base = win_rate_base if win_rate_base is not None else wins + losses
    gross_profit = sum(t.pnl_r for t in counted if t.pnl_r > 0)
    gross_loss = sum(abs(t.pnl_r) for t in counted if t.pnl_r < 0)
    return OptimizerResult(
        mode=mode,
        label=label,
        take_profit_r=take_profit_r,
        break_even_r=break_even_r,
        total_pnl_r=total,
        win_rate=(wins / base) * 100 if base > 0 else 0.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        wins=wins,
        losses=losses,
        trades=tuple(trades),
    )


def _shared_analysis(
    bars: Sequence[Bar], options: dict,
) -> tuple[tuple[Zone, ...], list[TrendLine]]:
    zones = analyze_zones(
        bars,
        options.get("sensitivity", 0.0001),
        options.get("history_window", 30000),
        generate_trades=False,
    ).zones
    lines = calculate_trend_lines(
        bars,
        fractal_strength=options.get("fractal_strength", 5),
        angle_filter=options.get("angle_filter", True),
        angle_max=options.get("angle_max", 20.0),
        tolerance=options.get("tolerance", 1.0),
        strict_mode=options.get("strict_mode", True),
        show_history=True,
    )
    return zones, lines


def run_optimizer(bars: Sequence[Bar], **options) -> list[OptimizerResult]:
    """Run every strategy mode and rank them by total R.

    Zones and trend lines are computed once and shared by all modes.
    Keyword *options* are the zone/line settings accepted by
    :func:`~trapline.strategy.liquidity_trap.run_liquidity_strategy` plus
    ``use_volume_analysis``.  Open trades count at their marked R and
    break-even exits count as wins.

    Returns:
        One ``OptimizerResult`` per mode, sorted by total R descending.
        With no bars (or no trades) every mode reports zeros.
    """
    if bars:
        zones, lines = _shared_analysis(bars, options)
    else:
        zones, lines = (), []

    results: list[OptimizerResult] = []
    for key, mode in STRATEGY_MODES.items():
        trades: Sequence[Trade] = ()
        if bars:
            run = run_liquidity_strategy(
                bars,
                key,
                zones=zones,
                lines=lines,
                use_volume_analysis=options.get("use_volume_analysis", False),
            )
            trades = run.trades
        plan = mode.plan
        results.append(
            summarize(
                key, mode.description, trades, plan.take_profit_r, plan.break_even_r,
                closed_only=False,
            )
        )

    results.sort(key=lambda r: r.total_pnl_r, reverse=True)
    logger.info(
        "Optimizer finished: best mode %s (%.1fR)",
        results[0].mode, results[0].total_pnl_r,
    )
    return results


def base_entries(bars: Sequence[Bar], **options) -> list[TrapEntry]:
    """ATR limit-order entries shared by every grid cell."""
    if not bars:
        return []
    zones, lines = _shared_analysis(bars, options)
    return build_entries(
        bars, zones, lines, limit_entry=True,
        use_volume_analysis=options.get("use_volume_analysis", False),
    )


def run_grid_optimizer(
    bars: Sequence[Bar],
    entries: Sequence[TrapEntry],
    tp_options: Sequence[float] = TP_OPTIONS,
    be_options: Sequence[float] = BE_OPTIONS,
) -> list[OptimizerResult]:
    """Sweep take-profit × break-even over a fixed set of base entries.

    Each cell's win rate divides wins by the number of base entries.

    Returns:
        One ``OptimizerResult`` per (TP, BE) pair, sorted by total R
        descending.
    """
    results: list[OptimizerResult] = []
    for tp in tp_options:
        for be in be_options:
            plan = ExitPlan(take_profit_r=tp, break_even_r=be)
            label = f"TP {tp:g}R | BE {f'{be:g}R' if be > 0 else 'OFF'}"
            mode = StrategyMode("grid", label, True, plan)
            trades = [entry_to_trade(bars, e, mode) for e in entries]
            results.append(
                summarize("grid", label, trades, tp, be, win_rate_base=len(entries))
            )

    results.sort(key=lambda r: r.total_pnl_r, reverse=True)
    if results:
        logger.info(
            "Grid optimizer: %d base entries, best %s (%.1fR)",
            len(entries), results[0].label, results[0].total_pnl_r,
        )
    return results
