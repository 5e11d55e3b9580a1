"""Full analysis pass over a bar window.

``recompute`` is the single entry point used by the controller, the API
and the CLI.  It is pure: identical bars and config give identical output.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from trapline.backtest.replay import trade_markers
from trapline.backtest.stats import PnlMetrics, calculate_pnl_metrics
from trapline.config import SMC_STRATEGY, Config
from trapline.strategy.liquidity_trap import run_liquidity_strategy
from trapline.strategy.models import Bar, EquityPoint, Trade, TrendLine, Zone
from trapline.strategy.regime import (
    HurstResult,
    RegressionChannel,
    calculate_hurst,
    calculate_regression_channel,
)
from trapline.strategy.trendlines import calculate_trend_lines
from trapline.strategy.zones import analyze_zones

logger = logging.getLogger("trapline.analysis")


@dataclass(frozen=True)
class AnalysisResult:
    """Everything an external renderer needs for one bar window."""

    zones: tuple[Zone, ...]
    lines: tuple[TrendLine, ...]
    channel: Optional[RegressionChannel]
    hurst: HurstResult
    trades: tuple[Trade, ...]
    metrics: PnlMetrics
    equity_curve: tuple[EquityPoint, ...]
    markers: tuple[dict, ...]


def recompute(bars: Sequence[Bar], config: Config) -> AnalysisResult:
    """Run zones, trend lines, regime indicators, the configured strategy
    and the PnL aggregator over a snapshot of *bars*."""
    snapshot = tuple(bars)

    zone_analysis = analyze_zones(
        snapshot,
        sensitivity=config.sensitivity,
        history_window=config.history_target,
        risk_reward=config.risk_reward,
        generate_trades=config.strategy == SMC_STRATEGY,
    )
    lines = calculate_trend_lines(
        snapshot,
        fractal_strength=config.fractal_strength,
        angle_filter=config.angle_filter,
        angle_max=config.angle_max,
        tolerance=config.tolerance,
        strict_mode=config.strict_mode,
        show_history=config.show_history,
    )

    if config.strategy == SMC_STRATEGY:
        trades = zone_analysis.trades
    else:
        # Broken lines drive the trap strategy even when hidden from display.
        strategy_lines = lines if config.show_history else None
        trades = run_liquidity_strategy(
            snapshot,
            config.strategy,
            zones=zone_analysis.zones,
            lines=strategy_lines,
            use_volume_analysis=config.use_volume_analysis,
            fractal_strength=config.fractal_strength,
            angle_filter=config.angle_filter,
            angle_max=config.angle_max,
            tolerance=config.tolerance,
            strict_mode=config.strict_mode,
        ).trades

    report = calculate_pnl_metrics(
        trades,
        snapshot,
        initial_balance=config.initial_balance,
        include_fees=config.include_fees,
        fee_maker=config.fee_maker,
        fee_taker=config.fee_taker,
    )
    markers = tuple(m for t in trades for m in trade_markers(t))

    logger.debug(
        "Recompute over %d bars: %d zones, %d lines, %d trades",
        len(snapshot), len(zone_analysis.zones), len(lines), len(trades),
    )
    return AnalysisResult(
        zones=tuple(zone_analysis.zones),
        lines=tuple(lines),
        channel=calculate_regression_channel(
            snapshot,
            period=config.reg_period,
            std_mult=config.reg_std_mult,
            interval=config.interval,
        ),
        hurst=calculate_hurst(snapshot),
        trades=tuple(trades),
        metrics=report.metrics,
        equity_curve=report.equity_curve,
        markers=markers,
    )
