"""CLI dashboard — prints backtest metrics and optimizer rankings."""

from typing import Sequence

from trapline.backtest.stats import PnlMetrics
from trapline.strategy.models import OptimizerResult


def print_report(metrics: PnlMetrics, title: str = "TrapLine Backtest") -> str:
    """Format and print a metrics summary.

    Returns:
        The formatted string (also printed to stdout).
    """
    pf = "∞" if metrics.profit_factor >= 999 else f"{metrics.profit_factor:.2f}"
    header = f" {title} "
    lines = [
        f"{header:─^52}",
        f"  Trades:          {metrics.total_trades}",
        f"  Wins / Losses:   {metrics.wins} / {metrics.losses}",
        f"  Win Rate:        {metrics.win_rate:.1f}%",
        f"  Profit Factor:   {pf}",
        f"  Sharpe:          {metrics.sharpe:.2f}",
        f"  Sortino:         {metrics.sortino:.2f}",
        f"  Max Drawdown:    {metrics.max_drawdown:.2f}%",
        f"  Realized PnL:    ${metrics.realized_pnl:,.2f}",
        f"  Unrealized PnL:  ${metrics.unrealized_pnl:,.2f}",
        f"  Final Equity:    ${metrics.final_equity:,.2f}",
        f"  Avg Duration:    {metrics.avg_duration / 3600:.1f}h",
        "─" * 52,
    ]
    output = "\n".join(lines)
    print(output)
    return output


def print_optimizer(results: Sequence[OptimizerResult]) -> str:
    """Print an optimizer ranking table, best first."""
    lines = [
        f"{'#':>2}  {'Mode':<26} {'Total R':>8} {'Win %':>6} {'PF':>6} {'Trades':>6}",
        "─" * 60,
    ]
    for rank, r in enumerate(results, start=1):
        pf = "∞" if r.profit_factor >= 999 else f"{r.profit_factor:.2f}"
        lines.append(
            f"{rank:>2}  {r.label:<26} {r.total_pnl_r:>+8.1f} "
            f"{r.win_rate:>6.1f} {pf:>6} {r.total:>6}"
        )
    if not results:
        lines.append("  (no results)")
    output = "\n".join(lines)
    print(output)
    return output
