"""Backtest statistics — equity curve and risk metrics from a trade set.

Every trade risks 1 % of the initial balance, so a trade's cash P&L is its
R-multiple times that amount, less optional fees.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from trapline.risk.drawdown import DrawdownTracker
from trapline.risk.position_sizer import calculate_units, notional
from trapline.strategy.models import (
    BE,
    CLOSED_STATUSES,
    OPEN,
    WIN,
    Bar,
    EquityPoint,
    Trade,
)

RISK_PER_TRADE_PCT = 1.0
PROFIT_FACTOR_CAP = 999.0


@dataclass(frozen=True)
class PnlMetrics:
    """Summary statistics of a trade set."""

    total_trades: int
    wins: int
    losses: int
    win_rate: float
    profit_factor: float
    sharpe: float
    sortino: float
    max_drawdown: float
    realized_pnl: float
    unrealized_pnl: float
    total_pnl: float
    final_equity: float
    current_equity: float
    avg_duration: float
    max_duration: float
    first_trade_time: Optional[int] = None
    last_trade_time: Optional[int] = None


@dataclass(frozen=True)
class PnlReport:
    metrics: PnlMetrics
    equity_curve: tuple[EquityPoint, ...]


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit over gross loss; 999 with no losses and a profit, else 0."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    return PROFIT_FACTOR_CAP if gross_profit > 0 else 0.0


def trade_fees(
    trade: Trade, risk_amount: float, fee_maker_pct: float, fee_taker_pct: float,
) -> float:
    """Entry (taker) plus exit fee of a closed trade.

    The exit is a maker fill at the target for a WIN, a taker fill at
    entry for BE and at the stop otherwise.  Zero-risk trades pay nothing.
    """
    if trade.risk <= 0:
        return 0.0
    units = calculate_units(risk_amount, trade.entry, trade.stop_loss)
    fee_entry = notional(units, trade.entry) * fee_taker_pct / 100.0
    if trade.status == WIN and trade.take_profit:
        return fee_entry + notional(units, trade.take_profit) * fee_maker_pct / 100.0
    exit_price = trade.entry if trade.status == BE else trade.stop_loss
    return fee_entry + notional(units, exit_price) * fee_taker_pct / 100.0


def calculate_pnl_metrics(
    trades: Sequence[Trade],
    bars: Sequence[Bar],
    initial_balance: float = 10_000.0,
    include_fees: bool = False,
    fee_maker: float = 0.1,
    fee_taker: float = 0.1,
) -> PnlReport:
    """Aggregate *trades* into an equity curve and summary statistics.

    Args:
        trades: Trades of any status; only WIN/LOSS/BE are realised and
            OPEN trades contribute unrealised P&L.
        bars: Bar window; the first bar anchors the equity curve and the
            last bar ends still-open trades for duration stats.
        initial_balance: Starting equity.
        include_fees: Deduct entry/exit fees from realised P&L.
        fee_maker: Maker fee in percent.
        fee_taker: Taker fee in percent.

    Returns:
        ``PnlReport`` with metrics and one equity point per realised exit
        (plus the initial point).
    """
    risk_amount = initial_balance * RISK_PER_TRADE_PCT / 100.0
    tracker = DrawdownTracker(initial_balance)
    last_time = bars[-1].time if bars else 0

    curve: list[EquityPoint] = []
    if bars:
        curve.append(EquityPoint(bars[0].time, initial_balance))

    unrealized = 0.0
    first_trade_time: Optional[int] = None
    last_trade_time: Optional[int] = None
    durations: list[float] = []
    for t in trades:
        if t.status not in CLOSED_STATUSES and t.status != OPEN:
            continue
        if t.entry_time is not None:
            end = t.exit_time if t.exit_time is not None else last_time
            if first_trade_time is None or t.entry_time < first_trade_time:
                first_trade_time = t.entry_time
            if last_trade_time is None or end > last_trade_time:
                last_trade_time = end
            durations.append(end - t.entry_time)
        if t.status == OPEN:
            unrealized += t.pnl_r * risk_amount

    closed = sorted(
        (t for t in trades if t.is_closed),
        key=lambda t: t.exit_time or 0,
    )
    equity = initial_balance
    realized = 0.0
    returns: list[float] = []
    gross_profit = 0.0
    gross_loss = 0.0
    wins = 0
    losses = 0
    for t in closed:
        pnl = t.pnl_r * risk_amount
        if include_fees:
            pnl -= trade_fees(t, risk_amount, fee_maker, fee_taker)

        realized += pnl
        equity += pnl
        returns.append(pnl)
        tracker.update(equity)
        if pnl > 0:
            wins += 1
            gross_profit += pnl
        else:
            losses += 1
            gross_loss += abs(pnl)
        curve.append(EquityPoint(t.exit_time or 0, equity))

    total = len(closed)
    metrics = PnlMetrics(
        total_trades=total,
        wins=wins,
        losses=losses,
        win_rate=(wins / total) * 100 if total else 0.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        sharpe=_sharpe(returns),
        sortino=_sortino(returns),
        max_drawdown=tracker.max_drawdown_pct,
        realized_pnl=realized,
        unrealized_pnl=unrealized,
        total_pnl=realized,
        final_equity=equity,
        current_equity=equity + unrealized,
        avg_duration=sum(durations) / len(durations) if durations else 0.0,
        max_duration=max(durations, default=0.0),
        first_trade_time=first_trade_time,
        last_trade_time=last_trade_time,
    )
    return PnlReport(metrics=metrics, equity_curve=tuple(curve))


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(pnls: list[float]) -> float:
    """Per-trade Sharpe ratio (mean over population standard deviation).

    Returns 0.0 when the series has fewer than 2 observations or zero
    variance.
    """
    n = len(pnls)
    if n < 2:
        return 0.0
    mean = sum(pnls) / n
    std = math.sqrt(sum((p - mean) ** 2 for p in pnls) / n)
    if std == 0:
        return 0.0
    return mean / std


def _sortino(pnls: list[float]) -> float:
    """Mean P&L over the root-mean-square of the losing trades.

    Returns 0.0 when there is no downside.
    """
    if not pnls:
        return 0.0
    downside = [p for p in pnls if p < 0]
    if not downside:
        return 0.0
    mean = sum(pnls) / len(pnls)
    downside_dev = math.sqrt(sum(p ** 2 for p in downside) / len(downside))
    if downside_dev == 0:
        return 0.0
    return mean / downside_dev
