"""Trade lifecycle engine — advances a trade through future bars.

Two walkers share the same bar conventions:

* :func:`simulate_trade` runs the full PENDING → OPEN → WIN/LOSS state
  machine for a resting entry order.
* :func:`simulate_managed_exit` walks an already-filled position with
  optional break-even and two-stage partial exits.

When a stop and a target are both touched inside one bar the stop wins
(worst case), except for the first partial target, which is banked
before the stop of the same bar is evaluated.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from trapline.risk.break_even import BreakEvenStop
from trapline.strategy.models import (
    BE,
    CANCELLED,
    LONG,
    LOSS,
    OPEN,
    PENDING,
    SHORT,
    WIN,
    Bar,
    Trade,
)


@dataclass(frozen=True)
class ExitPlan:
    """Exit rules for a filled trade.

    Attributes:
        take_profit_r: Final target in R (second target in partial mode).
        break_even_r: Excursion in R that moves the stop to entry; 0 = off.
        partial_r: First target in R.  When set, half the position is
            closed there and the stop moves to entry.
    """

    take_profit_r: float
    break_even_r: float = 0.0
    partial_r: Optional[float] = None


@dataclass(frozen=True)
class ExitOutcome:
    """Result of walking a filled trade to its exit (or the series end)."""

    status: str
    pnl_r: float
    exit_index: Optional[int] = None
    exit_time: Optional[int] = None


# ── Price helpers ────────────────────────────────────────────────────────


def _check_side(side: str) -> None:
    if side not in (LONG, SHORT):
        raise ValueError(f"side must be 'LONG' or 'SHORT', got '{side}'")


def _reaches_entry(bar: Bar, side: str, price: float) -> bool:
    """Entry limit sits against the move: below for LONG, above for SHORT."""
    return bar.low <= price if side == LONG else bar.high >= price


def _reaches_stop(bar: Bar, side: str, price: float) -> bool:
    return bar.low <= price if side == LONG else bar.high >= price


def _reaches_target(bar: Bar, side: str, price: float) -> bool:
    return bar.high >= price if side == LONG else bar.low <= price


def target_price(entry: float, stop_loss: float, side: str, r_multiple: float) -> float:
    """Price *r_multiple* × risk away from *entry* in the profit direction."""
    risk = abs(entry - stop_loss)
    if side == LONG:
        return entry + r_multiple * risk
    return entry - r_multiple * risk


def unrealized_r(entry: float, stop_loss: float, side: str, price: float) -> float:
    """Mark-to-market R-multiple at *price*; 0 for a zero-risk trade."""
    if side == LONG:
        risk = entry - stop_loss
        return (price - entry) / risk if risk != 0 else 0.0
    risk = stop_loss - entry
    return (entry - price) / risk if risk != 0 else 0.0


# ── State machine ────────────────────────────────────────────────────────


def simulate_trade(
    bars: Sequence[Bar],
    origin_index: int,
    side: str,
    entry: float,
    stop_loss: float,
    take_profit: float,
    reward_r: float,
    *,
    trade_id: str,
    signal_time: int,
    mode: str = "",
    description: str = "",
) -> Trade:
    """Advance a resting order from ``origin_index + 1`` to a terminal state.

    PENDING becomes OPEN on the first bar reaching *entry* and CANCELLED
    when a bar reaches *stop_loss* first.  OPEN resolves LOSS (−1R) on the
    stop and WIN (+*reward_r*) on the target; the stop takes priority in a
    bar that touches both.  A trade still OPEN at the end of the series
    keeps status OPEN with its unrealised R against the last close; one
    still PENDING keeps status PENDING with 0R.
    """
    _check_side(side)

    status = PENDING
    entry_time: Optional[int] = None
    entry_index: Optional[int] = None
    exit_time: Optional[int] = None
    pnl_r = 0.0

    for j in range(origin_index + 1, len(bars)):
        bar = bars[j]
        if status == PENDING:
            if _reaches_entry(bar, side, entry):
                status = OPEN
                entry_time = bar.time
                entry_index = j
            elif _reaches_stop(bar, side, stop_loss):
                status = CANCELLED
                break
        elif status == OPEN:
            if _reaches_stop(bar, side, stop_loss):
                status = LOSS
                exit_time = bar.time
                pnl_r = -1.0
                break
            if _reaches_target(bar, side, take_profit):
                status = WIN
                exit_time = bar.time
                pnl_r = reward_r
                break

    if status == OPEN and bars:
        pnl_r = unrealized_r(entry, stop_loss, side, bars[-1].close)

    return Trade(
        id=trade_id,
        side=side,
        status=status,
        entry=entry,
        stop_loss=stop_loss,
        take_profit=take_profit,
        signal_time=signal_time,
        entry_time=entry_time,
        exit_time=exit_time,
        pnl_r=pnl_r,
        signal_index=origin_index,
        entry_index=entry_index,
        mode=mode,
        description=description,
    )


def simulate_managed_exit(
    bars: Sequence[Bar],
    entry_index: int,
    side: str,
    entry: float,
    stop_loss: float,
    plan: ExitPlan,
) -> ExitOutcome:
    """Walk a position filled at ``bars[entry_index]`` to its exit.

    Per bar, the break-even rule is evaluated first, then (partial mode)
    the first target, the final target, and the working stop.

    Outcomes:
        * final target → WIN with ``take_profit_r`` (single) or the sum of
          both booked halves (partial);
        * stop after the first target → WIN with the booked half;
        * stop after a break-even move → BE with 0R;
        * initial stop → LOSS with −1R;
        * series end → OPEN with unrealised R of the remaining size plus
          anything already booked.
    """
    _check_side(side)

    stop = BreakEvenStop(entry, stop_loss, side, trigger_r=plan.break_even_r)
    final_target = target_price(entry, stop_loss, side, plan.take_profit_r)
    partial = plan.partial_r is not None
    first_target = (
        target_price(entry, stop_loss, side, plan.partial_r) if partial else None
    )
    first_hit = False
    booked = 0.0

    for k in range(entry_index + 1, len(bars)):
        bar = bars[k]
        stop.update(bar)
        hit_stop = stop.is_hit(bar)

        if partial:
            if not first_hit and _reaches_target(bar, side, first_target):
                first_hit = True
                booked += 0.5 * plan.partial_r
                stop.move_to_entry()
            if first_hit and _reaches_target(bar, side, final_target):
                booked += 0.5 * plan.take_profit_r
                return ExitOutcome(WIN, booked, k, bar.time)
            if hit_stop:
                if first_hit:
                    return ExitOutcome(WIN, booked, k, bar.time)
                if stop.moved:
                    return ExitOutcome(BE, 0.0, k, bar.time)
                return ExitOutcome(LOSS, -1.0, k, bar.time)
            continue

        if hit_stop:
            if stop.moved:
                return ExitOutcome(BE, 0.0, k, bar.time)
            return ExitOutcome(LOSS, -1.0, k, bar.time)
        if _reaches_target(bar, side, final_target):
            return ExitOutcome(WIN, plan.take_profit_r, k, bar.time)

    if not bars:
        return ExitOutcome(OPEN, booked)
    mark = unrealized_r(entry, stop_loss, side, bars[-1].close)
    remaining = 0.5 if first_hit else 1.0
    return ExitOutcome(OPEN, booked + remaining * mark)
