"""Position sizing — pure math, no I/O.

Sizes a position so that a stop-out loses exactly the risk amount.
"""


def calculate_units(risk_amount: float, entry_price: float, stop_loss: float) -> float:
    """Calculate position size in units.

    Formula::

        units = risk_amount / |entry_price - stop_loss|

    Args:
        risk_amount: Account currency lost if the stop is hit (e.g. 100.0).
        entry_price: Fill price.
        stop_loss: Stop-loss price.

    Returns:
        Position size in units (always positive).

    Raises:
        ValueError: If the risk amount is non-positive or the stop sits on
            the entry.
    """
    if risk_amount <= 0:
        raise ValueError(f"risk_amount must be positive, got {risk_amount}")
    distance = abs(entry_price - stop_loss)
    if distance <= 0:
        raise ValueError(
            f"stop distance must be positive, got entry={entry_price} stop={stop_loss}"
        )
    return risk_amount / distance


def notional(units: float, price: float) -> float:
    """Position value at *price*."""
    return units * price
