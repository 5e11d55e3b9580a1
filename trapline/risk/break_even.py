"""Break-even stop — moves the stop to entry after a favourable excursion.

Rules:
  - Once the bar's maximum favourable excursion reaches ``trigger_r`` × R,
    the stop moves to the entry price and never moves back.
  - A ``trigger_r`` of 0 disables the move.
"""

from trapline.strategy.models import Bar, LONG, SHORT


class BreakEvenStop:
    """Tracks the working stop of a single filled trade.

    Args:
        entry_price: Fill price.
        initial_sl: Original stop-loss price.
        side: ``"LONG"`` or ``"SHORT"``.
        trigger_r: Favourable excursion (in R) that arms the move.
    """

    def __init__(
        self,
        entry_price: float,
        initial_sl: float,
        side: str,
        trigger_r: float = 1.0,
    ) -> None:
        if side not in (LONG, SHORT):
            raise ValueError(f"side must be 'LONG' or 'SHORT', got '{side}'")
        self.entry_price = entry_price
        self.initial_sl = initial_sl
        self.side = side
        self.trigger_r = trigger_r
        self.current_sl = initial_sl
        self.moved = False
        self._risk = abs(entry_price - initial_sl)

    def excursion_r(self, bar: Bar) -> float:
        """Maximum favourable excursion of *bar* in R."""
        if self._risk == 0:
            return 0.0
        if self.side == LONG:
            return (bar.high - self.entry_price) / self._risk
        return (self.entry_price - bar.low) / self._risk

    def update(self, bar: Bar) -> bool:
        """Evaluate *bar*; return ``True`` if the stop moved to break-even."""
        if self.moved or self.trigger_r <= 0:
            return False
        if self.excursion_r(bar) >= self.trigger_r:
            self.move_to_entry()
            return True
        return False

    def move_to_entry(self) -> None:
        self.current_sl = self.entry_price
        self.moved = True

    def is_hit(self, bar: Bar) -> bool:
        """``True`` when *bar* trades through the working stop."""
        if self.side == LONG:
            return bar.low <= self.current_sl
        return bar.high >= self.current_sl
