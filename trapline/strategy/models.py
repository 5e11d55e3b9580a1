"""Strategy data models — typed records produced by the analysis passes."""

from dataclasses import dataclass, field
from typing import Optional


# ── Labels ───────────────────────────────────────────────────────────────

FVG = "FVG"
OB = "OB"

BULL = "BULL"
BEAR = "BEAR"

ACTIVE = "ACTIVE"
MITIGATED = "MITIGATED"
BROKEN = "BROKEN"

UP = "UP"
DOWN = "DOWN"

LONG = "LONG"
SHORT = "SHORT"

PENDING = "PENDING"
OPEN = "OPEN"
WIN = "WIN"
LOSS = "LOSS"
BE = "BE"
CANCELLED = "CANCELLED"

CLOSED_STATUSES = frozenset({WIN, LOSS, BE})


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar. ``time`` is in epoch seconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    delta: float = 0.0

    @classmethod
    def from_volumes(
        cls,
        time: int,
        open: float,
        high: float,
        low: float,
        close: float,
        volume: float,
        buy_volume: float,
    ) -> "Bar":
        """Build a bar from total and taker-buy volume."""
        sell_volume = volume - buy_volume
        return cls(
            time=time,
            open=open,
            high=high,
            low=low,
            close=close,
            volume=volume,
            buy_volume=buy_volume,
            sell_volume=sell_volume,
            delta=buy_volume - sell_volume,
        )

    @property
    def range(self) -> float:
        return self.high - self.low

    def touches(self, top: float, bottom: float) -> bool:
        """``True`` when the bar's [low, high] overlaps the price band."""
        upper = max(top, bottom)
        lower = min(top, bottom)
        return self.low <= upper and self.high >= lower


@dataclass(frozen=True)
class Zone:
    """A fair value gap or order block zone."""

    id: str
    label: str  # "FVG" or "OB"
    side: str  # "BULL" or "BEAR"
    top: float
    bottom: float
    origin_index: int
    origin_time: int
    status: str = ACTIVE
    mitigated_time: Optional[int] = None
    quality_score: float = 0.0
    gap_size: float = 0.0
    impulse_pct: float = 0.0
    volume: float = 0.0
    has_bos: bool = False

    @property
    def upper(self) -> float:
        return max(self.top, self.bottom)

    @property
    def lower(self) -> float:
        return min(self.top, self.bottom)

    @property
    def mid(self) -> float:
        return (self.top + self.bottom) / 2

    def mitigated_before(self, time: int) -> bool:
        """``True`` when the zone was consumed strictly before *time*."""
        return self.mitigated_time is not None and self.mitigated_time < time


@dataclass(frozen=True)
class TrendLine:
    """A line from an origin pivot (``p1``/``t1``) to its end point.

    The end point is the last bar for ACTIVE lines and the break bar for
    BROKEN lines.
    """

    type: str  # "UP" or "DOWN"
    p1: float
    t1: int
    p2: float
    t2: int
    slope: float
    score: float
    touch_count: int
    touch_indices: tuple[int, ...]
    status: str
    start_index: int
    pivot_index: int
    end_index: int
    duration_hours: float
    slope_norm: float
    break_index: Optional[int] = None

    def price_at(self, index: int) -> float:
        """Theoretical line price at bar *index*."""
        return self.p1 + self.slope * (index - self.start_index)


@dataclass(frozen=True)
class Trade:
    """A simulated trade and its outcome in R-multiples."""

    id: str
    side: str  # "LONG" or "SHORT"
    status: str
    entry: float
    stop_loss: float
    take_profit: float
    signal_time: int
    entry_time: Optional[int] = None
    exit_time: Optional[int] = None
    pnl_r: float = 0.0
    signal_index: Optional[int] = None
    entry_index: Optional[int] = None
    mode: str = ""
    description: str = ""
    setup_score: float = 0.0
    zone_id: Optional[str] = None
    fvg_id: Optional[str] = None

    @property
    def risk(self) -> float:
        return abs(self.entry - self.stop_loss)

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES


@dataclass(frozen=True)
class EquityPoint:
    """Account equity after a realised exit."""

    time: int
    equity: float


@dataclass(frozen=True)
class OptimizerResult:
    """Aggregate outcome of one optimizer cell."""

    mode: str
    label: str
    take_profit_r: float
    break_even_r: float
    total_pnl_r: float
    win_rate: float
    profit_factor: float
    wins: int = 0
    losses: int = 0
    trades: tuple[Trade, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.trades)
