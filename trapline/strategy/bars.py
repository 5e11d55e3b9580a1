"""Bar series — the ordered, de-duplicated bar window owned by the caller.

Analysis passes never read a ``BarSeries`` directly; they take a
:meth:`BarSeries.snapshot` so a concurrent append cannot be observed
mid-pass.
"""

from typing import Iterable, Iterator, Optional

from trapline.strategy.models import Bar

APPENDED = "appended"
REPLACED = "replaced"
DISCARDED = "discarded"


class BarSeries:
    """Strictly time-increasing sequence of bars.

    Args:
        bars: Optional initial bars (any order, duplicates dropped).
        max_length: When set, the oldest bars are trimmed after live
            appends so the window never exceeds this size.
    """

    def __init__(
        self,
        bars: Optional[Iterable[Bar]] = None,
        max_length: Optional[int] = None,
    ) -> None:
        if max_length is not None and max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self._bars: list[Bar] = []
        self._max_length = max_length
        if bars is not None:
            self.merge_batch(bars)

    # ── Mutation ─────────────────────────────────────────────────────────

    def merge_batch(self, bars: Iterable[Bar]) -> int:
        """Merge a historical batch into the series.

        The batch may overlap bars already stored; for a duplicated
        timestamp the earliest-seen bar is kept.

        Returns:
            Number of bars actually added.
        """
        before = len(self._bars)
        merged = sorted([*self._bars, *bars], key=lambda b: b.time)
        deduped: list[Bar] = []
        for bar in merged:
            if deduped and bar.time <= deduped[-1].time:
                continue
            deduped.append(bar)
        self._bars = deduped
        return len(self._bars) - before

    def apply_update(self, bar: Bar) -> str:
        """Apply a streamed bar update.

        Returns ``"replaced"`` when *bar* repeats the in-progress bar's
        timestamp, ``"appended"`` when it is newer and ``"discarded"``
        when it is older than the last stored bar.
        """
        if self._bars:
            last = self._bars[-1]
            if bar.time < last.time:
                return DISCARDED
            if bar.time == last.time:
                self._bars[-1] = bar
                return REPLACED
        self._bars.append(bar)
        if self._max_length is not None and len(self._bars) > self._max_length:
            del self._bars[: len(self._bars) - self._max_length]
        return APPENDED

    # ── Queries ──────────────────────────────────────────────────────────

    def snapshot(self) -> tuple[Bar, ...]:
        """Immutable copy of the current window."""
        return tuple(self._bars)

    @property
    def earliest_time(self) -> Optional[int]:
        return self._bars[0].time if self._bars else None

    @property
    def last(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(tuple(self._bars))

    def __getitem__(self, index):
        return self._bars[index]
