"""Trade replay records — chart markers and the time window around a trade.

Plain dicts only; drawing them is the renderer's job.
"""

from typing import Optional

from trapline.strategy.models import BE, LONG, LOSS, WIN, Trade

REPLAY_LOOKBACK_SECONDS = 3600
REPLAY_FORWARD_SECONDS = 7200
MIN_PAD_SECONDS = 900

_EXIT_COLORS = {WIN: "#089981", LOSS: "#f23645", BE: "#787b86"}


def trade_markers(trade: Trade) -> list[dict]:
    """IDEA, ENTRY and exit markers for *trade*."""
    long = trade.side == LONG
    entry_position = "belowBar" if long else "aboveBar"
    entry_shape = "arrowUp" if long else "arrowDown"
    markers: list[dict] = []

    idea_time = trade.signal_time or trade.entry_time
    if idea_time:
        markers.append({
            "time": idea_time,
            "position": entry_position,
            "color": "#3b82f6",
            "shape": entry_shape,
            "text": "IDEA",
        })
    if trade.entry_time:
        markers.append({
            "time": trade.entry_time,
            "position": entry_position,
            "color": "#2962ff",
            "shape": entry_shape,
            "text": "ENTRY",
        })
    if trade.exit_time and trade.status in _EXIT_COLORS:
        markers.append({
            "time": trade.exit_time,
            "position": "aboveBar" if long else "belowBar",
            "color": _EXIT_COLORS[trade.status],
            "shape": "circle",
            "text": trade.status,
        })
    return markers


def replay_window(
    trade: Trade, pad_floor: float = MIN_PAD_SECONDS,
) -> Optional[tuple[int, int]]:
    """Visible ``(from, to)`` range for replaying *trade*, padded.

    Starts an hour before the entry (or signal) and ends at the exit, or
    two hours after the entry when the trade has not exited.  Both
    ends are padded by 25 % of the span, at least *pad_floor* seconds.
    """
    anchor = trade.entry_time or trade.signal_time
    if not anchor:
        return None
    start = anchor - REPLAY_LOOKBACK_SECONDS
    end = trade.exit_time or anchor + REPLAY_FORWARD_SECONDS
    if start > end:
        start, end = end, start
    pad = max((end - start) * 0.25, pad_floor)
    return int(start - pad), int(end + pad)
