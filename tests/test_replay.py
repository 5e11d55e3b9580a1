"""Tests for trapline.backtest.replay."""

from trapline.backtest.replay import replay_window, trade_markers
from trapline.strategy.models import BE, LONG, LOSS, OPEN, PENDING, SHORT, WIN, Trade


def _make_trade(side=LONG, status=WIN, signal_time=10_000, entry_time=20_000, exit_time=30_000) -> Trade:
    return Trade(
        id="t-1",
        side=side,
        status=status,
        entry=100.0,
        stop_loss=99.0 if side == LONG else 101.0,
        take_profit=102.0 if side == LONG else 98.0,
        signal_time=signal_time,
        entry_time=entry_time,
        exit_time=exit_time,
    )


class TestTradeMarkers:
    def test_long_win_markers(self):
        markers = trade_markers(_make_trade())
        assert [m["text"] for m in markers] == ["IDEA", "ENTRY", "WIN"]
        idea, entry, exit_ = markers
        assert idea["time"] == 10_000
        assert entry["position"] == "belowBar"
        assert entry["shape"] == "arrowUp"
        assert exit_["position"] == "aboveBar"
        assert exit_["shape"] == "circle"
        assert exit_["color"] == "#089981"

    def test_short_loss_flips_positions(self):
        markers = trade_markers(_make_trade(side=SHORT, status=LOSS))
        assert markers[0]["position"] == "aboveBar"
        assert markers[0]["shape"] == "arrowDown"
        assert markers[-1]["position"] == "belowBar"
        assert markers[-1]["color"] == "#f23645"

    def test_break_even_exit_is_grey(self):
        assert trade_markers(_make_trade(status=BE))[-1]["color"] == "#787b86"

    def test_open_trade_has_no_exit_marker(self):
        markers = trade_markers(_make_trade(status=OPEN, exit_time=None))
        assert [m["text"] for m in markers] == ["IDEA", "ENTRY"]

    def test_pending_idea_only(self):
        markers = trade_markers(_make_trade(status=PENDING, entry_time=None, exit_time=None))
        assert [m["text"] for m in markers] == ["IDEA"]


class TestReplayWindow:
    def test_closed_trade_window(self):
        # start = 20_000 − 3600, end = 30_000, span 13_600 → pad 3400
        assert replay_window(_make_trade()) == (16_400 - 3400, 30_000 + 3400)

    def test_open_trade_extends_two_hours(self):
        trade = _make_trade(status=OPEN, exit_time=None)
        # span 3h → pad 2700
        assert replay_window(trade) == (20_000 - 3600 - 2700, 20_000 + 7200 + 2700)

    def test_pad_floor(self):
        trade = _make_trade(entry_time=20_000, exit_time=16_500)
        # start 16_400, end 16_500 → span 100, floor 900
        assert replay_window(trade) == (16_400 - 900, 16_500 + 900)

    def test_pending_uses_signal_time(self):
        trade = _make_trade(status=PENDING, entry_time=None, exit_time=None)
        assert replay_window(trade) == (10_000 - 3600 - 2700, 10_000 + 7200 + 2700)

    def test_no_anchor(self):
        trade = _make_trade(signal_time=0, entry_time=None, exit_time=None)
        assert replay_window(trade) is None
