"""Tests for the risk module.

Covers position sizing, the break-even stop and drawdown tracking.
"""

import pytest

from trapline.risk.break_even import BreakEvenStop
from trapline.risk.drawdown import DrawdownTracker
from trapline.risk.position_sizer import calculate_units, notional
from trapline.strategy.models import LONG, SHORT, Bar


def _make_bar(high: float, low: float) -> Bar:
    return Bar(time=0, open=low, high=high, low=low, close=high)


# ── Position sizing ──────────────────────────────────────────────────────


class TestPositionSizing:
    """Unit tests for calculate_units()."""

    def test_position_sizing(self):
        """$100 risk, $50 stop distance → 2 units."""
        assert calculate_units(100.0, 30_000.0, 29_950.0) == pytest.approx(2.0)

    def test_short_side_distance_is_absolute(self):
        assert calculate_units(100.0, 100.0, 110.0) == pytest.approx(10.0)

    def test_rejects_zero_risk_amount(self):
        with pytest.raises(ValueError, match="risk_amount"):
            calculate_units(0.0, 100.0, 90.0)

    def test_rejects_stop_on_entry(self):
        with pytest.raises(ValueError, match="stop distance"):
            calculate_units(100.0, 100.0, 100.0)

    def test_notional(self):
        assert notional(2.0, 30_000.0) == 60_000.0


# ── Break-even stop ──────────────────────────────────────────────────────


class TestBreakEvenStop:
    def test_long_moves_to_entry_at_trigger(self):
        stop = BreakEvenStop(100.0, 90.0, LONG, trigger_r=1.0)
        assert stop.update(_make_bar(105.0, 101.0)) is False
        assert stop.current_sl == 90.0
        assert stop.update(_make_bar(110.0, 101.0)) is True
        assert stop.current_sl == 100.0
        assert stop.moved

    def test_never_moves_back(self):
        stop = BreakEvenStop(100.0, 90.0, LONG, trigger_r=1.0)
        stop.update(_make_bar(115.0, 101.0))
        assert stop.update(_make_bar(150.0, 101.0)) is False
        assert stop.current_sl == 100.0

    def test_short_excursion(self):
        stop = BreakEvenStop(100.0, 110.0, SHORT, trigger_r=0.5)
        assert stop.excursion_r(_make_bar(99.0, 95.0)) == pytest.approx(0.5)
        assert stop.update(_make_bar(99.0, 95.0)) is True
        assert stop.current_sl == 100.0

    def test_zero_trigger_disables(self):
        stop = BreakEvenStop(100.0, 90.0, LONG, trigger_r=0.0)
        assert stop.update(_make_bar(200.0, 101.0)) is False
        assert stop.current_sl == 90.0

    def test_is_hit(self):
        stop = BreakEvenStop(100.0, 90.0, LONG)
        assert stop.is_hit(_make_bar(101.0, 90.0))
        assert not stop.is_hit(_make_bar(101.0, 90.5))
        short = BreakEvenStop(100.0, 110.0, SHORT)
        assert short.is_hit(_make_bar(110.0, 99.0))

    def test_invalid_side_raises(self):
        with pytest.raises(ValueError, match="side"):
            BreakEvenStop(100.0, 90.0, "buy")


# ── Drawdown ─────────────────────────────────────────────────────────────


class TestDrawdownTracker:
    def test_tracks_peak_and_drawdown(self):
        tracker = DrawdownTracker(10_000.0)
        tracker.update(11_000.0)
        tracker.update(9_900.0)
        assert tracker.peak_equity == 11_000.0
        assert tracker.drawdown == pytest.approx(0.1)
        assert tracker.max_drawdown_pct == pytest.approx(10.0)

    def test_max_drawdown_survives_recovery(self):
        tracker = DrawdownTracker(100.0)
        tracker.update(80.0)
        tracker.update(120.0)
        assert tracker.drawdown == 0.0
        assert tracker.max_drawdown == pytest.approx(0.2)
        assert tracker.current_equity == 120.0

    def test_rejects_non_positive_equity(self):
        with pytest.raises(ValueError, match="initial_equity"):
            DrawdownTracker(0.0)
