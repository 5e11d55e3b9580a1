"""Tests for trapline.backtest.optimizer — mode ranking and the TP/BE grid."""

import pytest

from trapline.backtest import optimizer
from trapline.backtest.optimizer import (
    BE_OPTIONS,
    TP_OPTIONS,
    run_grid_optimizer,
    run_optimizer,
    summarize,
)
from trapline.strategy.liquidity_trap import STRATEGY_MODES, StrategyRun, build_entries
from trapline.strategy.models import (
    BE, BEAR, BROKEN, DOWN, FVG, LONG, LOSS, OB, OPEN, WIN, Bar, Trade, TrendLine, Zone,
)

STEP = 900


def _make_bar(i, high=100.5, low=99.5, close=100.0) -> Bar:
    return Bar(time=i * STEP, open=100.0, high=high, low=low, close=close)


def _limit_setup():
    """One short limit entry at 102 (stop 103.21) that reaches 2R next bar."""
    bars = [_make_bar(i) for i in range(60)]
    bars[35] = _make_bar(35, high=102.2, low=99.8)
    ob = Zone("ob-s-12", OB, BEAR, 101.0, 100.8, 12, 12 * STEP)
    fvg = Zone("fvg-s-14", FVG, BEAR, 100.9, 100.6, 14, 13 * STEP)
    line = TrendLine(
        type=DOWN, p1=101.0, t1=10 * STEP, p2=100.0, t2=30 * STEP, slope=-0.05,
        score=0.0, touch_count=2, touch_indices=(10, 20), status=BROKEN,
        start_index=10, pivot_index=20, end_index=30, duration_hours=5.0,
        slope_norm=5.0, break_index=30,
    )
    return bars, build_entries(bars, [ob, fvg], [line], limit_entry=True)


def _make_trade(status: str, pnl_r: float) -> Trade:
    return Trade(
        id=f"{status}-{pnl_r}", side=LONG, status=status, entry=100.0,
        stop_loss=90.0, take_profit=120.0, signal_time=0, pnl_r=pnl_r,
    )


class TestSummarize:
    def test_totals_over_closed_trades(self):
        trades = [
            _make_trade(WIN, 2.0),
            _make_trade(LOSS, -1.0),
            _make_trade(OPEN, 1.5),
        ]
        result = summarize("standard", "TL Trap [2:1]", trades, 2.0, 0.0)
        assert result.total_pnl_r == pytest.approx(1.0)
        assert result.win_rate == pytest.approx(50.0)
        assert result.profit_factor == pytest.approx(2.0)
        assert (result.wins, result.losses) == (1, 1)

    def test_win_rate_base_override(self):
        result = summarize("grid", "g", [_make_trade(WIN, 2.0)], 2.0, 0.0, win_rate_base=4)
        assert result.win_rate == pytest.approx(25.0)

    def test_mode_totals_include_open_trades(self):
        """Open trades count at their marked R when totals are not closed-only."""
        trades = [_make_trade(WIN, 2.0), _make_trade(OPEN, -0.8)]
        result = summarize("atr", "TL ATR [2:1]", trades, 2.0, 0.0, closed_only=False)
        assert result.total_pnl_r == pytest.approx(1.2)
        assert result.profit_factor == pytest.approx(2.5)
        assert (result.wins, result.losses) == (1, 0)
        assert result.win_rate == pytest.approx(100.0)

    def test_mode_totals_count_break_even_as_win(self):
        trades = [_make_trade(BE, 0.0), _make_trade(LOSS, -1.0)]
        result = summarize("atr_partial_1", "p", trades, 5.0, 1.0, closed_only=False)
        assert (result.wins, result.losses) == (1, 1)
        assert result.win_rate == pytest.approx(50.0)
        assert result.total_pnl_r == pytest.approx(-1.0)

    def test_closed_only_ignores_open_and_break_even_wins(self):
        trades = [_make_trade(WIN, 2.0), _make_trade(OPEN, -0.8), _make_trade(BE, 0.0)]
        result = summarize("grid", "g", trades, 2.0, 1.0)
        assert result.total_pnl_r == pytest.approx(2.0)
        assert (result.wins, result.losses) == (1, 0)

    def test_no_losses_caps_profit_factor(self):
        result = summarize("m", "m", [_make_trade(WIN, 2.0)], 2.0, 0.0)
        assert result.profit_factor == 999.0


class TestRunOptimizer:
    def test_empty_bars_report_every_mode_with_zeros(self):
        results = run_optimizer([])
        assert sorted(r.mode for r in results) == sorted(STRATEGY_MODES)
        for r in results:
            assert r.total_pnl_r == 0
            assert r.win_rate == 0
            assert r.profit_factor == 0
            assert r.total == 0

    def test_short_series_has_no_trades(self):
        bars = [_make_bar(i) for i in range(40)]
        results = run_optimizer(bars)
        assert len(results) == 6
        assert all(r.total_pnl_r == 0 for r in results)

    def test_open_trades_count_toward_mode_ranking(self, monkeypatch):
        """A mode whose only trade is still open ranks by its marked R."""
        def _fake_run(bars, mode, **kwargs):
            if mode == "agro":
                trades = (_make_trade(OPEN, 1.5),)
            elif mode == "standard":
                trades = (_make_trade(WIN, 2.0), _make_trade(OPEN, -0.8))
            else:
                trades = ()
            return StrategyRun(trades=trades, broken_lines=(), entries=())

        monkeypatch.setattr(optimizer, "run_liquidity_strategy", _fake_run)
        results = run_optimizer([_make_bar(i) for i in range(40)])
        assert [r.mode for r in results[:2]] == ["agro", "standard"]
        assert results[0].total_pnl_r == pytest.approx(1.5)
        assert results[1].total_pnl_r == pytest.approx(1.2)
        assert results[1].profit_factor == pytest.approx(2.5)

    def test_results_carry_mode_exit_plan(self):
        results = {r.mode: r for r in run_optimizer([])}
        assert results["atr_partial_1"].take_profit_r == 5.0
        assert results["atr_partial_1"].break_even_r == 1.0
        assert results["agro"].label == "TL Agro [3:1]"


class TestGridOptimizer:
    def test_default_grid_size(self):
        results = run_grid_optimizer([], [])
        assert len(results) == len(TP_OPTIONS) * len(BE_OPTIONS)
        assert all(r.total_pnl_r == 0 and r.win_rate == 0 for r in results)

    def test_grid_ranks_cells_over_same_entries(self):
        bars, entries = _limit_setup()
        assert len(entries) == 1
        results = run_grid_optimizer(bars, entries, tp_options=(2.0, 3.0), be_options=(0.0, 1.0))
        assert len(results) == 4
        best = results[0]
        assert best.take_profit_r == 2.0
        assert best.total_pnl_r == pytest.approx(2.0)
        assert best.win_rate == pytest.approx(100.0)
        # TP 3R is never reached; the open trade does not count
        for r in results:
            if r.take_profit_r == 3.0:
                assert r.total_pnl_r == 0
                assert r.trades[0].status == OPEN

    def test_grid_labels(self):
        bars, entries = _limit_setup()
        labels = {r.label for r in run_grid_optimizer(bars, entries, (2.0,), (0.0, 1.5))}
        assert labels == {"TP 2R | BE OFF", "TP 2R | BE 1.5R"}
