"""Tests for trapline.cli.dashboard — printed reports."""

from trapline.backtest.stats import PnlMetrics
from trapline.cli.dashboard import print_optimizer, print_report
from trapline.strategy.models import OptimizerResult


def _make_metrics(**overrides) -> PnlMetrics:
    values = dict(
        total_trades=4, wins=3, losses=1, win_rate=75.0, profit_factor=6.0,
        sharpe=0.77, sortino=1.5, max_drawdown=1.0, realized_pnl=500.0,
        unrealized_pnl=-25.0, total_pnl=500.0, final_equity=10_500.0,
        current_equity=10_475.0, avg_duration=5400.0, max_duration=7200.0,
    )
    values.update(overrides)
    return PnlMetrics(**values)


class TestPrintReport:
    def test_contains_metrics(self, capsys):
        output = print_report(_make_metrics(), title="BTCUSDT 15m standard")
        assert " BTCUSDT 15m standard " in output
        assert "Wins / Losses:   3 / 1" in output
        assert "Win Rate:        75.0%" in output
        assert "Profit Factor:   6.00" in output
        assert "Final Equity:    $10,500.00" in output
        assert "Unrealized PnL:  $-25.00" in output
        assert "Avg Duration:    1.5h" in output
        assert capsys.readouterr().out.strip() == output.strip()

    def test_capped_profit_factor_shows_infinity(self):
        assert "Profit Factor:   ∞" in print_report(_make_metrics(profit_factor=999.0))


class TestPrintOptimizer:
    def test_ranked_rows(self):
        results = [
            OptimizerResult("atr", "TL ATR [2:1]", 2.0, 0.0, 6.0, 75.0, 3.0, 3, 1),
            OptimizerResult("agro", "TL Agro [3:1]", 3.0, 0.0, -2.0, 0.0, 0.0, 0, 2),
        ]
        output = print_optimizer(results)
        rows = output.splitlines()[2:]
        assert rows[0].startswith(" 1  TL ATR [2:1]")
        assert "+6.0" in rows[0]
        assert rows[1].startswith(" 2  TL Agro [3:1]")
        assert "-2.0" in rows[1]

    def test_empty(self):
        assert "(no results)" in print_optimizer([])
