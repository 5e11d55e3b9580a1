"""Tests for the analysis API endpoints."""

import inspect

import pytest
from fastapi.testclient import TestClient

from trapline.api import routers
from trapline.api.routers import configure_routers
from trapline.config import Config
from trapline.controller import AnalysisController
from trapline.main import app
from trapline.strategy.models import Bar

client = TestClient(app)

STEP = 900


def _flat(i: int, price: float) -> Bar:
    return Bar(time=i * STEP, open=price, high=price + 0.5, low=price - 0.5, close=price, volume=10.0)


def _gap_series() -> list[Bar]:
    bars = [_flat(i, 100.0) for i in range(30)]
    bars.append(Bar(time=30 * STEP, open=100.2, high=100.5, low=99.5, close=99.8, volume=10.0))
    bars.append(Bar(time=31 * STEP, open=99.8, high=102.6, low=99.7, close=102.0, volume=10.0))
    bars.append(Bar(time=32 * STEP, open=102.0, high=103.5, low=101.5, close=103.0, volume=10.0))
    bars.extend(_flat(i, 103.0) for i in range(33, 60))
    return bars


class _NoFeed:
    async def fetch_historical_batch(self, before=None):
        return []

    def subscribe_live(self, on_bar):
        raise RuntimeError("not used")


@pytest.fixture
def controller():
    ctrl = AnalysisController(Config(strategy="smc", history_target=1000), _NoFeed())
    ctrl.series.merge_batch(_gap_series())
    configure_routers(controller=ctrl)
    yield ctrl
    configure_routers(None)


@pytest.fixture
def refreshed(controller):
    resp = client.post("/refresh")
    assert resp.status_code == 200
    return controller


class TestHealth:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestWithoutController:
    def setup_method(self):
        configure_routers(None)

    def test_analysis_empty(self):
        assert client.get("/analysis").json() == {"analysis": None}

    def test_record_endpoints_empty(self):
        assert client.get("/zones").json() == {"zones": [], "total": 0}
        assert client.get("/lines").json() == {"lines": [], "total": 0}
        assert client.get("/trades").json() == {"trades": [], "total": 0}
        assert client.get("/pnl").json() == {"metrics": None, "equity_curve": []}
        assert client.get("/optimizer").json() == {"results": []}

    def test_actions_report_missing_controller(self):
        assert client.post("/refresh").json() == {"error": "No controller"}
        assert client.post("/optimizer").json() == {"error": "No controller"}

    def test_replay_unknown_trade(self):
        assert client.get("/trades/nope/replay").status_code == 404


class TestRefresh:
    def test_refresh_counts(self, controller):
        data = client.post("/refresh").json()
        assert data == {"status": "ok", "zones": 2, "lines": 0, "trades": 1}

    def test_no_result_before_refresh(self, controller):
        assert client.get("/analysis").json() == {"analysis": None}


class TestRecords:
    def test_analysis_summary(self, refreshed):
        data = client.get("/analysis").json()["analysis"]
        assert data["symbol"] == "BTCUSDT"
        assert data["strategy"] == "smc"
        assert data["bars"] == 60
        assert data["zones"] == 2
        assert data["trades"] == 1
        assert data["channel"] is None
        assert data["hurst"] == {"value": 0.0, "regime": "unknown"}

    def test_zone_filters(self, refreshed):
        data = client.get("/zones").json()
        assert data["total"] == 2
        assert [z["id"] for z in data["zones"]] == ["ob-l-30", "fvg-l-32"]
        fvg_only = client.get("/zones", params={"label": "fvg"}).json()
        assert [z["id"] for z in fvg_only["zones"]] == ["fvg-l-32"]
        assert client.get("/zones", params={"status": "mitigated"}).json()["total"] == 0

    def test_trades(self, refreshed):
        data = client.get("/trades").json()
        assert data["total"] == 1
        trade = data["trades"][0]
        assert trade["id"] == "smc-l-32"
        assert trade["status"] == "PENDING"
        assert client.get("/trades", params={"status": "win"}).json()["total"] == 0

    def test_trades_limit_validated(self, refreshed):
        assert client.get("/trades", params={"limit": 0}).status_code == 422

    def test_replay(self, refreshed):
        data = client.get("/trades/smc-l-32/replay").json()
        assert data["trade"]["id"] == "smc-l-32"
        assert [m["text"] for m in data["markers"]] == ["IDEA"]
        # signal at bar 32; no fill, so the window runs two hours forward
        assert data["window"] == {"from": 22_500, "to": 38_700}

    def test_pnl(self, refreshed):
        data = client.get("/pnl").json()
        assert data["metrics"]["total_trades"] == 0
        assert data["equity_curve"] == [{"time": 0, "equity": 10_000.0}]


class TestOptimizer:
    def test_run_and_fetch(self, controller):
        data = client.post("/optimizer").json()
        assert len(data["results"]) == 6
        row = data["results"][0]
        assert "trades" not in row
        assert row["total"] == 0
        assert client.get("/optimizer").json() == data


class TestActionHandlers:
    def test_recompute_handlers_are_sync(self):
        """Refresh and optimizer run in the threadpool, not on the event loop."""
        assert not inspect.iscoroutinefunction(routers.post_refresh)
        assert not inspect.iscoroutinefunction(routers.post_optimizer)
