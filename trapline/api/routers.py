"""Internal API routers — /analysis, /zones, /lines, /trades, /pnl, /optimizer.

No analysis logic here.  Endpoints serialise the controller's latest
result into plain JSON records for an external renderer.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from trapline.backtest.replay import replay_window, trade_markers

logger = logging.getLogger("trapline.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_controller = None  # Set via configure_routers()


def configure_routers(controller=None) -> None:
    """Inject the ``AnalysisController`` (or a duck-type for tests)."""
    global _controller  # noqa: PLW0603
    _controller = controller


def _latest():
    if _controller is None:
        return None
    return _controller.latest


def _optimizer_row(result) -> dict:
    row = asdict(result)
    row.pop("trades")
    row["total"] = result.total
    return row


# ── Analysis records ─────────────────────────────────────────────────────


@router.get("/analysis")
async def get_analysis():
    """Return a summary of the latest analysis pass."""
    result = _latest()
    if result is None:
        return {"analysis": None}
    return {
        "analysis": {
            "symbol": _controller.config.symbol,
            "interval": _controller.config.interval,
            "strategy": _controller.config.strategy,
            "bars": len(_controller.series),
            "zones": len(result.zones),
            "lines": len(result.lines),
            "trades": len(result.trades),
            "hurst": asdict(result.hurst),
            "channel": asdict(result.channel) if result.channel else None,
            "metrics": asdict(result.metrics),
        }
    }


@router.get("/zones")
async def get_zones(
    label: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
):
    """Return detected zones, optionally filtered by label and status."""
    result = _latest()
    if result is None:
        return {"zones": [], "total": 0}
    zones = [
        asdict(z) for z in result.zones
        if (label is None or z.label == label.upper())
        and (status is None or z.status == status.upper())
    ]
    return {"zones": zones, "total": len(zones)}


@router.get("/lines")
async def get_lines(status: Optional[str] = Query(default=None)):
    """Return trend lines (active and, when enabled, broken)."""
    result = _latest()
    if result is None:
        return {"lines": [], "total": 0}
    lines = [
        asdict(line) for line in result.lines
        if status is None or line.status == status.upper()
    ]
    return {"lines": lines, "total": len(lines)}


@router.get("/trades")
async def get_trades(
    limit: int = Query(default=100, ge=1, le=1000),
    status: Optional[str] = Query(default=None),
):
    """Return simulated trades, newest entry first."""
    result = _latest()
    if result is None:
        return {"trades": [], "total": 0}
    trades = [
        t for t in result.trades
        if status is None or t.status == status.upper()
    ]
    return {
        "trades": [asdict(t) for t in trades[:limit]],
        "total": len(trades),
    }


@router.get("/trades/{trade_id}/replay")
async def get_trade_replay(trade_id: str):
    """Return the chart markers and visible window for one trade."""
    result = _latest()
    trade = None
    if result is not None:
        trade = next((t for t in result.trades if t.id == trade_id), None)
    if trade is None:
        raise HTTPException(status_code=404, detail=f"Unknown trade: {trade_id}")
    window = replay_window(trade)
    return {
        "trade": asdict(trade),
        "markers": trade_markers(trade),
        "window": {"from": window[0], "to": window[1]} if window else None,
    }


@router.get("/pnl")
async def get_pnl():
    """Return PnL metrics and the equity curve."""
    result = _latest()
    if result is None:
        return {"metrics": None, "equity_curve": []}
    return {
        "metrics": asdict(result.metrics),
        "equity_curve": [asdict(p) for p in result.equity_curve],
    }


# ── Actions ──────────────────────────────────────────────────────────────


@router.get("/optimizer")
async def get_optimizer():
    """Return the last optimizer ranking."""
    if _controller is None:
        return {"results": []}
    return {"results": [_optimizer_row(r) for r in _controller.optimizer_results]}


@router.post("/optimizer")
def post_optimizer():
    """Run the mode optimizer over the current bar window.

    Plain ``def``: FastAPI runs it in the threadpool, off the event loop.
    """
    if _controller is None:
        return {"error": "No controller"}
    results = _controller.optimize()
    logger.info("Optimizer run via API: %d modes.", len(results))
    return {"results": [_optimizer_row(r) for r in results]}


@router.post("/refresh")
def post_refresh():
    """Recompute the analysis over the current bar window.

    Plain ``def``: FastAPI runs it in the threadpool, off the event loop.
    """
    if _controller is None:
        return {"error": "No controller"}
    result = _controller.refresh()
    return {
        "status": "ok",
        "zones": len(result.zones),
        "lines": len(result.lines),
        "trades": len(result.trades),
    }
