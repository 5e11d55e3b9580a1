"""TrapLine — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
backtest, optimize and serve modes.
"""

import logging

from fastapi import FastAPI

from trapline.api.routers import router

app = FastAPI(title="TrapLine Analysis API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("trapline")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the requested command."""
    import argparse
    import asyncio
    from dataclasses import replace

    from trapline.config import load_config

    parser = argparse.ArgumentParser(description="TrapLine bar analysis and backtesting")
    parser.add_argument(
        "command",
        choices=["backtest", "optimize", "serve"],
        help="backtest: run the configured strategy; optimize: rank all "
             "modes; serve: run the API with live updates",
    )
    parser.add_argument("--env", help="Path to a .env file")
    parser.add_argument("--symbol", help="Override TRAPLINE_SYMBOL")
    parser.add_argument("--interval", help="Override TRAPLINE_INTERVAL")
    parser.add_argument("--strategy", help="Override TRAPLINE_STRATEGY")
    parser.add_argument(
        "--grid",
        action="store_true",
        help="With optimize: sweep the take-profit x break-even grid instead",
    )
    args = parser.parse_args(argv)

    config = load_config(args.env)
    overrides = {
        k: v for k, v in (
            ("symbol", args.symbol and args.symbol.upper()),
            ("interval", args.interval),
            ("strategy", args.strategy and args.strategy.lower()),
        ) if v
    }
    if overrides:
        config = replace(config, **overrides)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "backtest":
        asyncio.run(_run_backtest(config))
    elif args.command == "optimize":
        asyncio.run(_run_optimize(config, args.grid))
    else:
        asyncio.run(_serve(config))


def _build_controller(config):
    from trapline.broker.binance_client import BinanceClient
    from trapline.controller import AnalysisController

    return AnalysisController(config=config, feed=BinanceClient(config))


async def _run_backtest(config) -> None:
    """Backfill history, run one analysis pass and print the report."""
    from trapline.cli.dashboard import print_report

    controller = _build_controller(config)
    await controller.load_history()
    result = controller.refresh()
    print_report(
        result.metrics,
        title=f"{config.symbol} {config.interval} {config.strategy}",
    )
    logger.info(
        "Backtest complete: %d zones, %d lines, %d trades, PnL: $%.2f",
        len(result.zones), len(result.lines), len(result.trades),
        result.metrics.realized_pnl,
    )


async def _run_optimize(config, grid: bool) -> None:
    """Backfill history and rank strategy modes (or the TP/BE grid)."""
    from trapline.backtest.optimizer import base_entries, run_grid_optimizer
    from trapline.cli.dashboard import print_optimizer

    controller = _build_controller(config)
    await controller.load_history()
    if grid:
        bars = controller.series.snapshot()
        entries = base_entries(
            bars,
            sensitivity=config.sensitivity,
            history_window=config.history_target,
            fractal_strength=config.fractal_strength,
            angle_filter=config.angle_filter,
            angle_max=config.angle_max,
            tolerance=config.tolerance,
            strict_mode=config.strict_mode,
            use_volume_analysis=config.use_volume_analysis,
        )
        results = run_grid_optimizer(bars, entries)
    else:
        results = controller.optimize()
    print_optimizer(results)


async def _serve(config) -> None:
    """Start the API server with a live-updating bar window."""
    import uvicorn

    from trapline.api.routers import configure_routers

    controller = _build_controller(config)
    configure_routers(controller=controller)

    await controller.load_history()
    controller.refresh()
    controller.start_live()

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=config.api_port,
        log_level=config.log_level.lower(),
    )
    server = uvicorn.Server(uvi_config)
    logger.info("API available at http://localhost:%d", config.api_port)
    try:
        await server.serve()
    finally:
        controller.stop_live()
        logger.info("TrapLine stopped.")


if __name__ == "__main__":
    _run_cli()
