"""AnalysisController — owns the bar window and drives analysis passes.

Backfills history from a ``BarFeed``, applies streamed updates, and runs
``recompute`` on demand.  Finished results are published to an optional
``AnalysisSink``.
"""

import logging
from typing import Optional

from trapline.analysis import AnalysisResult, recompute
from trapline.backtest.optimizer import run_optimizer
from trapline.config import Config
from trapline.feed.base import AnalysisSink, BarFeed, Subscription
from trapline.strategy.bars import BarSeries
from trapline.strategy.models import Bar, OptimizerResult

logger = logging.getLogger("trapline.controller")

_PROGRESS_EVERY = 5000


class AnalysisController:
    """Lifecycle manager for one symbol's bar window.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        feed:   Any ``BarFeed`` (normally ``BinanceClient``).
        sink:   Optional ``AnalysisSink`` that receives each result.
    """

    def __init__(
        self,
        config: Config,
        feed: BarFeed,
        sink: Optional[AnalysisSink] = None,
    ) -> None:
        self._config = config
        self._feed = feed
        self._sink = sink
        self._series = BarSeries(max_length=config.max_bars)
        self._subscription: Optional[Subscription] = None
        self._latest: Optional[AnalysisResult] = None
        self._optimizer_results: list[OptimizerResult] = []

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def config(self) -> Config:
        return self._config

    @property
    def series(self) -> BarSeries:
        return self._series

    @property
    def latest(self) -> Optional[AnalysisResult]:
        """Result of the most recent :meth:`refresh`, if any."""
        return self._latest

    @property
    def optimizer_results(self) -> list[OptimizerResult]:
        return list(self._optimizer_results)

    @property
    def live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def load_history(self) -> int:
        """Pull batches backwards until ``history_target`` bars are held.

        Stops early when the feed returns an empty batch or a batch that
        adds nothing new.

        Returns:
            Number of bars held after the backfill.
        """
        target = self._config.history_target
        next_report = _PROGRESS_EVERY
        before: Optional[int] = None

        while len(self._series) < target:
            batch = await self._feed.fetch_historical_batch(before)
            if not batch:
                logger.info("History exhausted at %d bars.", len(self._series))
                break
            added = self._series.merge_batch(batch)
            if added == 0:
                break
            if len(self._series) >= next_report:
                logger.info("Loaded %d / %d bars.", len(self._series), target)
                next_report += _PROGRESS_EVERY
            before = self._series.earliest_time * 1000 - 1

        logger.info(
            "Backfill complete: %d bars for %s %s.",
            len(self._series), self._config.symbol, self._config.interval,
        )
        return len(self._series)

    def on_bar(self, bar: Bar) -> str:
        """Apply one streamed update; analysis is not re-run."""
        return self._series.apply_update(bar)

    def refresh(self) -> AnalysisResult:
        """Recompute over a snapshot of the window and publish the result."""
        result = recompute(self._series.snapshot(), self._config)
        self._latest = result
        if self._sink is not None:
            self._sink.publish(result)
        return result

    def optimize(self) -> list[OptimizerResult]:
        """Rank every strategy mode over a snapshot of the window."""
        cfg = self._config
        self._optimizer_results = run_optimizer(
            self._series.snapshot(),
            sensitivity=cfg.sensitivity,
            history_window=cfg.history_target,
            fractal_strength=cfg.fractal_strength,
            angle_filter=cfg.angle_filter,
            angle_max=cfg.angle_max,
            tolerance=cfg.tolerance,
            strict_mode=cfg.strict_mode,
            use_volume_analysis=cfg.use_volume_analysis,
        )
        return self.optimizer_results

    def start_live(self) -> None:
        """Subscribe to streamed updates.  A second call is a no-op."""
        if self.live:
            return
        self._subscription = self._feed.subscribe_live(self.on_bar)
        logger.info("Live updates started for %s.", self._config.symbol)

    def stop_live(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
            logger.info("Live updates stopped for %s.", self._config.symbol)
