"""Binance REST kline client.

Fetches historical kline batches and polls the latest klines for live
updates.  Implements the ``BarFeed`` protocol.
"""

import asyncio
import inspect
import logging
from typing import Optional

import httpx

from trapline.config import Config
from trapline.feed.base import BarCallback, Subscription
from trapline.strategy.models import Bar

logger = logging.getLogger("trapline.binance")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {500, 502, 503, 504, 429}

_KLINES_PATH = "/api/v3/klines"
_LIVE_KLINES = 2


def parse_kline(row: list) -> Bar:
    """Convert one kline row into a ``Bar``.

    Binance rows are ``[open_time_ms, open, high, low, close, volume,
    close_time, quote_volume, trades, taker_buy_base_volume, ...]``.
    """
    return Bar.from_volumes(
        time=int(row[0]) // 1000,
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        buy_volume=float(row[9]),
    )


class BinanceClient:
    """Async client wrapping the public Binance kline endpoint."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.binance_base_url.rstrip("/")
        self._symbol = config.symbol
        self._interval = config.interval
        self._headers = {"Accept": "application/json"}

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on server errors and rate-limits (429).  Other errors are
        raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        timeout=30.0,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "Binance %s %s returned %d, retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Binance %s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Klines ───────────────────────────────────────────────────────────

    async def fetch_klines(
        self,
        limit: int,
        end_time: Optional[int] = None,
    ) -> list[Bar]:
        """Fetch up to *limit* klines, optionally ending at *end_time* (ms).

        Returns:
            List of ``Bar`` objects ordered oldest-first.
        """
        url = f"{self._base_url}{_KLINES_PATH}"
        params = {
            "symbol": self._symbol,
            "interval": self._interval,
            "limit": limit,
        }
        if end_time is not None:
            params["endTime"] = end_time

        resp = await self._request_with_retry("get", url, params=params)

        return [parse_kline(row) for row in resp.json()]

    async def fetch_historical_batch(self, before: Optional[int] = None) -> list[Bar]:
        """One backfill batch ending before *before* (epoch ms)."""
        return await self.fetch_klines(self._config.limit_per_request, end_time=before)

    # ── Live updates ─────────────────────────────────────────────────────

    def subscribe_live(
        self,
        on_bar: BarCallback,
        poll_interval: Optional[float] = None,
    ) -> Subscription:
        """Poll the latest klines and hand each one to *on_bar*.

        The previous (just closed) kline is delivered as well as the
        in-progress one, so the final values of a bar are never missed.
        Must be called from a running event loop.
        """
        interval = poll_interval or self._config.poll_interval_seconds
        task = asyncio.get_running_loop().create_task(
            self._poll_latest(on_bar, interval),
        )
        return Subscription(task)

    async def _poll_latest(self, on_bar: BarCallback, interval: float) -> None:
        logger.info(
            "Live polling %s %s every %.1fs", self._symbol, self._interval, interval,
        )
        while True:
            try:
                bars = await self.fetch_klines(_LIVE_KLINES)
            except httpx.HTTPError as exc:
                logger.warning("Live poll failed: %s", exc)
                bars = []
            for bar in bars:
                try:
                    result = on_bar(bar)
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    logger.error("Live bar handler failed at %d: %s", bar.time, exc)
            await asyncio.sleep(interval)
