"""Bar feed and analysis sink protocols.

The controller only talks to these interfaces, so a test double or another
exchange can stand in for the Binance client.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from trapline.strategy.models import Bar

BarCallback = Callable[[Bar], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for a running live-update task."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        """Stop delivering updates.  Safe to call more than once."""
        if not self._task.done():
            self._task.cancel()


@runtime_checkable
class BarFeed(Protocol):
    """Source of historical batches and streamed bar updates."""

    async def fetch_historical_batch(self, before: Optional[int] = None) -> list[Bar]:
        """Return bars ending before *before* (epoch ms), oldest first.

        An empty list means the history is exhausted.
        """
        ...

    def subscribe_live(self, on_bar: BarCallback) -> Subscription:
        """Start delivering the latest bar to *on_bar* until cancelled."""
        ...


@runtime_checkable
class AnalysisSink(Protocol):
    """Receiver of finished analysis passes (renderer, API cache, ...)."""

    def publish(self, result) -> None:
        ...
