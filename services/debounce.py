"""Trailing debounce for asyncio callbacks."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

DebouncedCallback = Callable[[], Union[None, Awaitable[Any]]]


class TrailingDebouncer:
    """Run ``callback`` once after ``delay_seconds`` of quiet.

    Every ``trigger()`` cancels the pending timer and starts a new one, so a
    burst of triggers collapses into a single trailing call. A callback that is
    already running is never cancelled; a trigger during it schedules another run.
    """

    def __init__(self, callback: DebouncedCallback, delay_seconds: float = 0.15, name: str = "debounce"):
        self._callback = callback
        self.delay_seconds = max(0.0, float(delay_seconds))
        self.name = name
        self._timer: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        self.fire_count = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire_later())

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Run a pending callback now instead of waiting for the quiet period."""
        if not self.pending:
            return
        self.cancel()
        await self._run()

    async def wait(self) -> None:
        """Wait until no timer is pending and the last scheduled run has finished."""
        while True:
            tasks = {t for t in (self._timer, self._running) if t is not None and not t.done()}
            if not tasks:
                return
            await asyncio.wait(tasks)

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay_seconds)
        # Past the quiet period: no longer cancelable by trigger()
        self._running = self._timer
        self._timer = None
        await self._run()

    async def _run(self) -> None:
        self.fire_count += 1
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Debounced callback {self.name} failed")
