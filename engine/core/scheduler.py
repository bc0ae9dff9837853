"""Periodic task runner used by the monitor's sampling and retention loops."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async callback on a fixed interval until stopped.

    The callback runs first, then the task sleeps for the interval. An
    exception raised by the callback is logged and the next iteration
    proceeds normally. Stopping cancels the sleep but lets an in-flight
    callback finish.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        run_immediately: bool = True,
    ):
        if interval <= 0:
            raise ValueError(f"Interval must be positive: {interval}")
        self.name = name
        self.callback = callback
        self.interval = interval
        self.run_immediately = run_immediately

        self._is_running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self.iterations = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Start the loop as a background task on the running event loop."""
        if self._is_running:
            return

        self._is_running = True
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"Started periodic task {self.name} (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop, waiting for an in-flight callback to complete."""
        if not self._is_running:
            return

        self._is_running = False
        if self._wakeup is not None:
            self._wakeup.set()

        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"Stopped periodic task {self.name}")

    async def _loop(self) -> None:
        """Periodic loop."""
        if not self.run_immediately:
            await self._sleep()

        while self._is_running:
            try:
                await self.callback()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in periodic task {self.name}: {e}", exc_info=True)

            self.iterations += 1
            await self._sleep()

    async def _sleep(self) -> None:
        """Sleep for the interval, returning early when stopped."""
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass
