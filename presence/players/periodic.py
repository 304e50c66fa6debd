"""Cancellable periodic background task."""

import asyncio
from typing import Awaitable, Callable, Optional

from ..logger import logger


class PeriodicTask:
    """Runs ``tick`` repeatedly with a sleep of ``interval_seconds()`` in between.

    The interval is re-read before every sleep. A failing tick is logged and
    the schedule continues. Stopping lets the in-flight tick finish.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Awaitable[None]],
        interval_seconds: Callable[[], float],
        stop_timeout: float = 30.0,
    ):
        """Initialize periodic task.

        Args:
            name: Name used in logs
            tick: Coroutine function run once per period
            interval_seconds: Returns the current period length
            stop_timeout: How long stop() waits for an in-flight tick before
                cancelling it
        """
        self.name = name
        self._tick = tick
        self._interval_seconds = interval_seconds
        self.stop_timeout = stop_timeout

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            logger.warning(f"{self.name} already running")
            return

        logger.info(f"Starting {self.name}...")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"{self.name} started")

    async def stop(self) -> None:
        if self._task is None:
            return

        logger.info(f"Stopping {self.name}...")
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=self.stop_timeout)
        except TimeoutError:
            logger.error(
                f"{self.name} did not finish its tick within {self.stop_timeout}s, cancelling"
            )
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(f"{self.name} stopped")

    async def run_once(self) -> None:
        """Run a single tick, logging instead of raising on failure."""
        try:
            await self._tick()
        except Exception as e:
            logger.error(f"Error in {self.name} tick: {e}", exc_info=True)
        finally:
            self.tick_count += 1

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._interval_seconds()
                )
            except TimeoutError:
                pass
