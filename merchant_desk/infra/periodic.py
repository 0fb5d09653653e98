"""Fixed-cadence background refresh tasks."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async callable every `interval` seconds until stopped.

    A failing cycle is logged and the loop continues; the previous state of
    whatever the callable refreshes stays in place.
    """

    def __init__(self, name: str, func: Callable[[], Awaitable[object]], interval: float):
        self.name = name
        self.func = func
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Periodic task started: {self.name} every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Periodic task stopped: {self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.func()
            except Exception:
                logger.exception(f"Periodic task {self.name} failed")
