"""
Periodic background sweeper.

Runs a cleanup coroutine on a fixed interval for the lifetime of the app.
"""
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodicSweeper:
    """
    Calls ``sweep_func`` every ``interval_seconds`` until stopped.

    Errors from a single sweep are logged and the loop keeps running.
    """

    def __init__(
        self,
        name: str,
        sweep_func: Callable[[], Awaitable[int]],
        interval_seconds: float,
    ):
        self.name = name
        self.sweep_func = sweep_func
        self.interval_seconds = interval_seconds
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        self.running = True
        logger.info("sweeper_started", sweeper=self.name, interval_seconds=self.interval_seconds)

        while self.running:
            await asyncio.sleep(self.interval_seconds)
            try:
                removed = await self.sweep_func()
                logger.debug("sweeper_run_completed", sweeper=self.name, removed=removed)
            except Exception as e:
                logger.error("sweeper_run_failed", sweeper=self.name, error=str(e))

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name=f"sweeper:{self.name}")
        return self._task

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("sweeper_stopped", sweeper=self.name)
