import asyncio
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger()


class PeriodicTask(ABC):
    """
    A coroutine run on a fixed interval in its own asyncio task.

    The owner calls start() once the event loop is running and stop() on
    shutdown. A failing run is logged and the schedule continues.
    """

    name = "periodic_task"

    def __init__(self, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def run_once(self) -> None:
        """One unit of work."""

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("periodic_task_started", task=self.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("periodic_task_stopped", task=self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("periodic_task_failed", task=self.name)
