"""Periodic background refresh tasks."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a coroutine function every ``interval`` seconds.

    Failures are logged and the loop keeps going. ``stop()`` cancels the
    task and waits for it, so no callback runs after it returns.
    """

    def __init__(self, name: str, callback: Callable[[], Awaitable[None]],
                 interval: float, run_immediately: bool = False):
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")

        self.name = name
        self.callback = callback
        self.interval = interval
        self.run_immediately = run_immediately
        self.run_count = 0
        self.error_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info(f"Started periodic task {self.name} every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped periodic task {self.name}")

    async def _loop(self) -> None:
        if self.run_immediately:
            await self._run_once()

        while True:
            await asyncio.sleep(self.interval)
            await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self.callback()
            self.run_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.error(f"Error in periodic task {self.name}: {e}")


class Scheduler:
    """Owns a group of periodic tasks started and stopped together."""

    def __init__(self):
        self._tasks: Dict[str, PeriodicTask] = {}

    def add(self, name: str, callback: Callable[[], Awaitable[None]],
            interval: float, run_immediately: bool = False) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task {name} already scheduled")
        task = PeriodicTask(name, callback, interval, run_immediately)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks.values()))

    def get_stats(self) -> Dict[str, Dict[str, object]]:
        return {
            name: {
                'interval': task.interval,
                'running': task.running,
                'runs': task.run_count,
                'errors': task.error_count,
            }
            for name, task in self._tasks.items()
        }
