"""
Periodic background jobs with cooperative shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

TickFunc = Callable[[], Awaitable[Any]]


class PeriodicTask:
    """
    Runs ``func`` every ``interval`` seconds until ``stop_event`` is set.

    The first tick happens one interval after start. A tick that raises is
    logged and the loop carries on. Setting the stop event never interrupts
    a tick that is already running.
    """

    def __init__(self, name: str, interval: float, func: TickFunc, stop_event: asyncio.Event):
        if interval <= 0:
            raise ValueError(f"{name}: interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self.func = func
        self.stop_event = stop_event
        self.ticks = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self._task

    async def run_once(self) -> None:
        try:
            await self.func()
        except Exception as e:
            logger.exception(f"{self.name} failed: {e}")
        finally:
            self.ticks += 1

    async def _run(self) -> None:
        logger.info(f"Starting {self.name} with interval: {self.interval}s")
        while not self.stop_event.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval)
            if self.stop_event.is_set():
                break
            await self.run_once()
        logger.info(f"{self.name} received shutdown signal, stopped")


class TaskSupervisor:
    """Owns a set of periodic tasks sharing one stop event."""

    def __init__(self) -> None:
        self.stop_event = asyncio.Event()
        self.tasks: list[PeriodicTask] = []

    def add(self, name: str, interval: float, func: TickFunc) -> PeriodicTask:
        task = PeriodicTask(name, interval, func, self.stop_event)
        self.tasks.append(task)
        return task

    def start(self) -> None:
        for task in self.tasks:
            task.start()

    async def wait_stopped(self) -> None:
        await self.stop_event.wait()

    def request_stop(self) -> None:
        self.stop_event.set()

    async def shutdown(self, timeout: float) -> bool:
        """
        Stop all tasks, letting in-flight ticks finish.

        Returns:
            True if every task exited within ``timeout``, False if some had
            to be cancelled
        """
        self.stop_event.set()
        running = [t.task for t in self.tasks if t.task is not None]
        if not running:
            return True

        _, pending = await asyncio.wait(running, timeout=timeout)
        if not pending:
            logger.info("All background tasks stopped")
            return True

        names = ", ".join(t.get_name() for t in pending)
        logger.warning(f"Shutdown timeout of {timeout}s exceeded, forcing exit of: {names}")
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return False
