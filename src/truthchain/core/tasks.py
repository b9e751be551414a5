# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Cancellable background work.

Confirmation polling and leaderboard refresh both hand a handle back to the
caller. Whoever started the work owns the handle and cancels it; nothing is
left running after its owner goes away.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Generator
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScheduledTask(Generic[T]):
    """Awaitable handle around a single asyncio task."""

    def __init__(self, coro: Coroutine[Any, Any, T], name: str | None = None):
        self.name = name
        self._task: asyncio.Task[T] = asyncio.create_task(coro, name=name)

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the task already finished."""
        return self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def result(self) -> T:
        return self._task.result()

    def __await__(self) -> Generator[Any, None, T]:
        return self._task.__await__()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "done" if self.done else "running"
        return f"<ScheduledTask {self.name or ''} {state}>"


class PeriodicTask:
    """Run an async callable every ``interval`` seconds until stopped.

    A failing tick is logged and the loop carries on.
    """

    def __init__(
        self,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        name: str | None = None,
        run_immediately: bool = False,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.func = func
        self.interval = interval
        self.name = name or getattr(func, "__name__", "periodic")
        self.run_immediately = run_immediately
        self.ticks = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> PeriodicTask:
        if self.running:
            return self
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"Periodic task {self.name} started (interval={self.interval}s)")
        return self

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel and wait for the loop to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Periodic task {self.name} stopped")

    async def _loop(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            try:
                await self.func()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception(f"Periodic task {self.name} tick failed")
            self.ticks += 1
            await asyncio.sleep(self.interval)
