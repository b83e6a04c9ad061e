"""Bounded asyncio worker pool used by the dispatcher stages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

logger = logging.getLogger(__name__)

WorkFactory = Callable[[], Awaitable[None]]


class BoundedWorkerPool:
    """Run submitted coroutines with at most `max_workers` active at once.

    `submit` never waits: queued work waits for a slot inside its own task.
    """

    def __init__(self, name: str, max_workers: int) -> None:
        self._name = name
        self._slots = asyncio.Semaphore(max(1, max_workers))
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        """Return number of submitted but unfinished work items."""

        return len(self._tasks)

    def submit(self, work_name: str, factory: WorkFactory) -> asyncio.Task[None]:
        """Schedule `factory()` and return immediately."""

        task = asyncio.create_task(self._run(work_name, factory), name=f"{self._name}:{work_name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every submitted work item finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending and running work items."""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def _run(self, work_name: str, factory: WorkFactory) -> None:
        async with self._slots:
            try:
                await factory()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker pool '%s' item '%s' failed.", self._name, work_name)


__all__ = ["BoundedWorkerPool", "WorkFactory"]
