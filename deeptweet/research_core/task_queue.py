from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable

from loguru import logger

TaskFactory = Callable[[], Awaitable[Any]]


class BoundedTaskQueue:
    """FIFO scheduler for coroutine factories with a fixed concurrency ceiling.

    Tasks report back through shared state they close over; nothing is
    returned through the queue. An exception raised by one task is logged and
    swallowed so it cannot cancel its siblings or break ``drain()``.
    """

    def __init__(self, concurrency: int = 1, *, name: str = "research"):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency
        self.name = name
        self._pending: deque[tuple[int, TaskFactory]] = deque()
        self._running: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._submitted = 0
        self.completed = 0
        self.failed = 0
        self.cancelled = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return len(self._running)

    @property
    def is_idle(self) -> bool:
        return not self._pending and not self._running

    def enqueue(self, factory: TaskFactory) -> int:
        """Schedule ``factory()``; returns the task's sequence number.

        Must be called from a running event loop.
        """
        self._submitted += 1
        task_id = self._submitted
        self._pending.append((task_id, factory))
        self._idle.clear()
        self._pump()
        return task_id

    async def drain(self) -> None:
        """Wait until nothing is pending or running, including work added meanwhile."""
        while not self.is_idle:
            await self._idle.wait()

    async def cancel(self) -> int:
        """Drop pending work and cancel running tasks; returns how many were stopped.

        Used when a fatal error ends the run, so no task keeps touching shared
        state after the caller has given up on it.
        """
        dropped = len(self._pending)
        self._pending.clear()
        running = list(self._running)
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        self.cancelled += dropped + len(running)
        if self.is_idle:
            self._idle.set()
        return dropped + len(running)

    def _pump(self) -> None:
        while self._pending and len(self._running) < self.concurrency:
            task_id, factory = self._pending.popleft()
            task = asyncio.create_task(
                self._run(task_id, factory),
                name=f"{self.name}-task-{task_id}",
            )
            self._running.add(task)
            task.add_done_callback(self._settle)

    async def _run(self, task_id: int, factory: TaskFactory) -> None:
        try:
            await factory()
        except Exception as exc:
            self.failed += 1
            logger.warning(f"[{self.name}] task {task_id} failed: {type(exc).__name__}: {exc}")
        else:
            self.completed += 1

    def _settle(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        self._pump()
        if self.is_idle:
            self._idle.set()
