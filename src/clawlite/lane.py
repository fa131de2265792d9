"""
Lane-based serial task queue.

Tasks enqueued on the same lane run one at a time, in the order they were
enqueued. Each lane drains independently, so a backlog on one lane never
holds up another. All user turns go through the "default" lane, which keeps
the conversation single-writer even when inputs overlap.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]

DEFAULT_LANE = "default"


class Lane:
    """A strictly ordered queue of async tasks."""

    def __init__(self, name: str = DEFAULT_LANE):
        self.name = name
        self._queue: deque[tuple[Task[Any], asyncio.Future]] = deque()
        self._running = False
        self._worker: asyncio.Task | None = None

    def enqueue(self, task: Task[T]) -> "asyncio.Future[T]":
        """Queue ``task`` and return a future for its outcome.

        The task is queued immediately, so ordering follows call order.
        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append((task, future))

        if not self._running:
            self._running = True
            self._worker = loop.create_task(self._drain())

        return future

    async def _drain(self) -> None:
        try:
            while self._queue:
                task, future = self._queue.popleft()
                if future.cancelled():
                    # waiter went away before its turn
                    continue

                try:
                    result = await task()
                except asyncio.CancelledError:
                    # cancellation raised by the task belongs to its own waiter
                    logger.debug("Lane task cancelled", lane=self.name)
                    future.cancel()
                except Exception as e:
                    logger.debug("Lane task failed", lane=self.name, error=str(e))
                    if not future.cancelled():
                        future.set_exception(e)
                else:
                    if not future.cancelled():
                        future.set_result(result)
        finally:
            self._running = False
            self._worker = None

    @property
    def pending(self) -> int:
        """Number of tasks waiting behind the running one."""
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self._running


class LaneManager:
    """Hands out named lanes, creating them on first use."""

    def __init__(self):
        self._lanes: dict[str, Lane] = {}

    def get_lane(self, name: str) -> Lane:
        if name not in self._lanes:
            self._lanes[name] = Lane(name)
        return self._lanes[name]

    def run(self, task: Task[T]) -> "asyncio.Future[T]":
        """Run a task on the default serial lane."""
        return self.get_lane(DEFAULT_LANE).enqueue(task)

    def run_parallel(self, lane_name: str, task: Task[T]) -> "asyncio.Future[T]":
        """Run a task on a named lane, independent of the default one."""
        return self.get_lane(lane_name).enqueue(task)

    @property
    def lanes(self) -> list[str]:
        return list(self._lanes)
