"""
Registry for detached asyncio tasks.

asyncio only keeps weak references to tasks, so a fire-and-forget
refresh can be garbage collected mid-flight. BackgroundTasks holds a
strong reference until the task finishes, logs any exception it raised,
and lets the shell wait for (drain) or cancel everything at shutdown.
"""

import asyncio
from typing import Any, Callable, Coroutine, TypeVar

from tube_tracker.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BackgroundTasks:
    """Strong-reference set of running background tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, T],
        name: str | None = None,
        on_done: Callable[[asyncio.Task], None] | None = None
    ) -> "asyncio.Task[T]":
        """
        Schedule a coroutine as a tracked task.

        Args:
            coro: Coroutine to run.
            name: Task name, used in log messages.
            on_done: Optional callback run with the finished task.

        Returns:
            The task, which the caller may await.
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        if on_done is not None:
            task.add_done_callback(on_done)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {error}",
                exc_info=error
            )

    async def drain(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Cancel every tracked task and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
