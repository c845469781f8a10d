"""Shared scheduler for delayed cache reconciliation actions."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger

type DelayedAction = Callable[[], Awaitable[object] | object]


class DelayedTaskScheduler:
    """Runs actions after a delay with a bound on how many run at once.

    Waiting does not count against the bound; only running actions do.
    Scheduled actions cannot be cancelled individually. A failing action is
    logged and does not affect the others.

    Args:
        max_concurrency: Maximum number of actions running concurrently.
    """

    def __init__(self, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        self.max_concurrency = max_concurrency
        self._slots = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of actions scheduled but not yet finished."""
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, delay: float, action: DelayedAction) -> asyncio.Task[None]:
        """Run ``action`` once, ``delay`` seconds from now.

        Raises:
            RuntimeError: If the scheduler has been closed or no event loop
                is running.
        """
        if self._closed:
            msg = "Cannot schedule on a closed scheduler"
            raise RuntimeError(msg)

        task = asyncio.get_running_loop().create_task(self._run(delay, action))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, delay: float, action: DelayedAction) -> None:
        await asyncio.sleep(delay)
        async with self._slots:
            try:
                returned = action()
                if inspect.isawaitable(returned):
                    await returned
            except Exception:
                logger.exception("Delayed action failed")

    async def drain(self) -> None:
        """Wait for every scheduled action to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Refuse new actions and wait for the scheduled ones."""
        self._closed = True
        await self.drain()
