"""Recurring background jobs on the running event loop."""

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run a synchronous callback every ``interval`` seconds.

    Owned by the component whose state the callback cleans. Exceptions
    from the callback are logged and the loop keeps running.

    Example:
        ```python
        sweeper = PeriodicTask(60.0, limiter.sweep, name="rate-limit-sweep")
        sweeper.start()
        ...
        await sweeper.stop()
        ```
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop. Requires a running event loop; no-op if already started."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception:
                logger.exception("Periodic job %s failed", self._name)
