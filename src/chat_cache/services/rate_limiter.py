"""Per-client fixed-window rate limiter."""

import logging
import time
from collections.abc import Callable

from chat_cache.config import settings
from chat_cache.entities import RateWindow
from chat_cache.utils import PeriodicTask

logger = logging.getLogger(__name__)


class RateLimiter:
    """Count requests per client identity over a fixed window.

    A window opens on a client's first request and resets once it is older
    than ``window_seconds``. Rejected requests are not counted, so a client
    that backs off is not penalised further.

    Example:
        ```python
        limiter = RateLimiter(limit=10, window_seconds=60)
        if not limiter.check_and_consume("1.2.3.4"):
            raise RateLimitError("1.2.3.4", limiter.retry_after("1.2.3.4"))
        ```
    """

    def __init__(
        self,
        limit: int | None = None,
        window_seconds: float | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            limit: Requests allowed per window. Defaults to settings.
            window_seconds: Window length in seconds. Defaults to settings.
            sweep_interval: Seconds between stale-window sweeps. Defaults to settings.
            clock: Source of the current time, injectable for tests.
        """
        self._limit = settings.rate_limit_count if limit is None else limit
        self._window = settings.rate_limit_window if window_seconds is None else window_seconds
        if self._limit < 1:
            raise ValueError("limit must be at least 1")
        if self._window <= 0:
            raise ValueError("window_seconds must be positive")
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._rejected = 0
        self._sweeper = PeriodicTask(
            settings.sweep_interval if sweep_interval is None else sweep_interval,
            self.sweep,
            name="rate-limit-sweep",
        )

    def check_and_consume(self, client_id: str) -> bool:
        """Record a request for ``client_id`` if it is within quota.

        Args:
            client_id: Client identity (e.g. forwarded IP)

        Returns:
            True if the request is allowed, False if it must be rejected
        """
        now = self._clock()
        window = self._windows.get(client_id)

        if window is None or window.is_expired(now, self._window):
            self._windows[client_id] = RateWindow(client_id=client_id, count=1, window_start=now)
            return True

        if window.count < self._limit:
            window.count += 1
            return True

        self._rejected += 1
        logger.warning("Rate limit exceeded: client=%s count=%d", client_id, window.count)
        return False

    def retry_after(self, client_id: str) -> float:
        """Seconds until the client's current window resets (0 if none is open)."""
        window = self._windows.get(client_id)
        if window is None:
            return 0.0
        return max(0.0, window.window_start + self._window - self._clock())

    def remaining(self, client_id: str) -> int:
        """Requests the client may still make in its current window."""
        window = self._windows.get(client_id)
        if window is None or window.is_expired(self._clock(), self._window):
            return self._limit
        return max(0, self._limit - window.count)

    def sweep(self) -> int:
        """Drop windows older than the window duration.

        Returns:
            Number of windows removed
        """
        now = self._clock()
        stale = [cid for cid, w in self._windows.items() if w.is_expired(now, self._window)]
        for client_id in stale:
            del self._windows[client_id]
        if stale:
            logger.debug("Swept %d stale rate windows", len(stale))
        return len(stale)

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        await self._sweeper.stop()

    def reset(self) -> None:
        """Forget every client window."""
        self._windows.clear()

    def get_stats(self) -> dict:
        return {
            "limit": self._limit,
            "window_seconds": self._window,
            "tracked_clients": len(self._windows),
            "rejected": self._rejected,
        }

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window
