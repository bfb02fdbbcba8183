"""Rate limit window domain entity."""

from dataclasses import dataclass


@dataclass
class RateWindow:
    """Request counter for one client over one fixed window.

    Attributes:
        client_id: Client identity (usually the forwarded IP)
        count: Requests accepted in the current window
        window_start: Clock reading when the window opened
    """

    client_id: str
    count: int
    window_start: float

    def is_expired(self, now: float, window_seconds: float) -> bool:
        return now - self.window_start > window_seconds
