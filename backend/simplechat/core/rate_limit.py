"""In-memory fixed-window rate limiting, keyed per caller."""

import math
import time
from dataclasses import dataclass
from typing import Callable


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__("Rate limit exceeded")
        self.retry_after_seconds = retry_after_seconds


@dataclass
class _Window:
    count: int
    ends_at: float


class RateLimiter:
    """Allows `limit` hits per identifier within each `window_seconds` window.

    State is process-local; each app instance counts on its own.
    """

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, identifier: str) -> None:
        """Record one action. Raises RateLimitExceeded if the window is already full."""
        now = self._clock()
        window = self._windows.get(identifier)

        if window is None or window.ends_at <= now:
            self._windows[identifier] = _Window(count=1, ends_at=now + self.window_seconds)
            return

        if window.count >= self.limit:
            raise RateLimitExceeded(max(math.ceil(window.ends_at - now), 1))
        window.count += 1

    def reset(self) -> None:
        self._windows.clear()
