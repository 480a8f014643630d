import math
import random
import time
from typing import Callable, Optional

from .errors import ConfigError


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateLimiter:
    """Fixed-window limiter on request starts.

    ``consume`` never blocks: it returns how many milliseconds the caller has
    to wait so that at most ``requests`` starts fall into any one window.
    Starts beyond the current window's budget are booked into the following
    windows, in order.
    """

    def __init__(self, requests: Optional[int] = None, window_ms: int = 0, now: Callable[[], float] | None = None):
        self.requests = requests
        self.window_ms = window_ms
        self._now = now or _monotonic_ms
        self._window_start: Optional[float] = None
        self._count = 0

    def consume(self) -> int:
        if self.requests is None:
            return 0
        now = self._now()
        if self._window_start is None or now - self._window_start >= self.window_ms:
            self._window_start = now
            self._count = 0
        if self._count >= self.requests:
            self._window_start += self.window_ms
            self._count = 0
        self._count += 1
        return max(0, math.ceil(self._window_start - now))


class DelayRange:
    def __init__(self, min_ms: int = 0, max_ms: Optional[int] = None, rng: random.Random | None = None):
        if max_ms is None:
            max_ms = min_ms
        if min_ms < 0:
            raise ConfigError(f"delay min must be >= 0, got {min_ms}")
        if max_ms < min_ms:
            raise ConfigError(f"delay max ({max_ms}) must be >= min ({min_ms})")
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._rng = rng or random.Random()

    def next(self) -> int:
        if self.min_ms == self.max_ms:
            return self.min_ms
        return self._rng.randint(self.min_ms, self.max_ms)
