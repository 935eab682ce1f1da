from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    """Fixed-window limiter keyed by an arbitrary string.

    The first hit for a key opens a window of ``window_seconds``; at most
    ``limit`` hits are allowed until that window resets.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = max(1, int(limit))
        self._window = max(0.1, float(window_seconds))
        self._clock = clock
        self._windows: dict[str, Window] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def hit(self, key: str) -> Optional[int]:
        """Record an attempt. Returns ``None`` if allowed, else seconds to wait."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            self._windows[key] = Window(count=1, reset_at=now + self._window)
            return None
        if window.count >= self._limit:
            return max(1, math.ceil(window.reset_at - now))
        window.count += 1
        return None

    def remaining(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None or self._clock() >= window.reset_at:
            return self._limit
        return max(0, self._limit - window.count)

    def prune(self) -> None:
        now = self._clock()
        stale = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in stale:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()
