"""Per-caller sliding-window rate limiting for the import endpoints."""

from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable

from scraper.config.settings import RateLimitConfig


class SlidingWindowRateLimiter:
    """Allows ``max_requests`` per caller within any ``window_s`` seconds.

    Callers whose hits have all left the window are dropped once per window,
    so one-off callers do not accumulate.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def tracked_callers(self) -> int:
        return len(self._hits)

    def check(self, key: str) -> int:
        """Record a hit for ``key``.

        Returns 0 when the request may proceed, otherwise the whole number of
        seconds until the oldest hit leaves the window (the hit is not recorded).
        """
        if not self._config.enabled:
            return 0
        now = self._clock()
        window = self._config.window_s
        if now - self._last_sweep >= window:
            self._sweep(now)

        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= window:
            hits.popleft()
        if len(hits) >= self._config.max_requests:
            return max(1, math.ceil(window - (now - hits[0])))
        hits.append(now)
        return 0

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)

    def _sweep(self, now: float) -> None:
        window = self._config.window_s
        stale = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= window]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now
