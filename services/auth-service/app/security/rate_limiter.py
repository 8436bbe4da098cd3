"""Rate limiting for the credential endpoints (register, login)."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Protocol

from ..errors import RateLimitedError


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


def enforce(limiter: RateLimiter, scope: str, subject: str) -> None:
    """Raise ``RateLimitedError`` when ``subject`` exhausted its budget for ``scope``."""
    if not limiter.allow(f"{scope}:{subject.lower()}"):
        raise RateLimitedError("Too many requests, please try again later.")


class SlidingWindowRateLimiter:
    """Thread-safe in-process sliding window limiter.

    Keys whose newest event has left the window are dropped by a sweep that
    runs at most once per window, so memory is bounded by the keys seen in
    roughly the last two windows.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._time = time_source
        self._events: dict[str, Deque[float]] = {}
        self._last_sweep = float("-inf")
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Return ``True`` when the request is within the configured rate limit."""
        now = self._time()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            queue = self._events.setdefault(key, deque())
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True

    def _sweep(self, now: float) -> None:
        stale = [key for key, queue in self._events.items() if not queue or now - queue[-1] >= self._window]
        for key in stale:
            del self._events[key]
        self._last_sweep = now
