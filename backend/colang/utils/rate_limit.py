"""In-memory attempt limiter for the credential endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable


class AttemptLimiter:
    """Sliding-window counter of attempts per key (client address + route).

    State lives in this process only; a multi-worker deployment gets one
    window per worker. Keys whose attempts have all aged out are dropped,
    at most once per window, so idle clients do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._attempts: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._attempts)

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, attempts in self._attempts.items() if not attempts or attempts[-1] <= cutoff]
        for key in stale:
            del self._attempts[key]

    def allow(self, key: str, max_attempts: int, window_seconds: int) -> tuple[bool, int]:
        """Record an attempt for `key` if the window has room.

        Returns `(allowed, retry_after_seconds)`; a rejected attempt is not
        recorded.
        """
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            attempts = self._attempts.setdefault(key, deque())
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()
            if len(attempts) >= max_attempts:
                return False, max(1, int(window_seconds - (now - attempts[0])))
            attempts.append(now)
        return True, 0

    def reset(self, key: str) -> None:
        """Forget all attempts for `key`, e.g. after a successful login."""
        with self._lock:
            self._attempts.pop(key, None)
