from __future__ import annotations

import math
import time
from collections import deque
from threading import Lock

from fastapi import HTTPException


class RateLimiter:
    """
    Per-process sliding-window limiter, keyed by caller and action
    (e.g. `claim:<profile id>`).

    Lives on `app.state.limiter` so each app (and each test) gets its own
    counters. Limits are not shared between server processes. Keys whose
    hits have all aged out are dropped, at the latest on the next sweep.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = 300.0) -> None:
        self._clock = clock
        self._lock = Lock()
        self._hits: dict[str, deque[float]] = {}
        self._longest_window = 0.0
        self._sweep_interval = float(sweep_interval)
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        cutoff = now - self._longest_window
        for key in [k for k, hits in self._hits.items() if hits[-1] <= cutoff]:
            del self._hits[key]
        self._last_sweep = now

    def hit(self, *, key: str, limit: int, window_seconds: int, detail: str = "Too many requests") -> None:
        """Record one attempt for `key`, or raise 429 with Retry-After when over `limit`."""
        now = self._clock()
        cutoff = now - float(window_seconds)
        with self._lock:
            self._longest_window = max(self._longest_window, float(window_seconds))
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            hits = self._hits.get(key)
            if hits is not None:
                while hits and hits[0] <= cutoff:
                    hits.popleft()
                if not hits:
                    del self._hits[key]
                    hits = None
            if hits is not None and len(hits) >= int(limit):
                retry_after = max(1, math.ceil(hits[0] + window_seconds - now))
                raise HTTPException(status_code=429, detail=detail, headers={"Retry-After": str(retry_after)})
            self._hits.setdefault(key, deque()).append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
