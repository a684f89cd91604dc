"""In-memory sliding-window rate limiting keyed by client identifier."""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from heic_converter.core.exceptions import RateLimitError


class RateLimiter:
    """Allow at most ``max_requests`` hits per ``window_seconds`` per identifier."""

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_requests = max(1, int(max_requests))
        self.window_seconds = max(1.0, float(window_seconds))
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, identifier: str) -> None:
        """Record a hit, or raise RateLimitError when the window is full."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            hits = self._hits[identifier]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = math.ceil(hits[0] + self.window_seconds - now)
                raise RateLimitError(
                    f"Too many {self.name} requests. Maximum {self.max_requests} per "
                    f"{self.window_seconds / 60:.0f} minutes.",
                    retry_after=retry_after,
                )
            hits.append(now)

    def remaining(self, identifier: str) -> int:
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            hits = self._hits.get(identifier)
            live = sum(1 for t in hits if t > cutoff) if hits else 0
        return max(0, self.max_requests - live)

    def cleanup(self) -> int:
        """Drop identifiers with no hits inside the window. Returns how many."""
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
            for key in stale:
                del self._hits[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
