"""
Per-client sliding-window limiter for the externally reachable fetch endpoints
(selector test, preview). Default: 100 requests / 15 minutes per client.
"""
import logging
import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from .errors import RateLimited

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    def __init__(self, max_requests: int = 100, window_seconds: float = 15 * 60,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1 or window_seconds <= 0:
            raise ValueError("max_requests must be >= 1 and window_seconds > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def tracked_clients(self) -> int:
        """Number of clients with hits inside the current window."""
        with self._lock:
            now = self._clock()
            for client_id in list(self._hits):
                self._prune(client_id, now)
            return len(self._hits)

    def _prune(self, client_id: str, now: float) -> int:
        # idle clients are dropped so the table only holds callers seen within the window
        hits = self._hits.get(client_id)
        if hits is None:
            return 0
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[client_id]
        return len(hits)

    def hit(self, client_id: str) -> None:
        """Record one request for `client_id` or raise RateLimited."""
        client_id = client_id or "anonymous"
        with self._lock:
            now = self._clock()
            if self._prune(client_id, now) >= self.max_requests:
                retry_after = max(1, math.ceil(self._hits[client_id][0] + self.window_seconds - now))
                logger.warning("Rate limit exceeded for %s (retry after %ss)", client_id, retry_after)
                raise RateLimited(client_id, retry_after)
            self._hits.setdefault(client_id, deque()).append(now)

    def remaining(self, client_id: str) -> int:
        client_id = client_id or "anonymous"
        with self._lock:
            return max(0, self.max_requests - self._prune(client_id, self._clock()))
