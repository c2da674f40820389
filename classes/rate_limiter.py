import logging
import threading
import time
from collections import deque

from classes.errors import RateLimited

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allows at most ``max_requests`` hits per key within a rolling window."""

    def __init__(self, max_requests, window_seconds, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits = {}
        self._last_prune = clock()
        self._lock = threading.Lock()

    def hit(self, key):
        """Record a hit for ``key`` or raise ``RateLimited`` without recording it."""
        now = self.clock()
        with self._lock:
            self._prune(now)
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                logger.warning("Rate limit exceeded for %s", key)
                raise RateLimited()
            hits.append(now)

    def _prune(self, now):
        """Drop keys whose newest hit has left the window. Runs at most once per window."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        stale = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= self.window_seconds]
        for key in stale:
            del self._hits[key]

    def tracked_keys(self):
        with self._lock:
            return set(self._hits)

    def remaining(self, key):
        now = self.clock()
        with self._lock:
            hits = self._hits.get(key, ())
            recent = sum(1 for t in hits if now - t < self.window_seconds)
        return max(0, self.max_requests - recent)

    def reset(self, key=None):
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
