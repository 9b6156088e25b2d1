import logging
import threading
import time

from ..config import JOB_LISTING_RATE_LIMIT, JOB_LISTING_RATE_WINDOW_S

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """
    In-process per-key limiter: at most ``limit`` hits per ``window_s`` seconds,
    the window starting at a key's first hit. State is per worker process.
    """

    def __init__(self, *, limit: int, window_s: float):
        self.limit = int(limit)
        self.window_s = float(window_s)
        self._hits: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, start) in self._hits.items() if now - start > self.window_s]
        for k in expired:
            del self._hits[k]

    def check(self, key: str, *, now: float | None = None) -> bool:
        """Record a hit for key; False when the key is over its limit."""
        now = time.monotonic() if now is None else now
        key = key or "unknown"
        with self._lock:
            if len(self._hits) > 10_000:
                self._prune(now)
            count, start = self._hits.get(key, (0, now))
            if now - start > self.window_s:
                count, start = 0, now
            if count >= self.limit:
                logger.info("rate limit hit key=%s count=%s", key, count)
                return False
            self._hits[key] = (count + 1, start)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


job_listing_limiter = FixedWindowRateLimiter(limit=JOB_LISTING_RATE_LIMIT, window_s=JOB_LISTING_RATE_WINDOW_S)


def client_ip(forwarded_for: str | None, fallback: str | None) -> str:
    # First hop of X-Forwarded-For is the original client.
    if forwarded_for:
        first = forwarded_for.split(",", 1)[0].strip()
        if first:
            return first
    return fallback or "unknown"
