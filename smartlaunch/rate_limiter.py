"""
In-memory sliding window rate limiting.

Two limiters exist: a general one applied per session (or client IP) to
API traffic, and a stricter one applied per client IP to the launch
callback, where each hit costs a token-endpoint round trip.
"""

import time
from collections import defaultdict, deque

from smartlaunch.config.logging import get_logger
from smartlaunch.config.settings import get_settings

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding window rate limiter keyed by an arbitrary client key.

    Each key keeps a deque of request timestamps; entries older than the
    window are dropped on every check.
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 60):
        """
        Args:
            max_requests: Requests allowed per window per key
            window_seconds: Sliding window duration in seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: defaultdict[str, deque[float]] = defaultdict(deque)

    def _prune(self, key: str, now: float) -> deque[float]:
        window = self._hits[key]
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window

    def check(self, key: str) -> bool:
        """
        Record a request for ``key`` if it is within the limit.

        Returns:
            True if the request is allowed, False if rate-limited
        """
        now = time.monotonic()
        window = self._prune(key, now)

        if len(window) >= self.max_requests:
            logger.debug("Rate limit reached", key=key[:16], limit=self.max_requests)
            return False

        window.append(now)
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until ``key`` may make another request (0 if it may now)."""
        now = time.monotonic()
        window = self._prune(key, now)
        if len(window) < self.max_requests:
            return 0
        return max(1, int(window[0] + self.window_seconds - now) + 1)

    def cleanup_stale(self) -> int:
        """
        Drop keys with no requests inside the window.

        Returns:
            Number of keys dropped
        """
        now = time.monotonic()
        stale = [key for key in list(self._hits) if not self._prune(key, now)]
        for key in stale:
            del self._hits[key]
        return len(stale)


_rate_limiter: RateLimiter | None = None
_callback_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get the general API rate limiter, creating it if needed."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            max_requests=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window,
        )
    return _rate_limiter


def get_callback_rate_limiter() -> RateLimiter:
    """Get the stricter limiter guarding /callback, creating it if needed."""
    global _callback_rate_limiter
    if _callback_rate_limiter is None:
        settings = get_settings()
        _callback_rate_limiter = RateLimiter(
            max_requests=settings.callback_rate_limit_max,
            window_seconds=settings.callback_rate_limit_window,
        )
    return _callback_rate_limiter


def reset_rate_limiter() -> None:
    """Reset both limiters (for testing)."""
    global _rate_limiter, _callback_rate_limiter
    _rate_limiter = None
    _callback_rate_limiter = None
