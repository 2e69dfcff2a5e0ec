"""
Tests for the rate limiter module.
"""

from unittest.mock import MagicMock, patch

from smartlaunch.rate_limiter import (
    RateLimiter,
    get_callback_rate_limiter,
    get_rate_limiter,
    reset_rate_limiter,
)


class TestRateLimiter:
    """Tests for the RateLimiter class."""

    def test_init_defaults(self):
        limiter = RateLimiter()
        assert limiter.max_requests == 100
        assert limiter.window_seconds == 60

    def test_check_blocks_requests_over_limit(self):
        """Should allow up to the limit and block the next request."""
        limiter = RateLimiter(max_requests=3, window_seconds=60)

        for _ in range(3):
            assert limiter.check("session-1") is True

        assert limiter.check("session-1") is False

    def test_check_per_key_tracking(self):
        """Should track keys independently."""
        limiter = RateLimiter(max_requests=1, window_seconds=60)

        assert limiter.check("session-1") is True
        assert limiter.check("session-1") is False
        assert limiter.check("ip:10.0.0.1") is True

    def test_check_expires_old_requests(self):
        """Requests older than the window should no longer count."""
        limiter = RateLimiter(max_requests=1, window_seconds=60)

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1000.0):
            assert limiter.check("session-1") is True
            assert limiter.check("session-1") is False

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1061.0):
            assert limiter.check("session-1") is True

    def test_retry_after(self):
        """Should report how long until the oldest request leaves the window."""
        limiter = RateLimiter(max_requests=1, window_seconds=60)

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1000.0):
            assert limiter.retry_after("session-1") == 0
            limiter.check("session-1")

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1030.0):
            assert limiter.retry_after("session-1") == 31

    def test_cleanup_stale(self):
        """Should drop keys whose requests have all aged out."""
        limiter = RateLimiter(max_requests=5, window_seconds=60)

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1000.0):
            limiter.check("old")
        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1050.0):
            limiter.check("recent")

        with patch("smartlaunch.rate_limiter.time.monotonic", return_value=1070.0):
            assert limiter.cleanup_stale() == 1
            assert limiter.retry_after("recent") == 0


class TestSingletons:
    """Tests for the limiter accessors."""

    def test_uses_settings(self):
        """The general limiter should be sized from settings."""
        with patch("smartlaunch.rate_limiter.get_settings") as mock_settings:
            mock_settings.return_value = MagicMock(rate_limit_max=50, rate_limit_window=30)

            limiter = get_rate_limiter()

        assert limiter.max_requests == 50
        assert limiter.window_seconds == 30
        assert get_rate_limiter() is limiter

    def test_callback_limiter_is_stricter(self):
        """The callback limiter should default to 20 requests a minute."""
        limiter = get_callback_rate_limiter()

        assert limiter.max_requests == 20
        assert limiter.window_seconds == 60
        assert limiter is not get_rate_limiter()

    def test_reset(self):
        """reset_rate_limiter should drop both instances."""
        general = get_rate_limiter()
        callback = get_callback_rate_limiter()

        reset_rate_limiter()

        assert get_rate_limiter() is not general
        assert get_callback_rate_limiter() is not callback
