"""Tests for rate limiting."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from backend.app.db.context import RequestContext
from backend.app.db.inmemory import InMemoryRateLimiter
from backend.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from backend.app.ratelimit import RedisRateLimiter, make_rate_limit_key

# Start of a 60-second window
WINDOW_START = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_rate_limiter_allows_under_quota() -> None:
    """Test rate limiter allows requests under quota."""
    limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60)

    for i in range(5):
        assert limiter.check_quota("user:ask", WINDOW_START + timedelta(seconds=i)) is None


def test_rate_limiter_blocks_over_quota() -> None:
    """Test rate limiter blocks requests over quota with a retry hint."""
    limiter = InMemoryRateLimiter(max_requests=3, window_seconds=60)

    for _ in range(3):
        assert limiter.check_quota("user:ask", WINDOW_START) is None

    retry_after = limiter.check_quota("user:ask", WINDOW_START + timedelta(seconds=20))
    assert retry_after is not None
    assert retry_after.seconds == 40


def test_rate_limiter_resets_after_window() -> None:
    """Test rate limiter resets quota after window expires."""
    limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60)

    limiter.check_quota("user:ask", WINDOW_START)
    limiter.check_quota("user:ask", WINDOW_START)
    assert limiter.check_quota("user:ask", WINDOW_START) is not None

    assert limiter.check_quota("user:ask", WINDOW_START + timedelta(seconds=61)) is None


def test_rate_limit_keys_are_per_user() -> None:
    """Test different users do not share a bucket."""
    user_a = RequestContext(user_id=uuid.uuid4())
    user_b = RequestContext(user_id=uuid.uuid4())

    assert make_rate_limit_key(user_a, "ask") == f"{user_a.user_id}:ask"
    assert make_rate_limit_key(user_a, "ask") != make_rate_limit_key(user_b, "ask")


def test_middleware_limits_only_ask() -> None:
    """Test only /ask is rate limited."""
    middleware = RateLimitMiddleware(
        InMemoryRateLimiter(max_requests=1, window_seconds=60), create_default_bucket_map()
    )
    ctx = RequestContext(user_id=uuid.uuid4())

    assert middleware.check_rate_limit("/api/chat/ask", ctx, WINDOW_START) == (True, 0)
    allowed, retry_after = middleware.check_rate_limit("/api/chat/ask", ctx, WINDOW_START)
    assert not allowed
    assert retry_after == 60

    for _ in range(3):
        assert middleware.check_rate_limit("/api/chat/history", ctx, WINDOW_START) == (True, 0)


def test_redis_rate_limiter_uses_incr_and_expire() -> None:
    """Test the Redis limiter counts with INCR and sets expiry once."""
    client = MagicMock()
    client.incr.side_effect = [1, 2, 3]
    client.ttl.return_value = 42
    limiter = RedisRateLimiter(client, max_requests=2, window_seconds=60)

    assert limiter.check_quota("user:ask", WINDOW_START) is None
    assert limiter.check_quota("user:ask", WINDOW_START) is None
    retry_after = limiter.check_quota("user:ask", WINDOW_START)

    assert retry_after is not None
    assert retry_after.seconds == 42
    window_key = f"ratelimit:user:ask:{int(WINDOW_START.timestamp())}"
    client.incr.assert_called_with(window_key)
    client.expire.assert_called_once_with(window_key, 60)
