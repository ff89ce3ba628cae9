"""Rate limiting middleware."""

from datetime import datetime, timezone

from backend.app.db.context import RequestContext
from backend.app.db.repositories import RateLimiter
from backend.app.ratelimit import make_rate_limit_key


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces per-user limits."""

    def __init__(self, limiter: RateLimiter, bucket_map: dict[str, str]) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path suffixes to bucket names
        """
        self._limiter = limiter
        self._bucket_map = bucket_map

    def check_rate_limit(
        self, path: str, ctx: RequestContext, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            ctx: Request context
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now(timezone.utc)

        bucket = self._get_bucket(path)
        if bucket is None:
            return (True, 0)

        key = make_rate_limit_key(ctx, bucket)
        retry_after = self._limiter.check_quota(key, now)

        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    def _get_bucket(self, path: str) -> str | None:
        for suffix, bucket in self._bucket_map.items():
            if path.rstrip("/").endswith(suffix):
                return bucket

        return None


def create_default_bucket_map() -> dict[str, str]:
    """Paths that are rate limited, keyed by path suffix."""
    return {"/ask": "ask"}
