"""Per-client request rate limiting backed by Redis.

Fixed window counter: the first request from a client creates a key that
expires after the window; each request increments it. Counts live in Redis
so several server processes share one limit.
"""

from dataclasses import dataclass
from typing import Any, Optional

import redis

from unlisted.logging_config import get_logger
from web.config import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS, REDIS_URL

__all__ = ["RateLimitResult", "RateLimiter", "client_ip", "create_rate_limiter"]

logger = get_logger("web.rate_limit")


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    total: int
    reset_in: int  # seconds until the window resets


class RateLimiter:
    """Admit at most ``max_requests`` per client per ``window`` seconds.

    With no Redis client every request is admitted. A Redis error is logged
    and the request admitted rather than failing the read.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        max_requests: int = RATE_LIMIT_MAX,
        window: int = RATE_LIMIT_WINDOW_SECONDS,
        key_prefix: str = "unlisted:ratelimit:",
    ):
        self.redis_client = redis_client
        self.max_requests = max_requests
        self.window = window
        self.key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def _get_key(self, client_id: str) -> str:
        return f"{self.key_prefix}{client_id}"

    def hit(self, client_id: str) -> RateLimitResult:
        """Count one request for ``client_id`` and decide whether to admit it."""
        if self.redis_client is None:
            return RateLimitResult(True, self.max_requests, self.max_requests, self.window)

        key = self._get_key(client_id)
        try:
            pipe = self.redis_client.pipeline()
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = pipe.execute()

            # New key, or one that lost its expiry
            if ttl is None or ttl < 0:
                self.redis_client.expire(key, self.window)
                ttl = self.window
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, admitting request from {client_id}: {e}")
            return RateLimitResult(True, self.max_requests, self.max_requests, self.window)

        count = int(count)
        remaining = max(0, self.max_requests - count)
        logger.debug(f"remaining {remaining}/{self.max_requests} {client_id}")
        return RateLimitResult(
            allowed=count <= self.max_requests,
            remaining=remaining,
            total=self.max_requests,
            reset_in=int(ttl),
        )


def client_ip(request) -> str:
    """Client address: first X-Forwarded-For entry, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    return first or request.remote_addr or "unknown"


def create_rate_limiter(redis_url: Optional[str] = REDIS_URL) -> RateLimiter:
    """Build a limiter for ``redis_url``; without one the limiter admits everything."""
    if not redis_url:
        logger.info("REDIS_URL not set, rate limiting disabled")
        return RateLimiter(None)
    return RateLimiter(redis.from_url(redis_url))
