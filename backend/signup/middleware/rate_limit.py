"""Rate limiting for the unauthenticated email probes.

`GET /check-email` and `GET /resume` reveal whether an address has an
account or a pending signup, so they are limited per client IP with a
Redis sliding window. If Redis is unavailable the request is allowed
(fail open).
"""

import logging
import time

from fastapi import HTTPException, Request, status

from signup.config import settings
from signup.utils.cache import get_redis

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter backed by a Redis sorted set."""

    @staticmethod
    async def check(key: str, limit: int = 10, window: int = 60) -> bool:
        """Record a hit for `key`. Returns False when the limit is exceeded.

        Args:
            key: Unique identifier (e.g. "check-email:ip:1.2.3.4")
            limit: Maximum requests allowed
            window: Time window in seconds
        """
        current_time = time.time()
        redis_key = f"ratelimit:{key}"

        try:
            redis_client = await get_redis()
            await redis_client.zremrangebyscore(redis_key, 0, current_time - window)
            count = await redis_client.zcard(redis_key)

            if count >= limit:
                return False

            await redis_client.zadd(redis_key, {str(current_time): current_time})
            await redis_client.expire(redis_key, window)
            return True

        except Exception as e:
            logger.error("Rate limit check failed: %s", e)
            return True


def _client_ip(request: Request) -> str:
    # Load balancer puts the real client first
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def limit_email_probes(request: Request) -> None:
    """FastAPI dependency guarding the email lookup endpoints."""
    if not settings.rate_limit_enabled:
        return

    limit = settings.check_email_rate_limit
    window = settings.check_email_rate_window
    key = f"email-probe:ip:{_client_ip(request)}"

    if not await RateLimiter.check(key, limit=limit, window=window):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {window} seconds.",
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "Retry-After": str(window),
            },
        )
