import logging
import redis
from fastapi import HTTPException, Request, status
from typing import Optional
from ..services.redis import redis_client
from .cache import CacheKeys

logger = logging.getLogger(__name__)

class RateLimiter:
    """Rate limiting using Redis"""

    def __init__(self, requests: int = 100, window: int = 60):
        self.requests = requests
        self.window = window

    async def __call__(self, request: Request):
        return await self.check_rate_limit(request)

    async def check_rate_limit(self, request: Request, user_id: Optional[str] = None):
        """Check if request exceeds rate limit"""
        identifier = user_id or (request.client.host if request.client else "anonymous")
        key = CacheKeys.RATE_LIMIT.format(identifier=identifier, endpoint=request.url.path)

        try:
            current = redis_client.incr(key)
            if current == 1:
                redis_client.expire(key, self.window)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return 0

        if current > self.requests:
            ttl = redis_client.ttl(key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {ttl} seconds"
            )
        return current


checkout_limiter = RateLimiter(requests=10, window=60)
tracking_limiter = RateLimiter(requests=60, window=60)
