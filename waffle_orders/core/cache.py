import logging
import redis
from typing import Optional
from ..services.redis import redis_client

logger = logging.getLogger(__name__)

class CacheKeys:
    """Centralized cache key management"""

    # Auth
    USER_PROFILE = "profile:{user_id}"

    # Orders
    TODAYS_ORDERS = "orders:today"
    ADMIN_STATS = "dashboard:stats:{day}"

    # Rate limiting
    RATE_LIMIT = "rate_limit:{identifier}:{endpoint}"

def invalidate_order_cache(order_id: Optional[str] = None):
    """Drop dashboard aggregates after any order write"""
    try:
        redis_client.delete(CacheKeys.TODAYS_ORDERS)
        redis_client.delete_pattern("dashboard:stats:*")
    except redis.RedisError as e:
        logger.warning(f"Cache invalidation skipped for {order_id or 'orders'}: {e}")
