import json
import logging
import redis
from typing import Optional, Any
from ..config import settings

logger = logging.getLogger(__name__)

class RedisClient:
    def __init__(self, url: str = None):
        self.client = redis.from_url(url or settings.REDIS_URL, decode_responses=True)

    # Basic operations
    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.client.get(key)
        except redis.ConnectionError:
            return None
        if value:
            try:
                return json.loads(value)
            except ValueError:
                return value
        return None

    def set(self, key: str, value: Any, expire: Optional[int] = None):
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        try:
            if expire:
                self.client.setex(key, expire, value)
            else:
                self.client.set(key, value)
        except redis.ConnectionError as e:
            logger.warning(f"Cache write skipped for {key}: {e}")

    def delete(self, *keys: str):
        if keys:
            self.client.delete(*keys)

    def delete_pattern(self, pattern: str):
        keys = self.client.keys(pattern)
        if keys:
            self.client.delete(*keys)

    # Increment for rate limiting
    def incr(self, key: str) -> int:
        return self.client.incr(key)

    def expire(self, key: str, seconds: int):
        self.client.expire(key, seconds)

    def ttl(self, key: str) -> int:
        return self.client.ttl(key)

    # Pub/sub for the order change feed
    def publish(self, channel: str, message: Any) -> int:
        if not isinstance(message, str):
            message = json.dumps(message, default=str)
        return self.client.publish(channel, message)

    def ping(self) -> bool:
        return self.client.ping()

redis_client = RedisClient()
