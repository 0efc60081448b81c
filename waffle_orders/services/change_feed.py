"""Row-level change feed for the ``orders`` table.

Every applied write publishes the full new row to a Redis pub/sub channel.
Subscribers treat delivery as at-least-once and possibly reordered; the
per-client NotificationBridge takes care of duplicates.
"""
import json
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import redis
import redis.asyncio as aioredis

from ..config import settings
from .redis import redis_client, RedisClient

logger = logging.getLogger(__name__)

RowHandler = Callable[[Dict[str, Any]], Awaitable[None]]
ReconnectHandler = Callable[[], Awaitable[None]]


class ChangeFeed:
    def __init__(self, channel: str = None, client: RedisClient = None, url: str = None):
        self.channel = channel or settings.FEED_CHANNEL
        self.client = client or redis_client
        self.url = url or settings.REDIS_URL

    def publish(self, row: Dict[str, Any]) -> None:
        """Broadcast a committed row.

        The write has already happened, so a publish failure is logged and not
        raised; observers converge on their next re-fetch.
        """
        try:
            self.client.publish(self.channel, json.dumps(row, default=str))
        except redis.RedisError as e:
            logger.error(f"Failed to publish change for order {row.get('order_id')}: {e}")

    async def listen(
        self,
        handler: RowHandler,
        on_reconnect: Optional[ReconnectHandler] = None,
        max_attempts: int = None,
        backoff: float = 0.5,
    ) -> None:
        """Consume the feed forever, re-subscribing with bounded retries.

        ``on_reconnect`` runs after every re-subscription (not the first one)
        so callers can re-fetch full state before handling new deltas.
        """
        max_attempts = max_attempts or settings.FEED_RECONNECT_ATTEMPTS
        failures = 0
        connected_once = False

        while True:
            client = aioredis.from_url(self.url, decode_responses=True)
            pubsub = client.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                if connected_once and on_reconnect is not None:
                    logger.info("Order feed re-subscribed, re-syncing observers")
                    await on_reconnect()
                connected_once = True
                failures = 0

                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    try:
                        row = json.loads(message["data"])
                    except ValueError:
                        logger.warning(f"Dropping malformed feed message: {message['data']!r}")
                        continue
                    await handler(row)
            except asyncio.CancelledError:
                raise
            except (redis.RedisError, OSError) as e:
                failures += 1
                if failures > max_attempts:
                    logger.error(f"Order feed gave up after {max_attempts} reconnect attempts: {e}")
                    raise
                delay = backoff * (2 ** (failures - 1))
                logger.warning(f"Order feed disconnected ({e}), retry {failures}/{max_attempts} in {delay:.1f}s")
                await asyncio.sleep(delay)
            finally:
                try:
                    await pubsub.aclose()
                    await client.aclose()
                except (redis.RedisError, OSError):
                    pass
