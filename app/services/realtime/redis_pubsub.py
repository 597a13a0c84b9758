"""
Redis Broadcaster

Staging/production broadcaster. Events are published to a Redis pub/sub
channel; every API worker runs a relay task (started in the application
lifespan) that subscribes to the channel and forwards messages to the
admins connected to that worker.
"""

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.services.realtime.base import BaseBroadcaster, build_message
from app.services.realtime.hub import AdminHub

logger = logging.getLogger(__name__)


class RedisBroadcaster(BaseBroadcaster):
    """Publishes events through Redis pub/sub."""

    def __init__(self, redis_url: str, channel: str, hub: AdminHub, reconnect_delay: float = 1.0):
        self.redis = aioredis.from_url(redis_url, decode_responses=True)
        self.channel = channel
        self.hub = hub
        self.reconnect_delay = reconnect_delay
        logger.info(f"RedisBroadcaster initialized (channel={channel})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps(build_message(event, payload), default=str)
        receivers = await self.redis.publish(self.channel, message)
        logger.debug(f"Event {event} published to {receivers} relay(s)")

    async def relay(self) -> None:
        """Forward channel messages to the local hub until cancelled."""
        while True:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                logger.info(f"Relaying {self.channel} to local admin connections")
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    try:
                        data = json.loads(message["data"])
                    except ValueError:
                        logger.warning(f"Ignoring malformed message on {self.channel}")
                        continue
                    await self.hub.broadcast(data)
            except RedisError as e:
                logger.error(f"Realtime relay lost Redis connection: {e}")
                await asyncio.sleep(self.reconnect_delay)
            except Exception as e:
                logger.exception(f"Realtime relay failed, resubscribing: {e}")
                await asyncio.sleep(self.reconnect_delay)
            finally:
                await pubsub.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.redis.aclose()
