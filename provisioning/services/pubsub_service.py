"""
Redis Pub/Sub relay for cross-process change events.

Mirrors the local ChangeFeed across processes: every event published locally
is sent to a Redis channel, and events published by other processes are fed
back into the local feed.

Architecture:
    - Channel pattern: {prefix}:org:{organization_id}:{table}
    - One pattern subscription ({prefix}:org:*) per process
    - Events carry the publishing feed's origin id; a process ignores its own
      events when they come back from Redis

Usage:
    relay = RedisChangeRelay(feed, settings.redis_url)
    await relay.start()
    ...
    await relay.stop()
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from .change_feed import ChangeEvent, ChangeFeed

logger = logging.getLogger("provisioning.pubsub_service")


class RedisChangeRelay:
    """
    Bridges a ChangeFeed to Redis pub/sub.

    Attributes:
        _feed: Local feed to mirror
        _redis_url: Redis connection URL
        _prefix: Channel name prefix
        _publisher: Redis client for publishing
        _pubsub: Pattern subscription, closed by stop()
        _listener: Background task consuming the pattern subscription
    """

    def __init__(self, feed: ChangeFeed, redis_url: str, prefix: str = "provisioning"):
        self._feed = feed
        self._redis_url = redis_url
        self._prefix = prefix
        self._publisher: Optional[redis.Redis] = None
        self._subscriber: Optional[redis.Redis] = None
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def channel_name(self, organization_id: str, table: str) -> str:
        return f"{self._prefix}:org:{organization_id}:{table}"

    @property
    def pattern(self) -> str:
        return f"{self._prefix}:org:*"

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self) -> None:
        """
        Connect to Redis and start mirroring events.

        Raises:
            ConnectionError: If Redis cannot be reached
        """
        async with self._lock:
            if self.running:
                return
            try:
                self._publisher = redis.from_url(
                    self._redis_url, encoding="utf-8", decode_responses=True
                )
                await self._publisher.ping()
            except Exception as e:
                logger.error(f"Failed to connect to Redis pub/sub: {e}")
                raise ConnectionError(f"Failed to connect to Redis: {e}") from e

            self._subscriber = redis.from_url(
                self._redis_url, encoding="utf-8", decode_responses=True
            )
            self._pubsub = self._subscriber.pubsub()
            await self._pubsub.psubscribe(self.pattern)
            self._listener = asyncio.create_task(self._listen(self._pubsub))
            self._feed.add_forwarder(self.publish)
            logger.info(f"Change relay connected, listening on {self.pattern}")

    async def publish(self, event: ChangeEvent) -> int:
        """Send a local event to Redis. Returns the number of receivers."""
        if self._publisher is None:
            return 0
        channel = self.channel_name(event.organization_id, event.table)
        receivers = await self._publisher.publish(channel, event.model_dump_json())
        logger.debug(f"Published {event.table}:{event.action} to {channel} ({receivers} subscribers)")
        return receivers

    async def handle_message(self, raw: str) -> bool:
        """
        Deliver one raw Redis message to the local feed.

        Returns:
            True if the event was delivered, False if it was ignored
        """
        try:
            event = ChangeEvent.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to parse change message: {e}")
            return False

        if event.origin == self._feed.origin:
            return False
        await self._feed.deliver(event)
        return True

    async def _listen(self, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                await self.handle_message(message["data"])
        except asyncio.CancelledError:
            logger.info("Change relay listener cancelled")
            raise

    async def stop(self) -> None:
        """Stop listening and close Redis connections."""
        async with self._lock:
            self._feed.remove_forwarder(self.publish)
            if self._listener:
                self._listener.cancel()
                try:
                    await self._listener
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Change relay listener had failed: {e}")
                self._listener = None
            if self._pubsub is not None:
                try:
                    await self._pubsub.punsubscribe(self.pattern)
                finally:
                    await self._pubsub.close()
                self._pubsub = None
            for client in (self._subscriber, self._publisher):
                if client is not None:
                    await client.close()
            self._subscriber = None
            self._publisher = None
            logger.info("Change relay stopped")
