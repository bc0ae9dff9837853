"""Redis client for forwarding engine events to external consumers."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from common.messaging.events import Event, EventBus

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client publishing events for dashboards and loggers."""

    # Channel prefixes
    CHANNEL_EVENTS = "perfcap:events"
    KEY_LATEST_METRICS = "perfcap:metrics:latest"

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        client_id: str = "engine",
    ):
        self.url = url
        self.client_id = client_id
        self._redis: Optional[redis.Redis] = None
        self._bus: Optional[EventBus] = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is not None:
            return

        logger.info(f"Connecting to Redis at {self.url}")
        self._redis = redis.from_url(self.url, decode_responses=True)

        # Test connection
        await self._redis.ping()
        logger.info("Connected to Redis successfully")

    async def disconnect(self) -> None:
        """Detach from the event bus and disconnect from Redis."""
        if self._bus is not None:
            self._bus.unsubscribe(self.forward)
            self._bus = None

        if self._redis:
            await self._redis.close()
            self._redis = None

        logger.info("Disconnected from Redis")

    async def publish(self, channel: str, event: Event) -> int:
        """Publish an event to a channel."""
        if not self._redis:
            raise RuntimeError("Not connected to Redis")

        message = json.dumps(event.to_json())
        result = await self._redis.publish(channel, message)
        logger.debug(f"Published to {channel}: {event.type.value}")
        return result

    async def publish_event(self, event: Event) -> int:
        """Publish an event on its type channel."""
        channel = f"{self.CHANNEL_EVENTS}:{event.type.value}"
        return await self.publish(channel, event)

    async def forward(self, event: Event) -> None:
        """EventBus listener: publish every event, caching the latest metrics."""
        await self.publish_event(event)
        metrics = event.payload.get("metrics")
        if metrics is not None:
            await self.set(self.KEY_LATEST_METRICS, metrics)

    def attach(self, bus: EventBus) -> None:
        """Forward all events emitted on a bus."""
        bus.subscribe(self.forward)
        self._bus = bus
        logger.info("Forwarding engine events to Redis")

    # Convenience methods for common operations

    async def set(self, key: str, value: Any, ex: int = None) -> None:
        """Set a key-value pair."""
        if not self._redis:
            raise RuntimeError("Not connected to Redis")

        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        await self._redis.set(key, value, ex=ex)

    async def get(self, key: str) -> Optional[str]:
        """Get a value by key."""
        if not self._redis:
            raise RuntimeError("Not connected to Redis")
        return await self._redis.get(key)
