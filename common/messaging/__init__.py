"""Messaging module for emitting and forwarding engine events."""

from common.messaging.events import Event, EventType, EventBus
from common.messaging.redis_client import RedisClient

__all__ = ["Event", "EventType", "EventBus", "RedisClient"]
