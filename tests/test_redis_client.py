"""Unit tests for Redis client."""

import json

import pytest
from unittest.mock import AsyncMock, patch

from common.messaging.events import EventBus, EventType, create_metrics_event, create_run_event
from common.messaging.redis_client import RedisClient


@pytest.mark.asyncio
class TestRedisClient:
    """Tests for Redis client."""

    async def test_connect(self):
        """Test connecting to Redis."""
        with patch("redis.asyncio.from_url") as mock_from_url:
            mock_redis = AsyncMock()
            mock_redis.ping = AsyncMock()
            mock_from_url.return_value = mock_redis

            client = RedisClient(url="redis://localhost:6379")
            await client.connect()

            assert client.is_connected is True
            mock_redis.ping.assert_called_once()

    async def test_disconnect(self):
        """Test disconnecting from Redis."""
        client = RedisClient()
        client._redis = AsyncMock()
        bus = EventBus()
        client.attach(bus)

        await client.disconnect()

        assert client.is_connected is False
        assert bus.listener_count() == 0

    async def test_publish_event_uses_type_channel(self):
        """Test publishing an event."""
        client = RedisClient()
        client._redis = AsyncMock()
        client._redis.publish = AsyncMock(return_value=1)

        event = create_run_event(EventType.RUN_COMPLETED, "run-1")
        result = await client.publish_event(event)

        assert result == 1
        channel, message = client._redis.publish.call_args.args
        assert channel == "perfcap:events:run.completed"
        assert json.loads(message)["run_id"] == "run-1"

    async def test_publish_not_connected(self):
        """Test publishing without a connection."""
        client = RedisClient()

        with pytest.raises(RuntimeError):
            await client.publish_event(create_run_event(EventType.RUN_STARTED, "run-1"))

    async def test_forward_caches_latest_metrics(self):
        client = RedisClient()
        client._redis = AsyncMock()

        await client.forward(create_metrics_event({"cpu_usage": 42.0}))

        client._redis.publish.assert_awaited_once()
        client._redis.set.assert_awaited_once_with(
            RedisClient.KEY_LATEST_METRICS, json.dumps({"cpu_usage": 42.0}), ex=None
        )

    async def test_attached_bus_forwards_events(self):
        client = RedisClient()
        client._redis = AsyncMock()
        bus = EventBus()
        client.attach(bus)

        await bus.emit(create_run_event(EventType.RUN_STARTED, "run-1"))

        client._redis.publish.assert_awaited_once()
        client._redis.set.assert_not_awaited()

    async def test_get(self):
        client = RedisClient()
        client._redis = AsyncMock()
        client._redis.get = AsyncMock(return_value="value")

        assert await client.get("key") == "value"
