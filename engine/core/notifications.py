"""Notification sinks for alert transitions."""

from __future__ import annotations

import logging
from typing import Protocol

from common.models.alerts import ChannelType

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Delivers alert messages to a channel.

    Implementations raise NotificationError when delivery fails.
    """

    async def send(self, channel_type: ChannelType, target: str, message: str) -> None:
        ...


class LoggingNotificationSink:
    """Default sink that writes notifications to the log."""

    def __init__(self, level: int = logging.WARNING):
        self.level = level
        self.sent = 0

    async def send(self, channel_type: ChannelType, target: str, message: str) -> None:
        logger.log(self.level, f"Notification via {channel_type.value} to {target}: {message}")
        self.sent += 1
