"""Event definitions and the in-process event bus."""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted by the engine."""

    # Scalability runs
    RUN_STARTED = "run.started"
    RUN_STEP_COMPLETED = "run.step_completed"
    RUN_COMPLETED = "run.completed"
    RUN_CANCELLED = "run.cancelled"
    RUN_FAILED = "run.failed"

    # Monitoring
    MONITOR_STARTED = "monitor.started"
    MONITOR_STOPPED = "monitor.stopped"
    METRICS_COLLECTED = "metrics.collected"
    PROBE_ERROR = "monitor.probe_error"
    RULE_ERROR = "monitor.rule_error"

    # Alerts
    ALERT_TRIGGERED = "alert.triggered"
    ALERT_RESOLVED = "alert.resolved"
    NOTIFICATION_FAILED = "notification.failed"

    # Capacity planning
    CAPACITY_PLAN_GENERATED = "capacity.plan_generated"


class Event(BaseModel):
    """Base event structure for all emitted events."""

    type: EventType = Field(..., description="Event type")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    source: str = Field(..., description="Emitting component")
    run_id: Optional[str] = Field(default=None)
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "run_id": self.run_id,
            "payload": self.payload,
        }

    @classmethod
    def from_json(cls, data: dict) -> "Event":
        """Create event from JSON dict."""
        return cls(
            type=EventType(data["type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            source=data["source"],
            run_id=data.get("run_id"),
            payload=data.get("payload", {}),
        )


Listener = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
    """Fan-out of events to registered listeners.

    Listeners may be plain callables or coroutine functions. A failing
    listener is logged and never affects the emitter or other listeners.
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, listener: Listener, event_type: EventType | str | None = None) -> None:
        """Register a listener for one event type, or for all events."""
        key = self._key(event_type)
        self._listeners.setdefault(key, []).append(listener)
        logger.debug(f"Registered listener for {key}")

    def unsubscribe(self, listener: Listener, event_type: EventType | str | None = None) -> None:
        """Remove a previously registered listener."""
        key = self._key(event_type)
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: EventType | str | None = None) -> int:
        return len(self._listeners.get(self._key(event_type), []))

    async def emit(self, event: Event) -> None:
        """Deliver an event to its type listeners and the catch-all listeners."""
        listeners = list(self._listeners.get(event.type.value, []))
        listeners.extend(self._listeners.get("*", []))

        for listener in listeners:
            try:
                if inspect.iscoroutinefunction(listener):
                    await listener(event)
                else:
                    result = listener(event)
                    if asyncio.iscoroutine(result):
                        await result
            except Exception as e:
                logger.error(f"Listener error for {event.type.value}: {e}")

    @staticmethod
    def _key(event_type: EventType | str | None) -> str:
        if event_type is None:
            return "*"
        return event_type.value if isinstance(event_type, EventType) else event_type


# Convenience functions for creating common events

def create_run_event(
    event_type: EventType,
    run_id: str,
    payload: dict = None,
) -> Event:
    """Create a scalability run lifecycle event."""
    return Event(
        type=event_type,
        source="orchestrator",
        run_id=run_id,
        payload=payload or {},
    )


def create_metrics_event(sample: dict) -> Event:
    """Create a metrics collected event."""
    return Event(
        type=EventType.METRICS_COLLECTED,
        source="monitor",
        payload={"metrics": sample},
    )


def create_alert_event(event_type: EventType, alert: dict) -> Event:
    """Create an alert triggered/resolved event."""
    return Event(
        type=event_type,
        source="monitor",
        payload={"alert": alert},
    )


def create_error_event(
    event_type: EventType,
    source: str,
    error: str = "",
    details: dict = None,
) -> Event:
    """Create an error event."""
    return Event(
        type=event_type,
        source=source,
        payload={
            "error": error,
            "details": details or {},
        },
    )
