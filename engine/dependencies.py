"""Dependency injection for the engine service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from common.messaging.events import EventBus
    from common.messaging.redis_client import RedisClient
    from engine.core.capacity import CapacityPlanner
    from engine.core.monitor import PerformanceMonitor
    from engine.core.orchestrator import ScalabilityOrchestrator
    from engine.storage.run_store import RunStore

# These will be set by main.py during startup
_run_store = None
_event_bus = None
_redis_client = None
_orchestrator = None
_monitor = None
_planner = None


def set_run_store(store: "RunStore") -> None:
    global _run_store
    _run_store = store


def set_event_bus(bus: "EventBus") -> None:
    global _event_bus
    _event_bus = bus


def set_redis_client(client: Optional["RedisClient"]) -> None:
    global _redis_client
    _redis_client = client


def set_orchestrator(orchestrator: "ScalabilityOrchestrator") -> None:
    global _orchestrator
    _orchestrator = orchestrator


def set_monitor(monitor: "PerformanceMonitor") -> None:
    global _monitor
    _monitor = monitor


def set_planner(planner: "CapacityPlanner") -> None:
    global _planner
    _planner = planner


def get_run_store() -> "RunStore":
    """Get the global run store instance."""
    if _run_store is None:
        raise RuntimeError("Run store not initialized")
    return _run_store


def get_event_bus() -> "EventBus":
    if _event_bus is None:
        raise RuntimeError("Event bus not initialized")
    return _event_bus


def get_redis_client() -> Optional["RedisClient"]:
    """Get the Redis client, or None when forwarding is disabled."""
    return _redis_client


def get_orchestrator() -> "ScalabilityOrchestrator":
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized")
    return _orchestrator


def get_monitor() -> "PerformanceMonitor":
    if _monitor is None:
        raise RuntimeError("Performance monitor not initialized")
    return _monitor


def get_planner() -> "CapacityPlanner":
    if _planner is None:
        raise RuntimeError("Capacity planner not initialized")
    return _planner
