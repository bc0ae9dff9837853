"""System management endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from engine.config import get_settings
from engine.dependencies import get_monitor, get_planner, get_redis_client

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check system health."""
    redis_client = get_redis_client()
    if redis_client is None:
        redis_status = "disabled"
    else:
        redis_status = "healthy" if redis_client.is_connected else "disconnected"

    return {
        "status": "healthy",
        "components": {
            "api": "healthy",
            "database": "healthy",
            "redis": redis_status,
            "monitor": "running" if get_monitor().is_running else "stopped",
        },
        "planner_history": get_planner().history_size(),
    }


@router.get("/config")
async def get_config():
    """Get system configuration (non-sensitive)."""
    settings = get_settings()
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "data_path": str(settings.data_path),
        "monitor_interval": settings.monitor_interval,
        "max_metrics_in_memory": settings.max_metrics_in_memory,
        "metrics_retention_days": settings.metrics_retention_days,
        "recovery_interval": settings.recovery_interval,
        "capacity_history_days": settings.capacity_history_days,
        "pricing": settings.pricing.model_dump(),
        "inventory": settings.inventory.model_dump(),
    }


@router.get("/version")
async def get_version():
    """Get application version."""
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": settings.app_version,
    }
