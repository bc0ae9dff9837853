"""Performance & Capacity Engine - service application."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.errors import ConfigurationError, InsufficientDataError, PerfCapError
from common.messaging.events import Event, EventBus, EventType
from common.messaging.redis_client import RedisClient
from common.models.metrics import MetricSample
from common.utils import ensure_dir
from engine import dependencies
from engine.config import Settings, get_settings
from engine.core.capacity import CapacityPlanner
from engine.core.load_executor import HttpLoadExecutor
from engine.core.monitor import PerformanceMonitor
from engine.core.orchestrator import ScalabilityOrchestrator
from engine.core.probes import SystemMetricsProbe
from engine.storage.run_store import RunStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def feed_planner(planner: CapacityPlanner):
    """EventBus listener passing collected samples to the capacity planner."""

    def listener(event: Event) -> None:
        metrics = event.payload.get("metrics")
        if metrics:
            planner.add_metrics([MetricSample(**metrics)])

    return listener


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    ensure_dir(settings.data_path)
    run_store = RunStore(settings.data_path)
    dependencies.set_run_store(run_store)
    logger.info(f"Run store initialized at {settings.data_path}")

    bus = EventBus()
    dependencies.set_event_bus(bus)

    redis_client = None
    if settings.redis_enabled:
        redis_client = RedisClient(url=settings.redis_url, client_id="engine")
        try:
            await redis_client.connect()
            redis_client.attach(bus)
        except Exception as e:
            logger.warning(f"Redis connection failed (events stay in-process): {e}")
            redis_client = None
    dependencies.set_redis_client(redis_client)

    planner = CapacityPlanner(
        pricing=settings.pricing,
        inventory=settings.inventory,
        bus=bus,
        history_days=settings.capacity_history_days,
        min_trend_samples=settings.min_trend_samples,
    )
    dependencies.set_planner(planner)
    bus.subscribe(feed_planner(planner), EventType.METRICS_COLLECTED)

    monitor = PerformanceMonitor(
        probe=SystemMetricsProbe(
            target_url=settings.probe_target_url,
            timeout=settings.probe_timeout,
        ),
        bus=bus,
        interval=settings.monitor_interval,
        max_metrics=settings.max_metrics_in_memory,
        retention_days=settings.metrics_retention_days,
        sweep_interval=settings.retention_sweep_interval,
        alert_history_size=settings.alert_history_size,
    )
    dependencies.set_monitor(monitor)

    orchestrator = ScalabilityOrchestrator(
        executor=HttpLoadExecutor(),
        bus=bus,
        recovery_interval=settings.recovery_interval,
        request_timeout=settings.load_request_timeout,
    )
    dependencies.set_orchestrator(orchestrator)

    if settings.monitor_autostart:
        await monitor.start()

    try:
        yield
    finally:
        await monitor.stop()
        if redis_client is not None:
            try:
                await redis_client.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting from Redis: {e}")
        logger.info("Engine shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Scalability testing, performance monitoring and capacity planning",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register exception handlers
    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(InsufficientDataError)
    async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(PerfCapError)
    async def engine_error_handler(request: Request, exc: PerfCapError):
        logger.error(f"Engine error: {exc}")
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(exc)},
        )

    # Register routers
    from engine.api.routes import capacity, monitor, runs, system

    app.include_router(system.router, prefix="/api/v1/system", tags=["System"])
    app.include_router(runs.router, prefix="/api/v1/runs", tags=["Runs"])
    app.include_router(monitor.router, prefix="/api/v1/monitor", tags=["Monitor"])
    app.include_router(capacity.router, prefix="/api/v1/capacity", tags=["Capacity"])

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


def main():
    """Entry point for running the engine service."""
    settings = get_settings()
    configure_logging(settings)

    logger.info(f"Starting engine on {settings.host}:{settings.port}")

    uvicorn.run(
        "engine.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
