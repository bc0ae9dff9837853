"""Metric probes feeding the performance monitor."""

from __future__ import annotations

import logging
import time
from collections import deque
from datetime import datetime
from typing import Optional, Protocol

import httpx
import psutil

from common.errors import ProbeError
from common.models.metrics import MetricSample

logger = logging.getLogger(__name__)


class MetricsProbe(Protocol):
    """Source of live metric samples."""

    async def sample(self) -> MetricSample:
        ...


def read_system_usage(disk_path: str = "/") -> dict:
    """Current host CPU, memory and disk utilization in percent.

    cpu_percent is non-blocking and measured since the previous call, so
    the first reading after start-up may be 0.
    """
    try:
        return {
            "cpu_usage": psutil.cpu_percent(interval=None),
            "memory_usage": psutil.virtual_memory().percent,
            "disk_usage": psutil.disk_usage(disk_path).percent,
        }
    except (OSError, psutil.Error) as e:
        raise ProbeError(f"Failed to read system metrics: {e}", source="psutil") from e


class SystemMetricsProbe:
    """Samples host utilization and, optionally, an HTTP health endpoint.

    With a target URL each sample issues one GET. Response time and
    network latency come from that request; error rate and throughput are
    computed over a rolling window of recent checks. Without a target only
    utilization fields are populated.
    """

    def __init__(
        self,
        target_url: Optional[str] = None,
        timeout: float = 5.0,
        disk_path: str = "/",
        window: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.target_url = target_url
        self.timeout = timeout
        self.disk_path = disk_path
        self._transport = transport
        self._checks: deque[tuple[float, bool]] = deque(maxlen=window)

    async def sample(self) -> MetricSample:
        usage = read_system_usage(self.disk_path)

        response_time = 0.0
        if self.target_url:
            response_time = await self._check_health()

        return MetricSample(
            timestamp=datetime.utcnow(),
            response_time=response_time,
            throughput=self._throughput(),
            error_rate=self._error_rate(),
            network_latency=response_time,
            **usage,
        )

    async def _check_health(self) -> float:
        """Issue one health request and return its latency in ms."""
        started = time.perf_counter()
        ok = False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.target_url)
            ok = response.status_code < 500
            latency = (time.perf_counter() - started) * 1000
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed for {self.target_url}: {e}")
            latency = self.timeout * 1000

        self._checks.append((time.monotonic(), ok))
        return latency

    def _error_rate(self) -> float:
        if not self._checks:
            return 0.0
        failures = sum(1 for _, ok in self._checks if not ok)
        return failures / len(self._checks)

    def _throughput(self) -> float:
        """Successful checks per second across the window."""
        if len(self._checks) < 2:
            return 0.0
        elapsed = self._checks[-1][0] - self._checks[0][0]
        if elapsed <= 0:
            return 0.0
        return sum(1 for _, ok in self._checks if ok) / elapsed
