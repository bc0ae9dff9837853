"""Load executors turning a LoadConfig into an AggregateResult."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import httpx

from common.errors import ProbeError
from common.models.load import LoadConfig, RequestScenario, RequestSpec
from common.models.metrics import AggregateResult, MetricSample
from common.utils import mean, percentile
from engine.core.probes import read_system_usage

logger = logging.getLogger(__name__)


class LoadExecutor(Protocol):
    """Runs one load level and reports aggregate timing statistics.

    Implementations raise when the level could not be executed.
    """

    async def execute(self, config: LoadConfig) -> AggregateResult:
        ...


@dataclass
class RequestRecord:
    """Outcome of a single issued request."""
    finished_at: float  # monotonic seconds
    latency_ms: float
    success: bool
    responded: bool


class RateLimiter:
    """Spaces request starts evenly to cap the global request rate."""

    def __init__(self, rate: float):
        self.interval = 1.0 / rate
        self._next_slot = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            wait = self._next_slot - now
            self._next_slot = max(now, self._next_slot) + self.interval
        if wait > 0:
            await asyncio.sleep(wait)


class HttpLoadExecutor:
    """Issues HTTP load with one asyncio task per virtual user.

    Users start staggered across the ramp-up period, then loop over
    weighted scenarios until the duration elapses. A MetricSample is
    recorded every sample interval from the requests completed in that
    interval and the host's utilization.
    """

    def __init__(
        self,
        sample_interval: float = 1.0,
        collect_system_metrics: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sample_interval = sample_interval
        self.collect_system_metrics = collect_system_metrics
        self._transport = transport

    async def execute(self, config: LoadConfig) -> AggregateResult:
        logger.info(
            f"Executing load: {config.max_users} users against {config.target_url} "
            f"for {config.duration}s"
        )
        records: list[RequestRecord] = []
        samples: list[MetricSample] = []
        active_users = [0]
        scenarios = config.effective_scenarios()
        limiter = RateLimiter(config.requests_per_second) if config.requests_per_second else None

        start_time = datetime.utcnow()
        started = time.monotonic()
        deadline = started + config.duration

        try:
            async with httpx.AsyncClient(
                base_url=config.target_url,
                timeout=config.request_timeout,
                limits=httpx.Limits(max_connections=config.max_users),
                transport=self._transport,
            ) as client:
                sampler = asyncio.create_task(
                    self._sample_loop(records, samples, active_users, deadline)
                )
                users = [
                    self._virtual_user(
                        client, config, scenarios, index, deadline,
                        records, active_users, limiter,
                    )
                    for index in range(config.max_users)
                ]
                try:
                    await asyncio.gather(*users)
                finally:
                    sampler.cancel()
                    await asyncio.gather(sampler, return_exceptions=True)
        except httpx.InvalidURL as e:
            raise ProbeError(f"Invalid target URL {config.target_url}: {e}", source="load") from e

        end_time = datetime.utcnow()
        elapsed = max(time.monotonic() - started, 1e-9)

        if records and not any(r.responded for r in records):
            raise ProbeError(f"No responses received from {config.target_url}", source="load")

        return self._aggregate(config, records, samples, start_time, end_time, elapsed)

    async def _virtual_user(
        self,
        client: httpx.AsyncClient,
        config: LoadConfig,
        scenarios: list[RequestScenario],
        index: int,
        deadline: float,
        records: list[RequestRecord],
        active_users: list[int],
        limiter: Optional[RateLimiter],
    ) -> None:
        if config.ramp_up_time > 0:
            await asyncio.sleep(config.ramp_up_time * index / config.max_users)

        weights = [s.weight for s in scenarios]
        active_users[0] += 1
        try:
            while time.monotonic() < deadline:
                scenario = random.choices(scenarios, weights=weights)[0]
                for spec in scenario.requests:
                    if time.monotonic() >= deadline:
                        break
                    if limiter:
                        await limiter.acquire()
                    records.append(await self._issue(client, spec))
        finally:
            active_users[0] -= 1

    async def _issue(self, client: httpx.AsyncClient, spec: RequestSpec) -> RequestRecord:
        started = time.perf_counter()
        try:
            response = await client.request(
                spec.method.value,
                spec.path,
                headers=spec.headers or None,
                json=spec.body,
            )
            success = response.status_code == spec.expected_status
            responded = True
        except httpx.HTTPError as e:
            logger.debug(f"Request {spec.method.value} {spec.path} failed: {e}")
            success = False
            responded = False

        return RequestRecord(
            finished_at=time.monotonic(),
            latency_ms=(time.perf_counter() - started) * 1000,
            success=success,
            responded=responded,
        )

    async def _sample_loop(
        self,
        records: list[RequestRecord],
        samples: list[MetricSample],
        active_users: list[int],
        deadline: float,
    ) -> None:
        """Record one MetricSample per interval until the deadline."""
        seen = 0
        while time.monotonic() < deadline:
            await asyncio.sleep(self.sample_interval)
            window = records[seen:]
            seen = len(records)
            samples.append(self._sample(window, active_users[0]))

    def _sample(self, window: list[RequestRecord], users: int) -> MetricSample:
        latencies = [r.latency_ms for r in window]
        usage = read_system_usage() if self.collect_system_metrics else {}
        return MetricSample(
            timestamp=datetime.utcnow(),
            response_time=mean(latencies),
            throughput=len(window) / self.sample_interval,
            error_rate=(sum(1 for r in window if not r.success) / len(window)) if window else 0.0,
            network_latency=min(latencies) if latencies else 0.0,
            concurrent_users=users,
            **usage,
        )

    @staticmethod
    def _aggregate(
        config: LoadConfig,
        records: list[RequestRecord],
        samples: list[MetricSample],
        start_time: datetime,
        end_time: datetime,
        elapsed: float,
    ) -> AggregateResult:
        latencies = [r.latency_ms for r in records]
        total = len(records)
        successful = sum(1 for r in records if r.success)

        result = AggregateResult(
            start_time=start_time,
            end_time=end_time,
            concurrent_users=config.max_users,
            total_requests=total,
            successful_requests=successful,
            failed_requests=total - successful,
            average_response_time=mean(latencies),
            p95_response_time=percentile(latencies, 95),
            p99_response_time=percentile(latencies, 99),
            min_response_time=min(latencies) if latencies else 0.0,
            max_response_time=max(latencies) if latencies else 0.0,
            throughput=total / elapsed,
            error_rate=(total - successful) / total if total else 0.0,
            metrics=samples,
        )
        logger.info(
            f"Load complete at {config.max_users} users: {total} requests, "
            f"avg={result.average_response_time:.1f}ms, p95={result.p95_response_time:.1f}ms, "
            f"errors={result.error_rate:.1%}"
        )
        return result
