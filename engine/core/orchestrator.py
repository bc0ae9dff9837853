"""Scalability orchestrator driving stepped load through a LoadExecutor."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from common.errors import ConfigurationError
from common.messaging.events import EventBus, EventType, create_run_event
from common.models.load import LoadConfig
from common.models.metrics import AggregateResult
from common.models.scalability import (
    BreakingPoint,
    Priority,
    RunStatus,
    ScalabilityConfig,
    ScalabilityRecommendation,
    ScalabilityRun,
    StopReason,
)
from common.utils import generate_run_id, mean
from engine.core.load_executor import LoadExecutor

logger = logging.getLogger(__name__)

# Error rate above which a step is a breaking point regardless of config
HARD_ERROR_RATE_LIMIT = 0.5

# Response time jump over the previous step that counts as degradation
DEGRADATION_FACTOR = 1.5

MEMORY_PRESSURE_THRESHOLD = 80.0
CPU_PRESSURE_THRESHOLD = 70.0
SLOW_RESPONSE_THRESHOLD = 1000.0  # ms


def validate_config(config: ScalabilityConfig) -> None:
    """Reject a configuration that cannot produce a concurrency sequence."""
    errors = []
    if config.baseline_users <= 0:
        errors.append(f"baseline_users must be positive (got {config.baseline_users})")
    if config.max_users < config.baseline_users:
        errors.append(
            f"max_users ({config.max_users}) must be >= baseline_users ({config.baseline_users})"
        )
    if config.user_increment <= 0:
        errors.append(f"user_increment must be positive (got {config.user_increment})")
    if config.test_duration <= 0:
        errors.append(f"test_duration must be positive (got {config.test_duration})")
    if config.ramp_up_time < 0:
        errors.append(f"ramp_up_time must not be negative (got {config.ramp_up_time})")
    if config.acceptable_response_time < 0:
        errors.append("acceptable_response_time must not be negative")
    if not 0 <= config.acceptable_error_rate <= 1:
        errors.append("acceptable_error_rate must be within [0, 1]")
    if config.recovery_interval is not None and config.recovery_interval < 0:
        errors.append("recovery_interval must not be negative")

    if errors:
        raise ConfigurationError("Invalid scalability config: " + "; ".join(errors))


def is_breaking(result: AggregateResult, config: ScalabilityConfig) -> bool:
    """Whether a step violates the run's thresholds."""
    return (
        result.average_response_time > config.acceptable_response_time
        or result.error_rate > config.acceptable_error_rate
        or result.error_rate > HARD_ERROR_RATE_LIMIT
    )


def find_degradation(results: list[AggregateResult]) -> Optional[int]:
    """First level whose average response time jumped over the previous level."""
    for previous, current in zip(results, results[1:]):
        if previous.average_response_time <= 0:
            continue
        if current.average_response_time > previous.average_response_time * DEGRADATION_FACTOR:
            return current.concurrent_users
    return None


def analyze_breaking_point(
    results: list[AggregateResult],
    config: ScalabilityConfig,
) -> BreakingPoint:
    """Summarize max throughput, degradation and breaking levels."""
    if not results:
        return BreakingPoint()

    best = results[0]
    for result in results[1:]:
        if result.throughput > best.throughput:
            best = result

    degradation = find_degradation(results)
    breaking_users = next(
        (r.concurrent_users for r in results if is_breaking(r, config)),
        None,
    )

    return BreakingPoint(
        max_users=best.concurrent_users,
        max_throughput=best.throughput,
        degradation_point=degradation if degradation is not None else best.concurrent_users,
        breaking_users=breaking_users,
    )


def _average_over_steps(results: list[AggregateResult], metric: str) -> Optional[float]:
    values = [m.value_of(metric) for r in results for m in r.metrics]
    if not values:
        return None
    return mean(values)


def build_recommendations(
    results: list[AggregateResult],
    config: ScalabilityConfig,
) -> list[ScalabilityRecommendation]:
    """Heuristic recommendations from the last step and whole-run averages.

    Rules are independent; any subset may apply.
    """
    if not results:
        return []

    last = results[-1]
    recommendations = []

    if last.average_response_time > config.acceptable_response_time:
        recommendations.append(ScalabilityRecommendation(
            category="infrastructure",
            title="Scale infrastructure",
            description=(
                f"Average response time {last.average_response_time:.0f}ms at "
                f"{last.concurrent_users} users exceeds the "
                f"{config.acceptable_response_time:.0f}ms limit. Add instances or "
                f"enable horizontal auto-scaling."
            ),
            priority=Priority.HIGH,
            expected_impact="Restores response times under peak load",
            effort="medium",
        ))

    if last.error_rate > config.acceptable_error_rate or last.error_rate > HARD_ERROR_RATE_LIMIT:
        recommendations.append(ScalabilityRecommendation(
            category="reliability",
            title="Address error rate",
            description=(
                f"Error rate {last.error_rate:.1%} at {last.concurrent_users} users "
                f"exceeds the {config.acceptable_error_rate:.1%} limit. Investigate "
                f"failing requests, timeouts and connection limits."
            ),
            priority=Priority.CRITICAL,
            expected_impact="Prevents user-facing failures under load",
            effort="medium",
        ))

    degradation = find_degradation(results)
    if degradation is not None and degradation < last.concurrent_users:
        recommendations.append(ScalabilityRecommendation(
            category="performance",
            title="Introduce caching",
            description=(
                f"Response time degraded sharply at {degradation} users, before the "
                f"final step. Cache frequently read data to absorb the extra load."
            ),
            priority=Priority.MEDIUM,
            expected_impact="Flattens response time growth with concurrency",
            effort="medium",
        ))

    avg_memory = _average_over_steps(results, "memory_usage")
    if avg_memory is not None and avg_memory > MEMORY_PRESSURE_THRESHOLD:
        recommendations.append(ScalabilityRecommendation(
            category="resources",
            title="Increase memory",
            description=(
                f"Average memory usage was {avg_memory:.1f}% across all steps. "
                f"Increase memory allocation or reduce the working set."
            ),
            priority=Priority.HIGH,
            expected_impact="Avoids swapping and out-of-memory failures",
            effort="low",
        ))

    avg_cpu = _average_over_steps(results, "cpu_usage")
    if avg_cpu is not None and avg_cpu > CPU_PRESSURE_THRESHOLD:
        recommendations.append(ScalabilityRecommendation(
            category="resources",
            title="Optimize CPU usage",
            description=(
                f"Average CPU usage was {avg_cpu:.1f}% across all steps. Profile hot "
                f"paths or add compute capacity."
            ),
            priority=Priority.MEDIUM,
            expected_impact="Frees headroom for higher concurrency",
            effort="medium",
        ))

    if last.average_response_time > SLOW_RESPONSE_THRESHOLD:
        recommendations.append(ScalabilityRecommendation(
            category="database",
            title="Database query optimization",
            description=(
                f"Responses averaged {last.average_response_time:.0f}ms on the last "
                f"step. Review slow queries, indexes and connection pooling."
            ),
            priority=Priority.MEDIUM,
            expected_impact="Reduces per-request latency",
            effort="high",
        ))

    return recommendations


class ScalabilityOrchestrator:
    """Runs stepped load tests and tracks them by run id.

    Runs are independent; each owns a stop event that is checked before
    every step and interrupts the recovery wait between steps. An
    in-flight step is never interrupted.
    """

    def __init__(
        self,
        executor: LoadExecutor,
        bus: Optional[EventBus] = None,
        recovery_interval: float = 30.0,
        request_timeout: float = 30.0,
    ):
        self.executor = executor
        self.bus = bus or EventBus()
        self.recovery_interval = recovery_interval
        self.request_timeout = request_timeout
        self._runs: dict[str, ScalabilityRun] = {}
        self._stop_events: dict[str, asyncio.Event] = {}

    def create_run(self, config: ScalabilityConfig, run_id: Optional[str] = None) -> ScalabilityRun:
        """Validate a config and register a pending run for it."""
        validate_config(config)

        run_id = run_id or generate_run_id()
        if run_id in self._runs:
            raise ConfigurationError(f"Run already exists: {run_id}")

        run = ScalabilityRun(id=run_id, config=config)
        self._runs[run_id] = run
        self._stop_events[run_id] = asyncio.Event()
        return run

    async def run(self, config: ScalabilityConfig, run_id: Optional[str] = None) -> ScalabilityRun:
        """Validate, execute and return a complete scalability run."""
        if run_id is None or run_id not in self._runs:
            run = self.create_run(config, run_id)
        else:
            run = self._runs[run_id]
            if run.status != RunStatus.PENDING:
                raise ConfigurationError(f"Run already executed: {run_id}")

        return await self.execute(run)

    async def execute(self, run: ScalabilityRun) -> ScalabilityRun:
        """Drive a pending run through its concurrency levels."""
        config = run.config
        stop_event = self._stop_events.setdefault(run.id, asyncio.Event())
        levels = config.concurrency_levels()
        interval = (
            config.recovery_interval
            if config.recovery_interval is not None
            else self.recovery_interval
        )

        logger.info(
            f"Starting scalability run {run.id}: {config.baseline_users}-{config.max_users} "
            f"users in steps of {config.user_increment}"
        )
        run.status = RunStatus.RUNNING
        run.started_at = datetime.utcnow()
        await self._emit(EventType.RUN_STARTED, run, {
            "name": config.name,
            "target_url": config.target_url,
            "levels": levels,
        })

        try:
            run.stop_reason = await self._run_levels(run, levels, interval, stop_event)
            run.status = (
                RunStatus.CANCELLED
                if run.stop_reason == StopReason.CANCELLED
                else RunStatus.COMPLETED
            )
        except Exception as e:
            logger.error(f"Scalability run failed: {run.id}: {e}", exc_info=True)
            run.status = RunStatus.FAILED
            run.stop_reason = StopReason.LOAD_ERROR
            run.error = str(e) or type(e).__name__
        finally:
            self._stop_events.pop(run.id, None)

        run.breaking_point = analyze_breaking_point(run.results, config)
        run.recommendations = build_recommendations(run.results, config)
        run.completed_at = datetime.utcnow()

        await self._emit_finished(run)
        logger.info(
            f"Scalability run {run.id} {run.status.value} after {len(run.results)} steps "
            f"({run.stop_reason.value})"
        )
        return run

    async def _run_levels(
        self,
        run: ScalabilityRun,
        levels: list[int],
        interval: float,
        stop_event: asyncio.Event,
    ) -> StopReason:
        """Issue load levels in order and report why the sequence ended."""
        for index, users in enumerate(levels):
            if stop_event.is_set():
                return StopReason.CANCELLED

            logger.info(f"Run {run.id}: step {index + 1}/{len(levels)} at {users} users")
            result = await self.executor.execute(self._load_config(run.config, users))
            if result.concurrent_users != users:
                result = result.model_copy(update={"concurrent_users": users})
            run.add_result(result)

            await self._emit(EventType.RUN_STEP_COMPLETED, run, {
                "step": index + 1,
                "concurrent_users": users,
                "average_response_time": result.average_response_time,
                "throughput": result.throughput,
                "error_rate": result.error_rate,
            })

            if is_breaking(result, run.config):
                logger.warning(
                    f"Run {run.id}: breaking point at {users} users "
                    f"(avg {result.average_response_time:.0f}ms, errors {result.error_rate:.1%})"
                )
                return StopReason.BREAKING_POINT

            if index < len(levels) - 1 and interval > 0:
                await self._recover(stop_event, interval)

        return StopReason.MAX_USERS_REACHED

    def _load_config(self, config: ScalabilityConfig, users: int) -> LoadConfig:
        return LoadConfig(
            target_url=config.target_url,
            duration=config.test_duration,
            ramp_up_time=config.ramp_up_time,
            max_users=users,
            request_timeout=self.request_timeout,
            scenarios=config.scenarios,
        )

    async def _recover(self, stop_event: asyncio.Event, interval: float) -> None:
        """Wait between steps, returning early if a stop is requested."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    async def _emit_finished(self, run: ScalabilityRun) -> None:
        bp = run.breaking_point
        payload = {
            "status": run.status.value,
            "stop_reason": run.stop_reason.value if run.stop_reason else None,
            "steps": len(run.results),
            "max_users": bp.max_users if bp else None,
            "max_throughput": bp.max_throughput if bp else None,
            "degradation_point": bp.degradation_point if bp else None,
            "breaking_users": bp.breaking_users if bp else None,
            "recommendations": len(run.recommendations),
        }
        if run.status == RunStatus.FAILED:
            payload["error"] = run.error
            await self._emit(EventType.RUN_FAILED, run, payload)
        elif run.status == RunStatus.CANCELLED:
            await self._emit(EventType.RUN_CANCELLED, run, payload)
        else:
            await self._emit(EventType.RUN_COMPLETED, run, payload)

    async def _emit(self, event_type: EventType, run: ScalabilityRun, payload: dict) -> None:
        await self.bus.emit(create_run_event(event_type, run.id, payload))

    async def stop(self, run_id: str) -> bool:
        """Signal a run to stop before its next step.

        Returns False if the run is unknown or already finished.
        """
        stop_event = self._stop_events.get(run_id)
        if stop_event is None:
            return False
        stop_event.set()
        logger.info(f"Stop signal sent for run: {run_id}")
        return True

    def get_run(self, run_id: str) -> Optional[ScalabilityRun]:
        return self._runs.get(run_id)

    def list_runs(self) -> list[ScalabilityRun]:
        """Tracked runs, newest first."""
        return sorted(self._runs.values(), key=lambda r: r.created_at, reverse=True)

    def forget(self, run_id: str) -> None:
        """Drop a finished run from the in-memory registry."""
        run = self._runs.get(run_id)
        if run is not None and run.is_finished:
            self._runs.pop(run_id, None)
