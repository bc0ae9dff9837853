"""Performance monitor: periodic sampling, alert rules and reports."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from pydantic import ValidationError

from common.errors import ConfigurationError, InsufficientDataError
from common.messaging.events import (
    EventBus,
    EventType,
    Event,
    create_alert_event,
    create_error_event,
    create_metrics_event,
)
from common.models.alerts import (
    AlertEvent,
    AlertEventKind,
    AlertRule,
    AlertState,
    NotificationTarget,
)
from common.models.metrics import METRIC_FIELDS, MetricSample
from common.models.reports import MetricTrend, PerformanceReport, ReportSummary, TimeRange
from common.utils import generate_report_id, mean, percentile, to_naive_utc
from engine.core.notifications import LoggingNotificationSink, NotificationSink
from engine.core.probes import MetricsProbe
from engine.core.scheduler import PeriodicTask
from engine.core.trends import TrendAnalyzer

logger = logging.getLogger(__name__)

# Metrics with a trend section in reports
REPORT_TREND_METRICS = (
    "response_time",
    "throughput",
    "error_rate",
    "cpu_usage",
    "memory_usage",
)


def performance_score(
    response_time: float,
    error_rate: float,
    cpu_usage: float,
    memory_usage: float,
) -> float:
    """Score from 100 down to 0 with penalties per pressure signal."""
    score = 100.0

    if response_time > 2000:
        score -= 20
    elif response_time > 1000:
        score -= 10
    elif response_time > 500:
        score -= 5

    if error_rate > 0.1:
        score -= 30
    elif error_rate > 0.05:
        score -= 15
    elif error_rate > 0.01:
        score -= 5

    if cpu_usage > 80:
        score -= 10
    if memory_usage > 85:
        score -= 10

    return max(0.0, score)


class PerformanceMonitor:
    """Samples live metrics on a cadence and evaluates alert rules.

    Alerts are edge-triggered: a rule fires once when its condition starts
    holding and resolves once when it stops. The declared rule duration is
    not enforced, so the first breaching sample fires.

    The sample window and alert registry are guarded by one lock. Readers
    get copies taken under it.
    """

    def __init__(
        self,
        probe: MetricsProbe,
        bus: Optional[EventBus] = None,
        notifier: Optional[NotificationSink] = None,
        interval: float = 5.0,
        max_metrics: int = 10000,
        retention_days: int = 30,
        sweep_interval: float = 3600.0,
        alert_history_size: int = 1000,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.probe = probe
        self.bus = bus or EventBus()
        self.notifier = notifier or LoggingNotificationSink()
        self.interval = interval
        self.retention_days = retention_days
        self.sweep_interval = sweep_interval
        self.clock = clock
        self.trend_analyzer = TrendAnalyzer()

        self._lock = threading.Lock()
        self._metrics: deque[MetricSample] = deque(maxlen=max_metrics)
        self._rules: dict[str, AlertRule] = {}
        self._states: dict[str, AlertState] = {}
        self._alert_history: deque[AlertEvent] = deque(maxlen=alert_history_size)

        self._sampler: Optional[PeriodicTask] = None
        self._sweeper: Optional[PeriodicTask] = None
        self.started_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._sampler is not None and self._sampler.is_running

    @property
    def max_metrics(self) -> int:
        return self._metrics.maxlen

    # Lifecycle

    async def start(self) -> None:
        """Start the sampling and retention loops."""
        if self.is_running:
            return

        self._sampler = PeriodicTask("monitor-sampler", self.tick, self.interval)
        self._sweeper = PeriodicTask(
            "monitor-retention", self._sweep, self.sweep_interval, run_immediately=False
        )
        self._sampler.start()
        self._sweeper.start()
        self.started_at = self.clock()

        logger.info(f"Performance monitor started (interval {self.interval}s)")
        await self.bus.emit(Event(
            type=EventType.MONITOR_STARTED,
            source="monitor",
            payload={"interval": self.interval, "rules": len(self._rules)},
        ))

    async def stop(self) -> None:
        """Stop both loops, letting an in-flight tick finish."""
        if self._sampler is None:
            return

        await self._sampler.stop()
        await self._sweeper.stop()
        self._sampler = None
        self._sweeper = None
        self.started_at = None

        logger.info("Performance monitor stopped")
        await self.bus.emit(Event(type=EventType.MONITOR_STOPPED, source="monitor"))

    # Rules

    def add_rule(self, rule: Union[AlertRule, dict]) -> AlertRule:
        """Register or replace an alert rule.

        A replaced rule keeps its alert state.
        """
        if isinstance(rule, dict):
            try:
                rule = AlertRule(**rule)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid alert rule: {e}") from e

        if rule.metric not in METRIC_FIELDS:
            raise ConfigurationError(
                f"Unknown metric '{rule.metric}' for rule {rule.id}; "
                f"expected one of: {', '.join(METRIC_FIELDS)}"
            )

        with self._lock:
            self._rules[rule.id] = rule
            self._states.setdefault(rule.id, AlertState())

        logger.info(f"Added alert rule {rule.id}: {rule.describe()}")
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self._rules.pop(rule_id, None)
            self._states.pop(rule_id, None)

        if removed:
            logger.info(f"Removed alert rule {rule_id}")
        return removed is not None

    def rules(self) -> list[AlertRule]:
        with self._lock:
            return list(self._rules.values())

    def alert_state(self, rule_id: str) -> Optional[AlertState]:
        with self._lock:
            state = self._states.get(rule_id)
            return state.model_copy() if state else None

    # Sampling

    async def sample(self) -> MetricSample:
        """Take one sample from the probe."""
        return await self.probe.sample()

    async def tick(self) -> Optional[MetricSample]:
        """Sample, retain and evaluate rules once.

        Returns the sample, or None when the probe failed.
        """
        try:
            sample = await self.sample()
        except Exception as e:
            logger.error(f"Metric probe failed: {e}")
            await self.bus.emit(create_error_event(
                EventType.PROBE_ERROR,
                "monitor",
                str(e),
                {"error_type": type(e).__name__},
            ))
            return None

        with self._lock:
            self._metrics.append(sample)
            transitions, rule_errors = self._evaluate(sample)
            self._alert_history.extend(event for _, event in transitions)

        await self.bus.emit(create_metrics_event(sample.model_dump(mode="json")))

        for rule_id, error in rule_errors:
            logger.error(f"Alert rule {rule_id} evaluation failed: {error}")
            await self.bus.emit(create_error_event(
                EventType.RULE_ERROR,
                "monitor",
                str(error),
                {"rule_id": rule_id},
            ))

        for rule, event in transitions:
            await self._publish_transition(rule, event)

        return sample

    def _evaluate(
        self,
        sample: MetricSample,
    ) -> tuple[list[tuple[AlertRule, AlertEvent]], list[tuple[str, Exception]]]:
        """Apply every enabled rule to a sample. Caller holds the lock."""
        transitions = []
        errors = []

        for rule in self._rules.values():
            if not rule.enabled:
                continue

            try:
                value = sample.value_of(rule.metric)
                breached = rule.operator.compare(value, rule.threshold)
            except Exception as e:
                errors.append((rule.id, e))
                continue

            state = self._states.setdefault(rule.id, AlertState())
            if breached and not state.triggered:
                state.triggered = True
                state.last_triggered = sample.timestamp
                state.trigger_count += 1
                kind = AlertEventKind.TRIGGERED
            elif not breached and state.triggered:
                state.triggered = False
                state.last_resolved = sample.timestamp
                kind = AlertEventKind.RESOLVED
            else:
                continue

            transitions.append((rule, AlertEvent(
                rule_id=rule.id,
                rule_name=rule.display_name,
                kind=kind,
                metric=rule.metric,
                value=value,
                threshold=rule.threshold,
                operator=rule.operator,
                severity=rule.severity,
                timestamp=sample.timestamp,
            )))

        return transitions, errors

    async def _publish_transition(self, rule: AlertRule, event: AlertEvent) -> None:
        if event.kind == AlertEventKind.TRIGGERED:
            logger.warning(event.message())
            await self.bus.emit(create_alert_event(
                EventType.ALERT_TRIGGERED, event.model_dump(mode="json")
            ))
            await self._notify(rule, event)
        else:
            logger.info(event.message())
            await self.bus.emit(create_alert_event(
                EventType.ALERT_RESOLVED, event.model_dump(mode="json")
            ))

    async def _notify(self, rule: AlertRule, event: AlertEvent) -> None:
        """Send to every configured channel; one failure never blocks the others."""
        if not rule.notifications:
            return
        message = event.message()
        await asyncio.gather(*[
            self._send(rule, target, message) for target in rule.notifications
        ])

    async def _send(self, rule: AlertRule, target: NotificationTarget, message: str) -> None:
        try:
            await self.notifier.send(target.type, target.target, message)
        except Exception as e:
            logger.error(
                f"Notification for rule {rule.id} via {target.type.value} "
                f"to {target.target} failed: {e}"
            )
            await self.bus.emit(create_error_event(
                EventType.NOTIFICATION_FAILED,
                "monitor",
                str(e),
                {"rule_id": rule.id, "channel": target.type.value, "target": target.target},
            ))

    # Retention

    async def _sweep(self) -> None:
        self.purge_expired()

    def purge_expired(self) -> int:
        """Drop samples older than the retention period. Returns the count removed."""
        cutoff = self.clock() - timedelta(days=self.retention_days)
        with self._lock:
            kept = [m for m in self._metrics if m.timestamp >= cutoff]
            removed = len(self._metrics) - len(kept)
            if removed:
                self._metrics = deque(kept, maxlen=self._metrics.maxlen)

        if removed:
            logger.info(f"Purged {removed} samples older than {self.retention_days} days")
        return removed

    # Queries

    def metric_count(self) -> int:
        with self._lock:
            return len(self._metrics)

    def metrics_in_range(self, start: datetime, end: datetime) -> list[MetricSample]:
        start, end = to_naive_utc(start), to_naive_utc(end)
        with self._lock:
            return [m for m in self._metrics if start <= m.timestamp <= end]

    def latest(self, count: int = 1) -> list[MetricSample]:
        """Most recent samples, oldest first."""
        if count <= 0:
            return []
        with self._lock:
            return list(self._metrics)[-count:]

    def alert_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[AlertEvent]:
        start, end = to_naive_utc(start), to_naive_utc(end)
        with self._lock:
            events = list(self._alert_history)
        return [
            e for e in events
            if (start is None or e.timestamp >= start) and (end is None or e.timestamp <= end)
        ]

    def report(self, start: datetime, end: datetime) -> PerformanceReport:
        """Summarize samples, trends and alerts within a time range."""
        start, end = to_naive_utc(start), to_naive_utc(end)
        if end < start:
            raise ConfigurationError("Report end must not precede its start")

        samples = self.metrics_in_range(start, end)
        if not samples:
            raise InsufficientDataError(
                f"No samples between {start.isoformat()} and {end.isoformat()}"
            )

        response_times = [m.response_time for m in samples]
        error_rate = mean([m.error_rate for m in samples])
        average_response_time = mean(response_times)

        summary = ReportSummary(
            average_response_time=average_response_time,
            p95_response_time=percentile(response_times, 95),
            average_throughput=mean([m.throughput for m in samples]),
            total_requests=int(round(sum(m.throughput * self.interval for m in samples))),
            error_rate=error_rate,
            availability=1.0 - error_rate,
            performance_score=performance_score(
                average_response_time,
                error_rate,
                mean([m.cpu_usage for m in samples]),
                mean([m.memory_usage for m in samples]),
            ),
        )

        trends = []
        for metric in REPORT_TREND_METRICS:
            values = [m.value_of(metric) for m in samples]
            trends.append(MetricTrend(
                metric=metric,
                trend=self.trend_analyzer.analyze(values),
                change_percentage=TrendAnalyzer.change_percentage(values),
            ))

        return PerformanceReport(
            id=generate_report_id(),
            generated_at=self.clock(),
            time_range=TimeRange(start=start, end=end),
            sample_count=len(samples),
            summary=summary,
            trends=trends,
            alerts=self.alert_history(start, end),
        )
