"""Unit tests for PerformanceMonitor."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from common.errors import ConfigurationError, InsufficientDataError, NotificationError
from common.messaging.events import EventType
from common.models.alerts import (
    AlertEventKind,
    AlertRule,
    ChannelType,
    ComparisonOperator,
    NotificationTarget,
    Severity,
)
from common.models.metrics import MetricSample
from engine.core.monitor import PerformanceMonitor, performance_score

from conftest import SequenceProbe, make_sample


def error_rate_rule(**overrides) -> AlertRule:
    fields = {
        "id": "high-error-rate",
        "name": "High Error Rate",
        "metric": "error_rate",
        "threshold": 0.05,
        "operator": ComparisonOperator.GT,
        "duration": 60,
        "severity": Severity.CRITICAL,
    }
    fields.update(overrides)
    return AlertRule(**fields)


class TestPerformanceScore:
    """Tests for report scoring."""

    def test_healthy(self):
        assert performance_score(120, 0.0, 30, 40) == 100

    def test_penalties(self):
        assert performance_score(1500, 0.02, 50, 50) == 85
        assert performance_score(2500, 0.2, 90, 90) == 30

    def test_never_negative(self):
        assert performance_score(10000, 1.0, 100, 100) >= 0


class TestRuleRegistry:
    """Tests for rule management."""

    def test_add_and_remove_rule(self):
        monitor = PerformanceMonitor(SequenceProbe([]))
        monitor.add_rule(error_rate_rule())

        assert [r.id for r in monitor.rules()] == ["high-error-rate"]
        assert monitor.alert_state("high-error-rate").triggered is False

        assert monitor.remove_rule("high-error-rate") is True
        assert monitor.rules() == []
        assert monitor.alert_state("high-error-rate") is None
        assert monitor.remove_rule("high-error-rate") is False

    def test_add_rule_from_dict(self):
        monitor = PerformanceMonitor(SequenceProbe([]))

        rule = monitor.add_rule({
            "id": "slow",
            "metric": "response_time",
            "threshold": 2000,
            "operator": ">=",
        })

        assert rule.operator == ComparisonOperator.GTE
        assert rule.describe() == "response_time >= 2000"

    def test_unknown_metric_rejected(self):
        monitor = PerformanceMonitor(SequenceProbe([]))

        with pytest.raises(ConfigurationError, match="Unknown metric"):
            monitor.add_rule(error_rate_rule(metric="queue_depth"))

        assert monitor.rules() == []

    def test_invalid_rule_dict_rejected(self):
        monitor = PerformanceMonitor(SequenceProbe([]))

        with pytest.raises(ConfigurationError):
            monitor.add_rule({"id": "bad", "metric": "error_rate", "operator": "~"})


@pytest.mark.asyncio
class TestAlertEvaluation:
    """Tests for edge-triggered alerting."""

    async def test_alert_stream(self, event_bus, recorder):
        rates = [0.01, 0.02, 0.09, 0.09, 0.01]
        probe = SequenceProbe([make_sample(error_rate=r) for r in rates])
        monitor = PerformanceMonitor(probe, bus=event_bus)
        monitor.add_rule(error_rate_rule())

        transitions = []
        for index in range(len(rates)):
            before = len(recorder.events)
            await monitor.tick()
            for event in recorder.events[before:]:
                if event.type in (EventType.ALERT_TRIGGERED, EventType.ALERT_RESOLVED):
                    transitions.append((index, event.type))

        assert transitions == [
            (2, EventType.ALERT_TRIGGERED),
            (4, EventType.ALERT_RESOLVED),
        ]

        state = monitor.alert_state("high-error-rate")
        assert state.triggered is False
        assert state.trigger_count == 1
        assert state.last_resolved is not None

        history = monitor.alert_history()
        assert [e.kind for e in history] == [AlertEventKind.TRIGGERED, AlertEventKind.RESOLVED]
        assert history[0].value == 0.09

    async def test_refires_after_resolution(self, event_bus, recorder):
        rates = [0.1, 0.0, 0.1]
        probe = SequenceProbe([make_sample(error_rate=r) for r in rates])
        monitor = PerformanceMonitor(probe, bus=event_bus)
        monitor.add_rule(error_rate_rule())

        for _ in rates:
            await monitor.tick()

        assert len(recorder.of_type(EventType.ALERT_TRIGGERED)) == 2
        assert len(recorder.of_type(EventType.ALERT_RESOLVED)) == 1
        assert monitor.alert_state("high-error-rate").trigger_count == 2

    async def test_disabled_rule_ignored(self, event_bus, recorder):
        probe = SequenceProbe([make_sample(error_rate=0.5)])
        monitor = PerformanceMonitor(probe, bus=event_bus)
        monitor.add_rule(error_rate_rule(enabled=False))

        await monitor.tick()

        assert recorder.of_type(EventType.ALERT_TRIGGERED) == []

    async def test_rule_error_isolated(self, event_bus, recorder):
        probe = SequenceProbe([make_sample(error_rate=0.09, throughput=5)])
        monitor = PerformanceMonitor(probe, bus=event_bus)
        monitor.add_rule(error_rate_rule(
            id="low-throughput", metric="throughput", threshold=10, operator=ComparisonOperator.LT,
        ))
        monitor.add_rule(error_rate_rule())

        compare = ComparisonOperator.compare

        def failing_compare(op, value, threshold):
            if op is ComparisonOperator.LT:
                raise ArithmeticError("comparison failed")
            return compare(op, value, threshold)

        with patch.object(ComparisonOperator, "compare", failing_compare):
            sample = await monitor.tick()

        assert sample is not None
        assert monitor.metric_count() == 1

        rule_errors = recorder.of_type(EventType.RULE_ERROR)
        assert len(rule_errors) == 1
        assert rule_errors[0].type.value == "monitor.rule_error"
        assert rule_errors[0].payload["error"] == "comparison failed"
        assert rule_errors[0].payload["details"]["rule_id"] == "low-throughput"

        assert len(recorder.of_type(EventType.ALERT_TRIGGERED)) == 1
        assert monitor.alert_state("high-error-rate").triggered is True

    async def test_notifications_sent_on_trigger(self, event_bus):
        notifier = AsyncMock()
        probe = SequenceProbe([make_sample(error_rate=0.2), make_sample(error_rate=0.0)])
        monitor = PerformanceMonitor(probe, bus=event_bus, notifier=notifier)
        monitor.add_rule(error_rate_rule(notifications=[
            NotificationTarget(type=ChannelType.SLACK, target="#ops"),
            NotificationTarget(type=ChannelType.EMAIL, target="oncall@example.com"),
        ]))

        await monitor.tick()
        await monitor.tick()

        assert notifier.send.await_count == 2
        channels = {call.args[0] for call in notifier.send.await_args_list}
        assert channels == {ChannelType.SLACK, ChannelType.EMAIL}
        assert "ALERT TRIGGERED" in notifier.send.await_args_list[0].args[2]

    async def test_notification_failure_isolated(self, event_bus, recorder):
        notifier = AsyncMock()

        async def send(channel_type, target, message):
            if channel_type == ChannelType.WEBHOOK:
                raise NotificationError("webhook returned 500", channel="webhook", target=target)

        notifier.send.side_effect = send
        probe = SequenceProbe([make_sample(error_rate=0.2)])
        monitor = PerformanceMonitor(probe, bus=event_bus, notifier=notifier)
        monitor.add_rule(error_rate_rule(notifications=[
            NotificationTarget(type=ChannelType.WEBHOOK, target="https://hooks.example.com/a"),
            NotificationTarget(type=ChannelType.SMS, target="+15550100"),
        ]))

        await monitor.tick()

        assert notifier.send.await_count == 2
        assert monitor.alert_state("high-error-rate").triggered is True
        failed = recorder.of_type(EventType.NOTIFICATION_FAILED)
        assert len(failed) == 1
        assert failed[0].payload["details"]["channel"] == "webhook"

    async def test_probe_failure_emits_and_continues(self, event_bus, recorder):
        probe = SequenceProbe([RuntimeError("probe down"), make_sample(response_time=120)])
        monitor = PerformanceMonitor(probe, bus=event_bus)

        assert await monitor.tick() is None
        sample = await monitor.tick()

        assert sample.response_time == 120
        assert monitor.metric_count() == 1
        errors = recorder.of_type(EventType.PROBE_ERROR)
        assert len(errors) == 1
        assert errors[0].payload["error"] == "probe down"

    async def test_probe_error_type_reported(self, failing_probe, event_bus, recorder):
        monitor = PerformanceMonitor(failing_probe, bus=event_bus)

        assert await monitor.tick() is None

        assert monitor.metric_count() == 0
        errors = recorder.of_type(EventType.PROBE_ERROR)
        assert errors[0].payload["details"]["error_type"] == "ProbeError"

    async def test_metrics_event_emitted(self, event_bus, recorder):
        probe = SequenceProbe([make_sample(cpu_usage=42)])
        monitor = PerformanceMonitor(probe, bus=event_bus)

        await monitor.tick()

        collected = recorder.of_type(EventType.METRICS_COLLECTED)
        assert len(collected) == 1
        assert collected[0].payload["metrics"]["cpu_usage"] == 42


@pytest.mark.asyncio
class TestRetention:
    """Tests for the bounded window and retention."""

    async def test_ring_buffer_evicts_oldest(self):
        samples = [make_sample(response_time=i) for i in range(5)]
        monitor = PerformanceMonitor(SequenceProbe(samples), max_metrics=3)

        for _ in samples:
            await monitor.tick()

        assert monitor.metric_count() == 3
        assert [m.response_time for m in monitor.latest(10)] == [2, 3, 4]
        assert [m.response_time for m in monitor.latest(1)] == [4]

    async def test_purge_expired(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        samples = [
            MetricSample(timestamp=now - timedelta(days=40)),
            MetricSample(timestamp=now - timedelta(days=31)),
            MetricSample(timestamp=now - timedelta(days=2)),
        ]
        monitor = PerformanceMonitor(SequenceProbe(samples), retention_days=30, clock=lambda: now)

        for _ in samples:
            await monitor.tick()

        assert monitor.purge_expired() == 2
        assert monitor.metric_count() == 1
        assert monitor.purge_expired() == 0

    async def test_metrics_in_range(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        samples = [MetricSample(timestamp=now - timedelta(minutes=m)) for m in (30, 20, 10)]
        monitor = PerformanceMonitor(SequenceProbe(samples))

        for _ in samples:
            await monitor.tick()

        in_range = monitor.metrics_in_range(now - timedelta(minutes=25), now)
        assert len(in_range) == 2

    async def test_metrics_in_range_with_aware_bounds(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        samples = [MetricSample(timestamp=now - timedelta(minutes=m)) for m in (30, 20, 10)]
        monitor = PerformanceMonitor(SequenceProbe(samples))

        for _ in samples:
            await monitor.tick()

        # 14:00 at UTC+2 is 12:00 UTC
        end = datetime(2026, 3, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        in_range = monitor.metrics_in_range(end - timedelta(minutes=25), end)
        assert len(in_range) == 2

        report = monitor.report(end - timedelta(hours=1), end)
        assert report.sample_count == 3
        assert monitor.alert_history(end - timedelta(hours=1), end) == []


@pytest.mark.asyncio
class TestReport:
    """Tests for performance reports."""

    async def test_report_summary_and_trends(self, event_bus):
        samples = [
            make_sample(minutes_ago=5 - i, response_time=rt, throughput=10, error_rate=0.0,
                        cpu_usage=40, memory_usage=50)
            for i, rt in enumerate([100, 200, 300, 400])
        ]
        monitor = PerformanceMonitor(SequenceProbe(samples), bus=event_bus, interval=5)
        for _ in samples:
            await monitor.tick()

        end = datetime.utcnow() + timedelta(minutes=1)
        report = monitor.report(end - timedelta(hours=1), end)

        assert report.sample_count == 4
        assert report.summary.average_response_time == 250
        assert report.summary.total_requests == 200
        assert report.summary.availability == 1.0
        assert report.summary.performance_score == 100

        trends = {t.metric: t for t in report.trends}
        assert trends["response_time"].trend.direction.value == "increasing"
        assert trends["response_time"].change_percentage == 300
        assert trends["cpu_usage"].trend.direction.value == "stable"

    async def test_report_without_samples(self):
        monitor = PerformanceMonitor(SequenceProbe([]))
        now = datetime.utcnow()

        with pytest.raises(InsufficientDataError):
            monitor.report(now - timedelta(hours=1), now)


@pytest.mark.asyncio
class TestLifecycle:
    """Tests for the periodic sampling loop."""

    async def test_start_and_stop(self, event_bus, recorder):
        probe = SequenceProbe([make_sample() for _ in range(100)])
        monitor = PerformanceMonitor(probe, bus=event_bus, interval=0.01)

        await monitor.start()
        assert monitor.is_running is True
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert monitor.is_running is False
        assert probe.calls >= 1
        assert monitor.metric_count() == probe.calls
        assert recorder.types()[0] == EventType.MONITOR_STARTED.value
        assert recorder.types()[-1] == EventType.MONITOR_STOPPED.value

    async def test_stop_when_not_started(self, event_bus, recorder):
        monitor = PerformanceMonitor(SequenceProbe([]), bus=event_bus)

        await monitor.stop()

        assert recorder.events == []


@pytest.mark.asyncio
class TestLoggingNotificationSink:
    """Tests for the default notification sink."""

    async def test_default_sink_logs(self, event_bus, caplog):
        probe = SequenceProbe([make_sample(error_rate=0.3)])
        monitor = PerformanceMonitor(probe, bus=event_bus)
        monitor.add_rule(error_rate_rule(notifications=[
            NotificationTarget(type=ChannelType.EMAIL, target="oncall@example.com"),
        ]))

        with caplog.at_level("WARNING"):
            await monitor.tick()

        assert monitor.notifier.sent == 1
        assert "Notification via email to oncall@example.com" in caplog.text
