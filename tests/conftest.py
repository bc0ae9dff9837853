"""Pytest configuration and shared fixtures."""

import tempfile
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from common.errors import ProbeError
from common.messaging.events import Event, EventBus
from common.messaging.redis_client import RedisClient
from common.models.load import LoadConfig
from common.models.metrics import AggregateResult, MetricSample
from engine.storage.run_store import RunStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def run_store(temp_dir: Path) -> RunStore:
    """Create a RunStore instance with temporary directory."""
    return RunStore(temp_dir)


@pytest.fixture
def mock_redis_client() -> MagicMock:
    """Create a mock Redis client."""
    mock = MagicMock(spec=RedisClient)
    mock.publish = AsyncMock(return_value=1)
    mock.publish_event = AsyncMock(return_value=1)
    mock.forward = AsyncMock()
    mock.connect = AsyncMock()
    mock.disconnect = AsyncMock()
    mock.set = AsyncMock()
    mock.get = AsyncMock(return_value=None)
    return mock


class EventRecorder:
    """Collects every event emitted on a bus."""

    def __init__(self):
        self.events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]

    def of_type(self, event_type) -> list[Event]:
        value = getattr(event_type, "value", event_type)
        return [e for e in self.events if e.type.value == value]


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    """Recorder subscribed to all events on the shared bus."""
    rec = EventRecorder()
    event_bus.subscribe(rec)
    return rec


class SequenceProbe:
    """Probe returning scripted samples; an exception entry is raised."""

    def __init__(self, samples: list):
        self._samples = list(samples)
        self.calls = 0

    async def sample(self) -> MetricSample:
        self.calls += 1
        item = self._samples.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedExecutor:
    """LoadExecutor returning one scripted step per call.

    Each step is a dict of AggregateResult overrides or an exception to raise.
    """

    def __init__(self, steps: list, on_execute=None):
        self._steps = list(steps)
        self.configs: list[LoadConfig] = []
        self.on_execute = on_execute

    async def execute(self, config: LoadConfig) -> AggregateResult:
        self.configs.append(config)
        if self.on_execute is not None:
            await self.on_execute(config)

        step = self._steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return make_result(config.max_users, **step)


def make_result(
    users: int,
    response_time: float = 100.0,
    throughput: float = 100.0,
    error_rate: float = 0.0,
    cpu: Optional[float] = None,
    memory: Optional[float] = None,
) -> AggregateResult:
    """Build an AggregateResult for one step with optional resource samples."""
    start = datetime.utcnow()
    metrics = []
    if cpu is not None or memory is not None:
        metrics = [
            MetricSample(
                timestamp=start + timedelta(seconds=i),
                response_time=response_time,
                throughput=throughput,
                error_rate=error_rate,
                cpu_usage=cpu or 0,
                memory_usage=memory or 0,
                concurrent_users=users,
            )
            for i in range(3)
        ]

    total = int(throughput * 60)
    failed = int(total * error_rate)
    return AggregateResult(
        start_time=start,
        end_time=start + timedelta(seconds=60),
        concurrent_users=users,
        total_requests=total,
        successful_requests=total - failed,
        failed_requests=failed,
        average_response_time=response_time,
        p95_response_time=response_time * 1.5,
        p99_response_time=response_time * 2,
        min_response_time=response_time / 2,
        max_response_time=response_time * 3,
        throughput=throughput,
        error_rate=error_rate,
        metrics=metrics,
    )


def make_sample(minutes_ago: float = 0, **fields) -> MetricSample:
    """MetricSample stamped relative to now."""
    return MetricSample(timestamp=datetime.utcnow() - timedelta(minutes=minutes_ago), **fields)


@pytest.fixture
def failing_probe() -> SequenceProbe:
    return SequenceProbe([ProbeError("probe down", source="test")])
