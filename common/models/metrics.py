"""Metric sample and load step result models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Numeric MetricSample fields that alert rules and trend reports may target
METRIC_FIELDS = (
    "response_time",
    "throughput",
    "error_rate",
    "cpu_usage",
    "memory_usage",
    "disk_usage",
    "network_latency",
    "concurrent_users",
)


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a value into [lower, upper]."""
    return max(lower, min(upper, value))


class MetricSample(BaseModel):
    """Single point-in-time performance sample."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.utcnow)

    # Request performance
    response_time: float = Field(default=0, ge=0, description="Response time in ms")
    throughput: float = Field(default=0, ge=0, description="Requests per second")
    error_rate: float = Field(default=0, description="Failed request fraction (0-1)")

    # Resource utilization (percent)
    cpu_usage: float = Field(default=0)
    memory_usage: float = Field(default=0)
    disk_usage: float = Field(default=0)

    network_latency: float = Field(default=0, ge=0, description="Network latency in ms")
    concurrent_users: int = Field(default=0, ge=0)

    @field_validator("error_rate")
    @classmethod
    def _clamp_error_rate(cls, value: float) -> float:
        return clamp(value, 0.0, 1.0)

    @field_validator("cpu_usage", "memory_usage", "disk_usage")
    @classmethod
    def _clamp_utilization(cls, value: float) -> float:
        return clamp(value, 0.0, 100.0)

    def value_of(self, metric: str) -> float:
        """Return the numeric value of a metric field by name."""
        if metric not in METRIC_FIELDS:
            raise KeyError(f"Unknown metric: {metric}")
        return float(getattr(self, metric))

    def to_jsonl(self) -> dict:
        """Convert to JSON Lines format (compact)."""
        return {
            "ts": self.timestamp.isoformat(),
            "rt_ms": round(self.response_time, 2),
            "rps": round(self.throughput, 2),
            "err": round(self.error_rate, 4),
            "cpu": round(self.cpu_usage, 1),
            "mem": round(self.memory_usage, 1),
            "disk": round(self.disk_usage, 1),
            "net_ms": round(self.network_latency, 2),
            "users": self.concurrent_users,
        }


class AggregateResult(BaseModel):
    """Summary of one load step at a fixed concurrency level."""
    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime
    concurrent_users: int = Field(default=0, ge=0)

    # Request counts
    total_requests: int = Field(default=0, ge=0)
    successful_requests: int = Field(default=0, ge=0)
    failed_requests: int = Field(default=0, ge=0)

    # Response time statistics in ms
    average_response_time: float = Field(default=0, ge=0)
    p95_response_time: float = Field(default=0, ge=0)
    p99_response_time: float = Field(default=0, ge=0)
    min_response_time: float = Field(default=0, ge=0)
    max_response_time: float = Field(default=0, ge=0)

    throughput: float = Field(default=0, ge=0, description="Requests per second")
    error_rate: float = Field(default=0)

    metrics: list[MetricSample] = Field(default_factory=list)

    @field_validator("error_rate")
    @classmethod
    def _clamp_error_rate(cls, value: float) -> float:
        return clamp(value, 0.0, 1.0)

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the step."""
        return (self.end_time - self.start_time).total_seconds()

    def average_of(self, metric: str) -> Optional[float]:
        """Average a sample metric over this step, None without samples."""
        if not self.metrics:
            return None
        return sum(m.value_of(metric) for m in self.metrics) / len(self.metrics)

    def to_jsonl(self) -> dict:
        """Convert to JSON Lines format (compact)."""
        return {
            "ts": self.end_time.isoformat(),
            "users": self.concurrent_users,
            "requests": {
                "t": self.total_requests,
                "ok": self.successful_requests,
                "fail": self.failed_requests,
            },
            "rt_ms": {
                "avg": round(self.average_response_time, 2),
                "p95": round(self.p95_response_time, 2),
                "p99": round(self.p99_response_time, 2),
            },
            "rps": round(self.throughput, 2),
            "err": round(self.error_rate, 4),
        }
