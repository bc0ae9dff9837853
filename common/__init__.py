"""Common models, events and utilities shared across the engine and CLI."""

from common.models.metrics import MetricSample, AggregateResult
from common.models.scalability import ScalabilityConfig, ScalabilityRun, RunStatus
from common.models.alerts import AlertRule, AlertState
from common.models.capacity import CapacityPlan, ResourceCapacity, TrendData
from common.errors import (
    PerfCapError,
    ConfigurationError,
    ProbeError,
    NotificationError,
    InsufficientDataError,
)

__all__ = [
    "MetricSample",
    "AggregateResult",
    "ScalabilityConfig",
    "ScalabilityRun",
    "RunStatus",
    "AlertRule",
    "AlertState",
    "CapacityPlan",
    "ResourceCapacity",
    "TrendData",
    "PerfCapError",
    "ConfigurationError",
    "ProbeError",
    "NotificationError",
    "InsufficientDataError",
]
