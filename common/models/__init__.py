"""Common data models for the Performance & Capacity Engine."""

from common.models.metrics import MetricSample, AggregateResult, METRIC_FIELDS
from common.models.load import LoadConfig, RequestScenario, RequestSpec, HttpMethod
from common.models.scalability import (
    ScalabilityConfig,
    ScalabilityRun,
    ScalabilityRecommendation,
    BreakingPoint,
    RunStatus,
    StopReason,
    Priority,
)
from common.models.alerts import (
    AlertRule,
    AlertState,
    AlertEvent,
    AlertEventKind,
    ComparisonOperator,
    Severity,
    ChannelType,
    NotificationTarget,
)
from common.models.capacity import (
    TrendData,
    TrendDirection,
    ResourceAllocation,
    ResourceCapacity,
    CapacityPlan,
    CapacityRecommendation,
    CostAnalysis,
    OptimizationConstraints,
    OptimizationResult,
)
from common.models.reports import PerformanceReport, ReportSummary, MetricTrend

__all__ = [
    "MetricSample",
    "AggregateResult",
    "METRIC_FIELDS",
    "LoadConfig",
    "RequestScenario",
    "RequestSpec",
    "HttpMethod",
    "ScalabilityConfig",
    "ScalabilityRun",
    "ScalabilityRecommendation",
    "BreakingPoint",
    "RunStatus",
    "StopReason",
    "Priority",
    "AlertRule",
    "AlertState",
    "AlertEvent",
    "AlertEventKind",
    "ComparisonOperator",
    "Severity",
    "ChannelType",
    "NotificationTarget",
    "TrendData",
    "TrendDirection",
    "ResourceAllocation",
    "ResourceCapacity",
    "CapacityPlan",
    "CapacityRecommendation",
    "CostAnalysis",
    "OptimizationConstraints",
    "OptimizationResult",
    "PerformanceReport",
    "ReportSummary",
    "MetricTrend",
]
