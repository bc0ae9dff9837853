"""Performance report models."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, Field

from common.models.alerts import AlertEvent
from common.models.capacity import TrendData


class TimeRange(BaseModel):
    start: datetime
    end: datetime


class ReportSummary(BaseModel):
    """Aggregate figures over a report window."""
    average_response_time: float = 0
    p95_response_time: float = 0
    average_throughput: float = 0
    total_requests: int = 0
    error_rate: float = 0
    availability: float = Field(default=1.0, description="1 - mean error rate")
    performance_score: float = Field(default=100.0, ge=0, le=100)


class MetricTrend(BaseModel):
    """Trend of one metric over a report window."""
    metric: str
    trend: TrendData
    change_percentage: float = 0


class PerformanceReport(BaseModel):
    """Monitoring report for a time range."""
    id: str
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    time_range: TimeRange
    sample_count: int = 0
    summary: ReportSummary = Field(default_factory=ReportSummary)
    trends: list[MetricTrend] = Field(default_factory=list)
    alerts: list[AlertEvent] = Field(default_factory=list)
