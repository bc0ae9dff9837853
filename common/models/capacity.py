"""Capacity planning, cost and trend models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class TrendDirection(str, Enum):
    """Direction of a metric series."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RiskLevel(str, Enum):
    """Risk of applying an optimization."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrendData(BaseModel):
    """Derived trend statistics for one metric series."""
    average_utilization: float = 0
    direction: TrendDirection = TrendDirection.STABLE
    change_rate: float = Field(default=0, description="Least-squares slope per sample")
    volatility: float = Field(default=0, description="Population standard deviation")


class UtilizationTrends(BaseModel):
    """Trends of the planner's tracked metrics."""
    cpu: TrendData
    memory: TrendData
    network: TrendData
    throughput: TrendData
    response_time: TrendData


class ResourceAllocation(BaseModel):
    """Capacity of a single resource."""
    current: float = Field(..., ge=0)
    maximum: float = Field(..., ge=0)
    utilization: float = Field(default=0, ge=0, le=100, description="Utilization percent")
    unit: str = ""


class ResourceCapacity(BaseModel):
    """Capacity of all tracked resources plus the instance count."""
    cpu: ResourceAllocation
    memory: ResourceAllocation
    storage: ResourceAllocation
    network: ResourceAllocation
    instances: int = Field(default=1, ge=0)


class CapacityAction(str, Enum):
    """Recommended capacity change."""
    INCREASE = "increase"
    DECREASE = "decrease"
    MAINTAIN = "maintain"


class CapacityRecommendation(BaseModel):
    """Recommended change for one resource."""
    resource: str
    action: CapacityAction = CapacityAction.INCREASE
    current_value: float
    recommended_value: float
    reasoning: str
    timeline: str = "Next 30 days"
    cost: float = Field(default=0, description="Estimated monthly cost delta")


class CostBreakdownItem(BaseModel):
    """Monthly cost of one category under each scenario."""
    category: str
    current: float
    projected: float
    optimized: float


class CostAnalysis(BaseModel):
    """Monthly cost comparison of current, projected and optimized capacity."""
    current_monthly_cost: float
    projected_monthly_cost: float
    optimized_monthly_cost: float
    potential_savings: float
    cost_breakdown: list[CostBreakdownItem] = Field(default_factory=list)


class CapacityPlan(BaseModel):
    """Immutable capacity plan snapshot."""
    id: str
    timeframe: str
    growth_rate: float
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    current_capacity: ResourceCapacity
    projected_capacity: ResourceCapacity
    recommendations: list[CapacityRecommendation] = Field(default_factory=list)
    cost_analysis: CostAnalysis


class OptimizationConstraints(BaseModel):
    """Limits applied to allocation optimization."""
    max_cost_increase: Optional[float] = Field(
        default=None,
        ge=0,
        description="Largest accepted monthly cost increase per scale-up",
    )
    allow_downscaling: bool = True


class ResourceOptimization(BaseModel):
    """Allocation change proposed by the optimizer."""
    resource: str
    current_allocation: float
    recommended_allocation: float
    expected_savings: float
    risk_level: RiskLevel
    reasoning: str


class ImplementationStep(BaseModel):
    step: int
    description: str
    estimated_duration: str
    risk_level: RiskLevel
    rollback_plan: str


class MonitoringStep(BaseModel):
    metric: str
    threshold: float
    duration: str
    action: str


class OptimizationResult(BaseModel):
    """Output of an allocation optimization pass."""
    optimizations: list[ResourceOptimization] = Field(default_factory=list)
    total_savings: float = 0
    implementation_plan: list[ImplementationStep] = Field(default_factory=list)
    monitoring_plan: list[MonitoringStep] = Field(default_factory=list)


class TargetMetrics(BaseModel):
    """Utilization and latency targets for a forecast."""
    max_cpu_utilization: float = Field(default=70, gt=0, le=100)
    max_memory_utilization: float = Field(default=75, gt=0, le=100)
    max_response_time: float = Field(default=1000, gt=0)
    min_throughput: float = Field(default=0, ge=0)


class ResourceForecast(BaseModel):
    """Capacity needed to meet target metrics."""
    timeframe: str
    target_metrics: TargetMetrics
    required_capacity: ResourceCapacity
    confidence_level: float
    assumptions: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
