"""Capacity planning, cost analysis and allocation optimization."""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from common.errors import ConfigurationError, InsufficientDataError
from common.messaging.events import Event, EventBus, EventType
from common.models.capacity import (
    CapacityAction,
    CapacityPlan,
    CapacityRecommendation,
    CostAnalysis,
    CostBreakdownItem,
    ImplementationStep,
    MonitoringStep,
    OptimizationConstraints,
    OptimizationResult,
    ResourceAllocation,
    ResourceCapacity,
    ResourceForecast,
    ResourceOptimization,
    RiskLevel,
    TargetMetrics,
    TrendDirection,
    UtilizationTrends,
)
from common.models.metrics import MetricSample, clamp
from common.utils import ceil_units, generate_plan_id, mean
from engine.config import InventoryBaseline, ResourcePricing
from engine.core.trends import TrendAnalyzer

logger = logging.getLogger(__name__)

# Resources carrying a ResourceAllocation, in breakdown order
ALLOCATED_RESOURCES = ("cpu", "memory", "storage", "network")

BREAKDOWN_CATEGORIES = {
    "cpu": "Compute (CPU)",
    "memory": "Memory",
    "storage": "Storage",
    "network": "Network",
    "instances": "Instances",
}

UNITS = {
    "cpu": "vCPU",
    "memory": "GB",
    "storage": "GB",
    "network": "Mbps",
}


class CapacityPlanner:
    """Projects capacity under growth and prices the result.

    Metric history is fed through add_metrics and capped to the last
    history_days. Every plan, optimization and forecast is computed fresh
    from the inventory baseline and that history.
    """

    def __init__(
        self,
        pricing: Optional[ResourcePricing] = None,
        inventory: Optional[InventoryBaseline] = None,
        bus: Optional[EventBus] = None,
        history_days: int = 30,
        min_trend_samples: int = 10,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.pricing = pricing or ResourcePricing()
        self.inventory = inventory or InventoryBaseline()
        self.bus = bus or EventBus()
        self.history_days = history_days
        self.min_trend_samples = min_trend_samples
        self.clock = clock
        self.trend_analyzer = TrendAnalyzer()

        self._lock = threading.Lock()
        self._history: list[MetricSample] = []

    # History

    def add_metrics(self, samples: Iterable[MetricSample]) -> int:
        """Append samples to the history. Returns the retained history size."""
        cutoff = self.clock() - timedelta(days=self.history_days)
        with self._lock:
            self._history.extend(samples)
            self._history = [m for m in self._history if m.timestamp >= cutoff]
            return len(self._history)

    def history(self) -> list[MetricSample]:
        with self._lock:
            return list(self._history)

    def history_size(self) -> int:
        with self._lock:
            return len(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    # Capacity

    def _average(self, history: list[MetricSample], metric: str, default: float) -> float:
        if not history:
            return default
        return clamp(mean([m.value_of(metric) for m in history]), 0.0, 100.0)

    def current_capacity(self) -> ResourceCapacity:
        """Inventory baseline with utilization from the metric history."""
        history = self.history()
        inv = self.inventory
        default = inv.default_utilization

        return ResourceCapacity(
            cpu=ResourceAllocation(
                current=inv.cpu_current,
                maximum=inv.cpu_maximum,
                utilization=self._average(history, "cpu_usage", default),
                unit=UNITS["cpu"],
            ),
            memory=ResourceAllocation(
                current=inv.memory_current,
                maximum=inv.memory_maximum,
                utilization=self._average(history, "memory_usage", default),
                unit=UNITS["memory"],
            ),
            storage=ResourceAllocation(
                current=inv.storage_current,
                maximum=inv.storage_maximum,
                utilization=self._average(history, "disk_usage", inv.default_storage_utilization),
                unit=UNITS["storage"],
            ),
            network=ResourceAllocation(
                current=inv.network_current,
                maximum=inv.network_maximum,
                utilization=self._average(history, "network_latency", default),
                unit=UNITS["network"],
            ),
            instances=inv.instances,
        )

    @staticmethod
    def project(current: ResourceCapacity, growth_rate: float) -> ResourceCapacity:
        """Grow every resource by growth_rate, capping utilization at 100%."""
        if not math.isfinite(growth_rate) or growth_rate <= -1:
            raise ConfigurationError(f"Growth rate must be a finite number greater than -1 (got {growth_rate})")

        multiplier = 1 + growth_rate
        allocations = {}
        for resource in ALLOCATED_RESOURCES:
            allocation: ResourceAllocation = getattr(current, resource)
            amount = allocation.current * multiplier
            if not math.isfinite(amount):
                raise ConfigurationError(f"Growth rate {growth_rate} overflows projected {resource} capacity")
            allocations[resource] = allocation.model_copy(update={
                "current": ceil_units(amount),
                "utilization": min(100.0, allocation.utilization * multiplier),
            })

        instances = current.instances * multiplier
        if not math.isfinite(instances):
            raise ConfigurationError(f"Growth rate {growth_rate} overflows projected instance count")

        return ResourceCapacity(
            instances=ceil_units(instances),
            **allocations,
        )

    # Planning

    async def plan(self, timeframe: str, growth_rate: float = 0.2) -> CapacityPlan:
        """Generate a capacity plan for the timeframe under the growth assumption."""
        current = self.current_capacity()
        projected = self.project(current, growth_rate)
        try:
            recommendations = self.recommend(current, projected)
            cost_analysis = self.analyze_costs(current, projected, recommendations)
        except OverflowError as e:
            raise ConfigurationError(f"Growth rate {growth_rate} is too large to plan for") from e

        plan = CapacityPlan(
            id=generate_plan_id(),
            timeframe=timeframe,
            growth_rate=growth_rate,
            generated_at=self.clock(),
            current_capacity=current,
            projected_capacity=projected,
            recommendations=recommendations,
            cost_analysis=cost_analysis,
        )

        logger.info(
            f"Capacity plan {plan.id} for {timeframe} at {growth_rate:.0%} growth: "
            f"{len(recommendations)} recommendations, projected "
            f"${cost_analysis.projected_monthly_cost:,.2f}/month"
        )
        await self.bus.emit(Event(
            type=EventType.CAPACITY_PLAN_GENERATED,
            source="capacity",
            payload={
                "plan_id": plan.id,
                "timeframe": timeframe,
                "growth_rate": growth_rate,
                "recommendations": len(recommendations),
                "projected_monthly_cost": cost_analysis.projected_monthly_cost,
            },
        ))
        return plan

    def recommend(
        self,
        current: ResourceCapacity,
        projected: ResourceCapacity,
    ) -> list[CapacityRecommendation]:
        """Increase recommendations evaluated against the projected capacity."""
        recommendations = []

        if projected.cpu.utilization > 80:
            recommendations.append(CapacityRecommendation(
                resource="cpu",
                action=CapacityAction.INCREASE,
                current_value=current.cpu.current,
                recommended_value=ceil_units(projected.cpu.current * 1.25),
                reasoning="Projected CPU utilization exceeds 80%",
                cost=self.cost_of("cpu", ceil_units(projected.cpu.current * 0.25)),
            ))

        if projected.memory.utilization > 85:
            recommendations.append(CapacityRecommendation(
                resource="memory",
                action=CapacityAction.INCREASE,
                current_value=current.memory.current,
                recommended_value=ceil_units(projected.memory.current * 1.2),
                reasoning="Projected memory utilization exceeds 85%",
                cost=self.cost_of("memory", ceil_units(projected.memory.current * 0.2)),
            ))

        if projected.storage.utilization > 90:
            recommendations.append(CapacityRecommendation(
                resource="storage",
                action=CapacityAction.INCREASE,
                current_value=current.storage.current,
                recommended_value=ceil_units(projected.storage.current * 1.5),
                reasoning="Projected storage utilization exceeds 90%",
                timeline="Next 60 days",
                cost=self.cost_of("storage", ceil_units(projected.storage.current * 0.5)),
            ))

        if (projected.cpu.utilization + projected.memory.utilization) / 2 > 75:
            recommendations.append(CapacityRecommendation(
                resource="instances",
                action=CapacityAction.INCREASE,
                current_value=current.instances,
                recommended_value=current.instances + 1,
                reasoning="Average resource utilization projected to exceed 75%",
                cost=self.cost_of("instances", 1),
            ))

        return recommendations

    # Costs

    def cost_of(self, resource: str, amount: float) -> float:
        """Monthly cost of an amount of a resource."""
        return self.pricing.price_of(resource) * amount

    def _quantities(self, capacity: ResourceCapacity) -> dict[str, float]:
        quantities = {r: getattr(capacity, r).current for r in ALLOCATED_RESOURCES}
        quantities["instances"] = capacity.instances
        return quantities

    def total_cost(self, capacity: ResourceCapacity) -> float:
        return sum(self.cost_of(r, q) for r, q in self._quantities(capacity).items())

    @staticmethod
    def apply_increases(
        projected: ResourceCapacity,
        recommendations: list[CapacityRecommendation],
    ) -> ResourceCapacity:
        """Copy of the projection with every increase recommendation applied."""
        optimized = projected.model_copy(deep=True)
        for rec in recommendations:
            if rec.action != CapacityAction.INCREASE:
                continue
            if rec.resource == "instances":
                optimized.instances = int(rec.recommended_value)
            elif rec.resource in ALLOCATED_RESOURCES:
                getattr(optimized, rec.resource).current = rec.recommended_value
        return optimized

    def analyze_costs(
        self,
        current: ResourceCapacity,
        projected: ResourceCapacity,
        recommendations: list[CapacityRecommendation],
    ) -> CostAnalysis:
        optimized = self.apply_increases(projected, recommendations)

        current_q = self._quantities(current)
        projected_q = self._quantities(projected)
        optimized_q = self._quantities(optimized)

        breakdown = [
            CostBreakdownItem(
                category=category,
                current=self.cost_of(resource, current_q[resource]),
                projected=self.cost_of(resource, projected_q[resource]),
                optimized=self.cost_of(resource, optimized_q[resource]),
            )
            for resource, category in BREAKDOWN_CATEGORIES.items()
        ]

        # Totals come from the breakdown so the categories always add up
        current_cost = sum(item.current for item in breakdown)
        projected_cost = sum(item.projected for item in breakdown)
        optimized_cost = sum(item.optimized for item in breakdown)

        return CostAnalysis(
            current_monthly_cost=current_cost,
            projected_monthly_cost=projected_cost,
            optimized_monthly_cost=optimized_cost,
            potential_savings=max(0.0, projected_cost - optimized_cost),
            cost_breakdown=breakdown,
        )

    # Trends

    def _require_history(self, purpose: str) -> list[MetricSample]:
        history = self.history()
        if len(history) < self.min_trend_samples:
            raise InsufficientDataError(
                f"Insufficient historical data for {purpose}: {len(history)} samples, "
                f"need at least {self.min_trend_samples}"
            )
        return history

    def analyze_utilization_trends(self) -> UtilizationTrends:
        history = self._require_history("trend analysis")

        def trend(metric: str):
            return self.trend_analyzer.analyze([m.value_of(metric) for m in history])

        return UtilizationTrends(
            cpu=trend("cpu_usage"),
            memory=trend("memory_usage"),
            network=trend("network_latency"),
            throughput=trend("throughput"),
            response_time=trend("response_time"),
        )

    # Optimization

    def optimize(self, constraints: Optional[OptimizationConstraints] = None) -> OptimizationResult:
        """Right-size allocations from historical utilization."""
        constraints = constraints or OptimizationConstraints()
        trends = self.analyze_utilization_trends()
        current = self.current_capacity()

        cpu_avg = trends.cpu.average_utilization
        memory_avg = trends.memory.average_utilization
        candidates = []

        if cpu_avg < 30:
            candidates.append(ResourceOptimization(
                resource="cpu",
                current_allocation=current.cpu.current,
                recommended_allocation=current.cpu.current * 0.7,
                expected_savings=self.cost_of("cpu", current.cpu.current * 0.3),
                risk_level=RiskLevel.LOW,
                reasoning=f"CPU utilization consistently below 30% (average {cpu_avg:.1f}%)",
            ))
        elif cpu_avg > 80:
            candidates.append(ResourceOptimization(
                resource="cpu",
                current_allocation=current.cpu.current,
                recommended_allocation=current.cpu.current * 1.5,
                expected_savings=-self.cost_of("cpu", current.cpu.current * 0.5),
                risk_level=RiskLevel.MEDIUM,
                reasoning=f"CPU utilization consistently above 80% (average {cpu_avg:.1f}%)",
            ))

        if memory_avg < 40:
            candidates.append(ResourceOptimization(
                resource="memory",
                current_allocation=current.memory.current,
                recommended_allocation=current.memory.current * 0.8,
                expected_savings=self.cost_of("memory", current.memory.current * 0.2),
                risk_level=RiskLevel.LOW,
                reasoning=f"Memory utilization consistently below 40% (average {memory_avg:.1f}%)",
            ))

        overall = (cpu_avg + memory_avg) / 2
        if overall < 50 and current.instances > 2:
            recommended = max(2, ceil_units(current.instances * 0.8))
            candidates.append(ResourceOptimization(
                resource="instances",
                current_allocation=current.instances,
                recommended_allocation=recommended,
                expected_savings=self.cost_of("instances", current.instances - recommended),
                risk_level=RiskLevel.MEDIUM,
                reasoning=f"Overall resource utilization below 50% (average {overall:.1f}%)",
            ))

        optimizations = [o for o in candidates if self._allowed(o, constraints)]

        return OptimizationResult(
            optimizations=optimizations,
            total_savings=sum(o.expected_savings for o in optimizations),
            implementation_plan=self._implementation_plan(optimizations),
            monitoring_plan=self._monitoring_plan(optimizations),
        )

    @staticmethod
    def _allowed(optimization: ResourceOptimization, constraints: OptimizationConstraints) -> bool:
        scale_down = optimization.recommended_allocation < optimization.current_allocation
        if scale_down:
            return constraints.allow_downscaling
        if constraints.max_cost_increase is not None:
            return -optimization.expected_savings <= constraints.max_cost_increase
        return True

    @staticmethod
    def _implementation_plan(optimizations: list[ResourceOptimization]) -> list[ImplementationStep]:
        steps = []
        for index, opt in enumerate(optimizations, start=1):
            verb = "Scale" if opt.resource == "instances" else "Resize"
            steps.append(ImplementationStep(
                step=index,
                description=(
                    f"{verb} {opt.resource} from {opt.current_allocation:g} "
                    f"to {opt.recommended_allocation:g}"
                ),
                estimated_duration="15 minutes" if opt.resource == "instances" else "30 minutes",
                risk_level=opt.risk_level,
                rollback_plan=f"Revert {opt.resource} to {opt.current_allocation:g}",
            ))
        return steps

    @staticmethod
    def _monitoring_plan(optimizations: list[ResourceOptimization]) -> list[MonitoringStep]:
        steps = []
        for opt in optimizations:
            if opt.resource == "cpu":
                metric, threshold = "cpu_usage", 80.0
            elif opt.resource == "memory":
                metric, threshold = "memory_usage", 85.0
            else:
                metric, threshold = "instance_count", opt.recommended_allocation * 0.9
            steps.append(MonitoringStep(
                metric=metric,
                threshold=threshold,
                duration="24 hours",
                action="Alert if threshold exceeded for more than 10 minutes",
            ))
        return steps

    # Forecast

    def forecast(self, targets: Optional[TargetMetrics] = None, timeframe: str = "30 days") -> ResourceForecast:
        """Capacity needed to keep utilization within the target maxima."""
        targets = targets or TargetMetrics()
        trends = self.analyze_utilization_trends()
        current = self.current_capacity()

        # Demand relative to the target; above 1 means more capacity is needed
        cpu_factor = trends.cpu.average_utilization / targets.max_cpu_utilization
        memory_factor = trends.memory.average_utilization / targets.max_memory_utilization

        required = ResourceCapacity(
            cpu=current.cpu.model_copy(update={
                "current": max(1, ceil_units(current.cpu.current * cpu_factor)),
            }),
            memory=current.memory.model_copy(update={
                "current": max(1, ceil_units(current.memory.current * memory_factor)),
            }),
            storage=current.storage,
            network=current.network,
            instances=max(1, ceil_units(current.instances * max(cpu_factor, memory_factor))),
        )

        return ResourceForecast(
            timeframe=timeframe,
            target_metrics=targets,
            required_capacity=required,
            confidence_level=self._confidence_level(self.history_size()),
            assumptions=[
                "Current usage patterns will continue",
                "No major architectural changes",
                "Growth rate remains consistent",
                f"CPU trend: {trends.cpu.direction.value}",
                f"Memory trend: {trends.memory.direction.value}",
            ],
            risks=self._risks(trends),
        )

    @staticmethod
    def _confidence_level(samples: int) -> float:
        if samples < 100:
            return 0.6
        if samples < 500:
            return 0.75
        if samples < 1000:
            return 0.85
        return 0.95

    @staticmethod
    def _risks(trends: UtilizationTrends) -> list[str]:
        risks = []
        if trends.cpu.volatility > 20:
            risks.append("High CPU usage volatility may cause unpredictable scaling needs")
        if trends.memory.volatility > 15:
            risks.append("High memory usage volatility may lead to out-of-memory errors")
        if trends.cpu.direction == TrendDirection.INCREASING and trends.cpu.change_rate > 1:
            risks.append("Rapidly increasing CPU usage may require immediate scaling")
        return risks
