"""Capacity planning endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from common.models.capacity import OptimizationConstraints, TargetMetrics
from common.models.metrics import MetricSample
from engine.dependencies import get_planner, get_run_store

router = APIRouter()


class PlanRequest(BaseModel):
    """Request model for generating a capacity plan."""
    timeframe: str = "3 months"
    growth_rate: float = Field(default=0.2, description="Expected growth, e.g. 0.2 for 20%")


class ForecastRequest(BaseModel):
    """Request model for a resource forecast."""
    timeframe: str = "30 days"
    targets: TargetMetrics = Field(default_factory=TargetMetrics)


@router.get("/current")
async def get_current_capacity():
    planner = get_planner()
    return {
        "capacity": planner.current_capacity().model_dump(mode="json"),
        "history_size": planner.history_size(),
    }


@router.post("/metrics")
async def add_metrics(samples: list[MetricSample]):
    """Feed samples into the planner's history."""
    size = get_planner().add_metrics(samples)
    return {
        "message": f"Added {len(samples)} samples",
        "history_size": size,
    }


@router.post("/plans")
async def create_plan(request: PlanRequest):
    """Generate and store a capacity plan."""
    plan = await get_planner().plan(request.timeframe, request.growth_rate)
    await get_run_store().save_plan(plan)
    return plan.model_dump(mode="json")


@router.get("/plans")
async def list_plans(limit: int = 50):
    plans = await get_run_store().list_plans(limit=limit)
    return {
        "plans": plans,
        "total": len(plans),
    }


@router.get("/plans/{plan_id}")
async def get_plan(plan_id: str):
    plan = await get_run_store().get_plan(plan_id)
    if plan is None:
        raise HTTPException(
            status_code=404,
            detail=f"Plan '{plan_id}' not found"
        )
    return plan.model_dump(mode="json")


@router.get("/trends")
async def get_trends():
    return get_planner().analyze_utilization_trends().model_dump(mode="json")


@router.post("/optimize")
async def optimize(constraints: Optional[OptimizationConstraints] = None):
    result = get_planner().optimize(constraints)
    return result.model_dump(mode="json")


@router.post("/forecast")
async def forecast(request: ForecastRequest):
    result = get_planner().forecast(request.targets, request.timeframe)
    return result.model_dump(mode="json")
