"""Scalability run endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException

from common.models.scalability import RunStatus, ScalabilityConfig, ScalabilityRun
from engine.dependencies import get_orchestrator, get_planner, get_run_store

logger = logging.getLogger(__name__)

router = APIRouter()


async def execute_and_store(run: ScalabilityRun) -> None:
    """Background task: drive the run, then persist it and feed the planner."""
    orchestrator = get_orchestrator()
    await orchestrator.execute(run)

    samples = [m for result in run.results for m in result.metrics]
    if samples:
        get_planner().add_metrics(samples)

    await get_run_store().save_run(run)
    orchestrator.forget(run.id)


async def find_run(run_id: str) -> ScalabilityRun:
    run = get_orchestrator().get_run(run_id)
    if run is None:
        run = await get_run_store().get_run(run_id)
    if run is None:
        raise HTTPException(
            status_code=404,
            detail=f"Run '{run_id}' not found"
        )
    return run


@router.get("/")
async def list_runs(limit: int = 50, status: Optional[RunStatus] = None):
    """List active runs followed by stored runs."""
    active = [
        run.summary() for run in get_orchestrator().list_runs()
        if run.is_running and (status is None or run.status == status)
    ]
    stored = await get_run_store().list_runs(
        limit=limit,
        status=status.value if status else None,
    )
    runs = (active + stored)[:limit]

    return {
        "runs": runs,
        "total": len(runs),
    }


@router.post("/")
async def start_run(config: ScalabilityConfig, background_tasks: BackgroundTasks):
    """Validate a config and start the run in the background."""
    run = get_orchestrator().create_run(config)
    background_tasks.add_task(execute_and_store, run)

    return {
        "message": "Run started",
        "run_id": run.id,
        "name": config.name,
        "levels": config.concurrency_levels(),
        "status": run.status.value,
    }


@router.get("/{run_id}")
async def get_run(run_id: str):
    """Get a run with its results, breaking point and recommendations."""
    run = await find_run(run_id)
    return run.model_dump(mode="json")


@router.get("/{run_id}/steps")
async def get_run_steps(run_id: str):
    """Compact per-step records of a run."""
    run = await find_run(run_id)
    if run.is_running:
        steps = [result.to_jsonl() for result in run.results]
    else:
        steps = get_run_store().read_steps(run_id)

    return {
        "run_id": run_id,
        "steps": steps,
        "total": len(steps),
    }


@router.post("/{run_id}/stop")
async def stop_run(run_id: str):
    """Stop a run before its next step."""
    run = await find_run(run_id)
    if not run.is_running:
        raise HTTPException(
            status_code=400,
            detail=f"Run is not running (status: {run.status.value})"
        )

    await get_orchestrator().stop(run_id)

    return {
        "message": "Stop signal sent",
        "run_id": run_id,
    }


@router.delete("/{run_id}")
async def delete_run(run_id: str):
    """Delete a finished run from history."""
    run = await find_run(run_id)
    if run.is_running:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a running run"
        )

    await get_run_store().delete_run(run_id)
    get_orchestrator().forget(run_id)

    return {
        "message": "Run deleted",
        "run_id": run_id,
    }
