"""Performance monitor endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Body, HTTPException

from engine.dependencies import get_monitor

router = APIRouter()


@router.get("/status")
async def get_status():
    """Monitor state and buffer size."""
    monitor = get_monitor()
    return {
        "running": monitor.is_running,
        "started_at": monitor.started_at.isoformat() if monitor.started_at else None,
        "interval": monitor.interval,
        "samples": monitor.metric_count(),
        "max_samples": monitor.max_metrics,
        "rules": len(monitor.rules()),
    }


@router.post("/start")
async def start_monitor():
    monitor = get_monitor()
    if monitor.is_running:
        raise HTTPException(status_code=400, detail="Monitor is already running")

    await monitor.start()
    return {"message": "Monitor started", "interval": monitor.interval}


@router.post("/stop")
async def stop_monitor():
    monitor = get_monitor()
    if not monitor.is_running:
        raise HTTPException(status_code=400, detail="Monitor is not running")

    await monitor.stop()
    return {"message": "Monitor stopped"}


@router.post("/tick")
async def tick():
    """Collect and evaluate one sample immediately."""
    sample = await get_monitor().tick()
    if sample is None:
        raise HTTPException(status_code=502, detail="Metric probe failed")
    return sample.model_dump(mode="json")


# ==================== Rules ====================

@router.get("/rules")
async def list_rules():
    monitor = get_monitor()
    rules = []
    for rule in monitor.rules():
        state = monitor.alert_state(rule.id)
        rules.append({
            **rule.model_dump(mode="json"),
            "state": state.model_dump(mode="json") if state else None,
        })

    return {
        "rules": rules,
        "total": len(rules),
    }


@router.post("/rules")
async def add_rule(rule: dict = Body(...)):
    """Register or replace an alert rule."""
    added = get_monitor().add_rule(rule)
    return {
        "message": "Rule added",
        "rule_id": added.id,
        "condition": added.describe(),
    }


@router.get("/rules/{rule_id}/state")
async def get_rule_state(rule_id: str):
    state = get_monitor().alert_state(rule_id)
    if state is None:
        raise HTTPException(
            status_code=404,
            detail=f"Rule '{rule_id}' not found"
        )
    return state.model_dump(mode="json")


@router.delete("/rules/{rule_id}")
async def remove_rule(rule_id: str):
    if not get_monitor().remove_rule(rule_id):
        raise HTTPException(
            status_code=404,
            detail=f"Rule '{rule_id}' not found"
        )
    return {"message": "Rule removed", "rule_id": rule_id}


# ==================== Metrics & reports ====================

@router.get("/metrics")
async def get_metrics(
    count: int = 100,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    compact: bool = False,
):
    """Recent samples, or the samples within a time range."""
    monitor = get_monitor()
    if start or end:
        samples = monitor.metrics_in_range(start or datetime.min, end or datetime.utcnow())
    else:
        samples = monitor.latest(count)

    return {
        "metrics": [s.to_jsonl() if compact else s.model_dump(mode="json") for s in samples],
        "total": len(samples),
    }


@router.get("/alerts")
async def get_alerts(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
):
    """Alert transitions, newest last."""
    events = get_monitor().alert_history(start, end)[-limit:]
    return {
        "alerts": [e.model_dump(mode="json") for e in events],
        "total": len(events),
    }


@router.get("/report")
async def get_report(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    hours: float = 1.0,
):
    """Performance report; defaults to the last hour."""
    end = end or datetime.utcnow()
    start = start or end - timedelta(hours=hours)
    report = get_monitor().report(start, end)
    return report.model_dump(mode="json")
