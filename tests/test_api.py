"""API tests against the FastAPI app with in-memory components."""

import httpx
import pytest
import pytest_asyncio

from engine import dependencies
from engine.core.capacity import CapacityPlanner
from engine.core.monitor import PerformanceMonitor
from engine.core.orchestrator import ScalabilityOrchestrator
from engine.main import create_app

from conftest import ScriptedExecutor, SequenceProbe, make_sample


RUN_CONFIG = {
    "name": "api-scaling",
    "target_url": "http://sut.local",
    "baseline_users": 10,
    "max_users": 30,
    "user_increment": 10,
    "test_duration": 5,
    "acceptable_response_time": 1000,
    "recovery_interval": 0,
}


@pytest.fixture
def components(run_store, event_bus):
    """Wire test doubles into the dependency registry."""
    executor = ScriptedExecutor([
        {"response_time": 120, "throughput": 80, "cpu": 40, "memory": 50},
        {"response_time": 140, "throughput": 150, "cpu": 55, "memory": 60},
        {"response_time": 160, "throughput": 210, "cpu": 70, "memory": 65},
    ])
    probe = SequenceProbe([make_sample(error_rate=rate) for rate in (0.01, 0.2, 0.0)])

    planner = CapacityPlanner(bus=event_bus)
    monitor = PerformanceMonitor(probe, bus=event_bus)
    orchestrator = ScalabilityOrchestrator(executor, bus=event_bus, recovery_interval=0)

    dependencies.set_run_store(run_store)
    dependencies.set_event_bus(event_bus)
    dependencies.set_redis_client(None)
    dependencies.set_planner(planner)
    dependencies.set_monitor(monitor)
    dependencies.set_orchestrator(orchestrator)

    return {
        "executor": executor,
        "probe": probe,
        "planner": planner,
        "monitor": monitor,
        "orchestrator": orchestrator,
    }


@pytest_asyncio.fixture
async def client(components):
    transport = httpx.ASGITransport(app=create_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
class TestSystemAPI:
    """Tests for root and system endpoints."""

    async def test_root_and_health(self, client):
        assert (await client.get("/")).json()["status"] == "running"
        assert (await client.get("/health")).json() == {"status": "healthy"}

    async def test_system_health(self, client, mock_redis_client):
        resp = await client.get("/api/v1/system/health")
        assert resp.status_code == 200
        assert resp.json()["components"]["redis"] == "disabled"
        assert resp.json()["components"]["monitor"] == "stopped"

        dependencies.set_redis_client(mock_redis_client)
        resp = await client.get("/api/v1/system/health")
        assert resp.json()["components"]["redis"] == "healthy"

    async def test_config(self, client):
        data = (await client.get("/api/v1/system/config")).json()

        assert data["pricing"]["cpu"] == 50.0
        assert data["inventory"]["instances"] == 3


@pytest.mark.asyncio
class TestRunsAPI:
    """Tests for scalability run endpoints."""

    async def test_run_lifecycle(self, client, components):
        resp = await client.post("/api/v1/runs/", json=RUN_CONFIG)
        assert resp.status_code == 200
        started = resp.json()
        assert started["levels"] == [10, 20, 30]
        run_id = started["run_id"]

        # The background task has finished once the response is returned
        run = (await client.get(f"/api/v1/runs/{run_id}")).json()
        assert run["status"] == "completed"
        assert run["stop_reason"] == "max_users_reached"
        assert run["breaking_point"]["max_users"] == 30
        assert components["orchestrator"].get_run(run_id) is None

        steps = (await client.get(f"/api/v1/runs/{run_id}/steps")).json()
        assert [s["users"] for s in steps["steps"]] == [10, 20, 30]

        listing = (await client.get("/api/v1/runs/")).json()
        assert [r["id"] for r in listing["runs"]] == [run_id]

        assert components["planner"].history_size() == 9

        resp = await client.post(f"/api/v1/runs/{run_id}/stop")
        assert resp.status_code == 400

        resp = await client.delete(f"/api/v1/runs/{run_id}")
        assert resp.status_code == 200
        assert (await client.get(f"/api/v1/runs/{run_id}")).status_code == 404

    async def test_invalid_config_rejected(self, client, components):
        resp = await client.post("/api/v1/runs/", json={**RUN_CONFIG, "max_users": 5})

        assert resp.status_code == 400
        assert "max_users" in resp.json()["detail"]
        assert components["executor"].configs == []

    async def test_unknown_run(self, client):
        assert (await client.get("/api/v1/runs/missing")).status_code == 404
        assert (await client.post("/api/v1/runs/missing/stop")).status_code == 404


@pytest.mark.asyncio
class TestMonitorAPI:
    """Tests for monitor endpoints."""

    async def test_rules_ticks_and_alerts(self, client):
        resp = await client.post("/api/v1/monitor/rules", json={
            "id": "high-error-rate",
            "metric": "error_rate",
            "threshold": 0.05,
            "operator": ">",
        })
        assert resp.status_code == 200
        assert resp.json()["condition"] == "error_rate > 0.05"

        for _ in range(3):
            assert (await client.post("/api/v1/monitor/tick")).status_code == 200

        alerts = (await client.get("/api/v1/monitor/alerts")).json()
        assert [a["kind"] for a in alerts["alerts"]] == ["triggered", "resolved"]

        state = (await client.get("/api/v1/monitor/rules/high-error-rate/state")).json()
        assert state["trigger_count"] == 1

        metrics = (await client.get("/api/v1/monitor/metrics", params={"compact": True})).json()
        assert metrics["total"] == 3
        assert metrics["metrics"][1]["err"] == 0.2

        report = (await client.get("/api/v1/monitor/report")).json()
        assert report["sample_count"] == 3

        assert (await client.delete("/api/v1/monitor/rules/high-error-rate")).status_code == 200
        assert (await client.delete("/api/v1/monitor/rules/high-error-rate")).status_code == 404

    async def test_utc_offset_ranges(self, client):
        assert (await client.post("/api/v1/monitor/tick")).status_code == 200

        resp = await client.get("/api/v1/monitor/report", params={
            "start": "2000-01-01T00:00:00Z",
            "end": "2100-01-01T00:00:00Z",
        })
        assert resp.status_code == 200
        assert resp.json()["sample_count"] == 1

        resp = await client.get("/api/v1/monitor/metrics", params={"start": "2000-01-01T00:00:00+00:00"})
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

        resp = await client.get("/api/v1/monitor/alerts", params={"end": "2100-01-01T00:00:00Z"})
        assert resp.status_code == 200

    async def test_invalid_rule(self, client):
        resp = await client.post("/api/v1/monitor/rules", json={
            "id": "bad", "metric": "queue_depth", "threshold": 1,
        })

        assert resp.status_code == 400

    async def test_report_without_samples(self, client):
        assert (await client.get("/api/v1/monitor/report")).status_code == 422

    async def test_stop_when_not_running(self, client):
        assert (await client.post("/api/v1/monitor/stop")).status_code == 400

    async def test_probe_failure(self, client, components):
        components["probe"]._samples.insert(0, RuntimeError("probe down"))

        assert (await client.post("/api/v1/monitor/tick")).status_code == 502


@pytest.mark.asyncio
class TestCapacityAPI:
    """Tests for capacity endpoints."""

    async def test_plans(self, client):
        resp = await client.post("/api/v1/capacity/plans", json={"timeframe": "6 months", "growth_rate": 0.5})
        assert resp.status_code == 200
        plan = resp.json()
        assert plan["projected_capacity"]["cpu"]["current"] == 6

        fetched = (await client.get(f"/api/v1/capacity/plans/{plan['id']}")).json()
        assert fetched["id"] == plan["id"]
        assert (await client.get("/api/v1/capacity/plans")).json()["total"] == 1
        assert (await client.get("/api/v1/capacity/plans/missing")).status_code == 404

    async def test_overflowing_growth_rejected(self, client):
        resp = await client.post("/api/v1/capacity/plans", json={"timeframe": "1 year", "growth_rate": 1e308})

        assert resp.status_code == 400
        assert (await client.get("/api/v1/capacity/plans")).json()["total"] == 0

    async def test_trends_need_history(self, client):
        assert (await client.get("/api/v1/capacity/trends")).status_code == 422

    async def test_metrics_then_optimize(self, client):
        samples = [
            make_sample(minutes_ago=12 - i, cpu_usage=25, memory_usage=35).model_dump(mode="json")
            for i in range(12)
        ]
        resp = await client.post("/api/v1/capacity/metrics", json=samples)
        assert resp.json()["history_size"] == 12

        result = (await client.post("/api/v1/capacity/optimize")).json()
        assert [o["resource"] for o in result["optimizations"]] == ["cpu", "memory", "instances"]

        forecast = (await client.post("/api/v1/capacity/forecast", json={})).json()
        assert forecast["timeframe"] == "30 days"
        assert forecast["required_capacity"]["instances"] >= 1
