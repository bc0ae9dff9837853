"""History of scalability runs and capacity plans (SQLite + files)."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite

from common.models.capacity import CapacityPlan
from common.models.scalability import ScalabilityRun
from common.utils import ensure_dir, save_yaml

logger = logging.getLogger(__name__)

# SQLite schema
SCHEMA_SQL = """
-- Finished scalability runs
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    name TEXT,
    status TEXT,
    stop_reason TEXT,
    target_url TEXT,
    steps INTEGER,
    max_users INTEGER,
    max_throughput REAL,
    degradation_point INTEGER,
    breaking_users INTEGER,
    error_message TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    created_at TIMESTAMP,
    document JSON
);

CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);
CREATE INDEX IF NOT EXISTS idx_runs_created ON runs(created_at);

-- Generated capacity plans
CREATE TABLE IF NOT EXISTS plans (
    id TEXT PRIMARY KEY,
    timeframe TEXT,
    growth_rate REAL,
    recommendations INTEGER,
    current_monthly_cost REAL,
    projected_monthly_cost REAL,
    generated_at TIMESTAMP,
    document JSON
);

CREATE INDEX IF NOT EXISTS idx_plans_generated ON plans(generated_at);
"""


class RunStore:
    """Persists run and plan documents; never the raw metric stream.

    Each run also gets a directory with its config snapshot (YAML) and
    the per-step results as JSON Lines.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.db_path = self.base_path / "perfcap.db"
        ensure_dir(self.base_path / "runs")
        self._init_database_sync()

    def _init_database_sync(self) -> None:
        """Initialize SQLite database synchronously."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
            logger.info(f"Initialized SQLite database at {self.db_path}")
        finally:
            conn.close()

    def run_dir(self, run_id: str) -> Path:
        return self.base_path / "runs" / run_id

    # ==================== Runs ====================

    async def save_run(self, run: ScalabilityRun) -> None:
        """Insert or replace a run document and write its files."""
        bp = run.breaking_point
        run_dir = ensure_dir(self.run_dir(run.id))
        save_yaml(run_dir / "config.yaml", run.config.model_dump(mode="json"))
        self._write_steps(run_dir / "steps.jsonl", run)

        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                INSERT OR REPLACE INTO runs (
                    id, name, status, stop_reason, target_url, steps,
                    max_users, max_throughput, degradation_point, breaking_users,
                    error_message, started_at, completed_at, created_at, document
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                run.id,
                run.config.name,
                run.status.value,
                run.stop_reason.value if run.stop_reason else None,
                run.config.target_url,
                len(run.results),
                bp.max_users if bp else None,
                bp.max_throughput if bp else None,
                bp.degradation_point if bp else None,
                bp.breaking_users if bp else None,
                run.error,
                run.started_at.isoformat() if run.started_at else None,
                run.completed_at.isoformat() if run.completed_at else None,
                run.created_at.isoformat(),
                run.model_dump_json(),
            ))
            await conn.commit()

        logger.info(f"Saved run: {run.id} ({run.status.value})")

    def _write_steps(self, path: Path, run: ScalabilityRun) -> None:
        with open(path, 'w') as f:
            for result in run.results:
                f.write(json.dumps(result.to_jsonl()) + "\n")

    def read_steps(self, run_id: str) -> list[dict]:
        """Read the compact per-step records of a saved run."""
        path = self.run_dir(run_id) / "steps.jsonl"
        if not path.exists():
            return []

        steps = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    steps.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed step record in {path}")
        return steps

    async def get_run(self, run_id: str) -> Optional[ScalabilityRun]:
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT document FROM runs WHERE id = ?",
                (run_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return ScalabilityRun.model_validate_json(row[0])

    async def list_runs(self, limit: int = 50, status: Optional[str] = None) -> list[dict]:
        """Recent run rows without the full document."""
        query = """
            SELECT id, name, status, stop_reason, target_url, steps, max_users,
                   max_throughput, degradation_point, breaking_users, error_message,
                   started_at, completed_at, created_at
            FROM runs
        """
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def delete_run(self, run_id: str) -> bool:
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute("DELETE FROM runs WHERE id = ?", (run_id,))
            await conn.commit()
            deleted = cursor.rowcount > 0

        run_dir = self.run_dir(run_id)
        if run_dir.exists():
            for f in run_dir.iterdir():
                f.unlink()
            run_dir.rmdir()

        if deleted:
            logger.info(f"Deleted run: {run_id}")
        return deleted

    # ==================== Plans ====================

    async def save_plan(self, plan: CapacityPlan) -> None:
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                INSERT OR REPLACE INTO plans (
                    id, timeframe, growth_rate, recommendations,
                    current_monthly_cost, projected_monthly_cost, generated_at, document
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                plan.id,
                plan.timeframe,
                plan.growth_rate,
                len(plan.recommendations),
                plan.cost_analysis.current_monthly_cost,
                plan.cost_analysis.projected_monthly_cost,
                plan.generated_at.isoformat(),
                plan.model_dump_json(),
            ))
            await conn.commit()

        logger.info(f"Saved capacity plan: {plan.id}")

    async def get_plan(self, plan_id: str) -> Optional[CapacityPlan]:
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT document FROM plans WHERE id = ?",
                (plan_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return CapacityPlan.model_validate_json(row[0])

    async def list_plans(self, limit: int = 50) -> list[dict]:
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("""
                SELECT id, timeframe, growth_rate, recommendations,
                       current_monthly_cost, projected_monthly_cost, generated_at
                FROM plans
                ORDER BY generated_at DESC
                LIMIT ?
            """, (limit,))
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
