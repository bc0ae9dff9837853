"""Scalability run models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from common.models.load import RequestScenario
from common.models.metrics import AggregateResult


class RunStatus(str, Enum):
    """Scalability run states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class StopReason(str, Enum):
    """Why a run stopped issuing load levels."""
    MAX_USERS_REACHED = "max_users_reached"
    BREAKING_POINT = "breaking_point"
    CANCELLED = "cancelled"
    LOAD_ERROR = "load_error"


class Priority(str, Enum):
    """Recommendation priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScalabilityConfig(BaseModel):
    """Stepped load test configuration.

    Constraints between fields (max >= baseline, positive increment and
    duration) are checked by the orchestrator so that violations surface
    as ConfigurationError before any load is generated.
    """
    name: str = Field(default="scalability-test", description="Run name")
    target_url: str = Field(default="http://localhost:8080", description="System under test")

    baseline_users: int = Field(default=10, description="First concurrency level")
    max_users: int = Field(default=100, description="Upper bound for concurrency")
    user_increment: int = Field(default=10, description="Users added per step")

    test_duration: int = Field(default=60, description="Seconds of load per step")
    ramp_up_time: int = Field(default=0, description="Ramp-up seconds within a step")

    acceptable_response_time: float = Field(default=2000, description="Average response time limit in ms")
    acceptable_error_rate: float = Field(default=0.05, description="Error rate limit (0-1)")

    recovery_interval: Optional[float] = Field(
        default=None,
        description="Seconds to wait between steps (defaults to settings)",
    )
    scenarios: list[RequestScenario] = Field(default_factory=list)

    def concurrency_levels(self) -> list[int]:
        """Ordered concurrency levels from baseline up to max."""
        return list(range(self.baseline_users, self.max_users + 1, self.user_increment))


class BreakingPoint(BaseModel):
    """Breaking point analysis over the collected steps."""
    max_users: int = Field(default=0, description="Level with the highest throughput")
    max_throughput: float = Field(default=0)
    degradation_point: int = Field(
        default=0,
        description="First level with a >50% response time jump over the previous level",
    )
    breaking_users: Optional[int] = Field(
        default=None,
        description="Level whose thresholds were violated, if any",
    )


class ScalabilityRecommendation(BaseModel):
    """Recommendation derived from a scalability run."""
    category: str
    title: str
    description: str
    priority: Priority = Priority.MEDIUM
    expected_impact: str = ""
    effort: str = ""


class ScalabilityRun(BaseModel):
    """State and results of a stepped load test."""
    id: str = Field(..., description="Unique run identifier")
    config: ScalabilityConfig

    status: RunStatus = Field(default=RunStatus.PENDING)
    stop_reason: Optional[StopReason] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    results: list[AggregateResult] = Field(default_factory=list)
    breaking_point: Optional[BreakingPoint] = None
    recommendations: list[ScalabilityRecommendation] = Field(default_factory=list)

    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        """Check if the run is still issuing load."""
        return self.status in [RunStatus.PENDING, RunStatus.RUNNING]

    @property
    def is_finished(self) -> bool:
        """Check if the run has finished."""
        return self.status in [
            RunStatus.COMPLETED,
            RunStatus.CANCELLED,
            RunStatus.FAILED,
        ]

    @property
    def duration_seconds(self) -> int:
        """Calculate actual duration."""
        if self.started_at is None:
            return 0
        end_time = self.completed_at or datetime.utcnow()
        return int((end_time - self.started_at).total_seconds())

    def add_result(self, result: AggregateResult) -> None:
        """Append a step result, keeping concurrency strictly increasing."""
        if self.results and result.concurrent_users <= self.results[-1].concurrent_users:
            raise ValueError(
                f"Step at {result.concurrent_users} users does not follow "
                f"{self.results[-1].concurrent_users} users"
            )
        self.results.append(result)

    def summary(self) -> dict:
        """Compact listing representation."""
        last = self.results[-1] if self.results else None
        return {
            "id": self.id,
            "name": self.config.name,
            "status": self.status.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "steps": len(self.results),
            "last_users": last.concurrent_users if last else None,
            "max_users": self.breaking_point.max_users if self.breaking_point else None,
            "degradation_point": (
                self.breaking_point.degradation_point if self.breaking_point else None
            ),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
