"""Load generation configuration models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class HttpMethod(str, Enum):
    """HTTP methods a request scenario may issue."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"


class RequestSpec(BaseModel):
    """A single request within a scenario."""
    method: HttpMethod = Field(default=HttpMethod.GET)
    path: str = Field(default="/", description="Path relative to the target URL")
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = Field(default=None, description="JSON body")
    expected_status: int = Field(default=200, description="Status counted as success")


class RequestScenario(BaseModel):
    """Weighted sequence of requests issued by one virtual user."""
    name: str = Field(..., description="Scenario name")
    weight: int = Field(default=100, ge=0, description="Relative selection weight")
    requests: list[RequestSpec] = Field(default_factory=list)


class LoadConfig(BaseModel):
    """Configuration for one load level handed to a LoadExecutor."""
    target_url: str = Field(..., description="Base URL of the system under test")
    duration: int = Field(default=60, ge=1, description="Load duration in seconds")
    ramp_up_time: int = Field(default=0, ge=0, description="Ramp-up time in seconds")
    max_users: int = Field(default=1, ge=1, description="Concurrent virtual users")
    requests_per_second: Optional[float] = Field(
        default=None,
        gt=0,
        description="Optional global request rate cap",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout")
    scenarios: list[RequestScenario] = Field(default_factory=list)

    def effective_scenarios(self) -> list[RequestScenario]:
        """Scenarios to run, falling back to a single GET of the root path."""
        scenarios = [s for s in self.scenarios if s.weight > 0 and s.requests]
        if scenarios:
            return scenarios
        return [RequestScenario(name="default", requests=[RequestSpec()])]
