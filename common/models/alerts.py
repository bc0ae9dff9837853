"""Alert rule and alert state models."""

from __future__ import annotations

import operator
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ComparisonOperator(str, Enum):
    """Comparison applied as `metric OP threshold`."""
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="
    NE = "!="

    def compare(self, value: float, threshold: float) -> bool:
        return _OPERATORS[self](value, threshold)


_OPERATORS = {
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LTE: operator.le,
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.NE: operator.ne,
}


class Severity(str, Enum):
    """Alert severity."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ChannelType(str, Enum):
    """Notification channel types."""
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    SMS = "sms"


class NotificationTarget(BaseModel):
    """Where to deliver an alert notification."""
    type: ChannelType
    target: str = Field(..., description="Address, URL or phone number")


class AlertRule(BaseModel):
    """Threshold rule evaluated against every collected sample."""
    id: str = Field(..., description="Unique rule identifier")
    name: str = Field(default="", description="Human readable name")
    metric: str = Field(..., description="MetricSample field to evaluate")
    threshold: float
    operator: ComparisonOperator = Field(default=ComparisonOperator.GT)
    duration: int = Field(
        default=0,
        ge=0,
        description="Declared sustain time in seconds (not enforced)",
    )
    severity: Severity = Field(default=Severity.WARNING)
    enabled: bool = True
    notifications: list[NotificationTarget] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def describe(self) -> str:
        """Short condition text, e.g. 'error_rate > 0.05'."""
        return f"{self.metric} {self.operator.value} {self.threshold:g}"


class AlertState(BaseModel):
    """Edge-trigger state of one rule."""
    triggered: bool = False
    last_triggered: Optional[datetime] = None
    last_resolved: Optional[datetime] = None
    trigger_count: int = 0


class AlertEventKind(str, Enum):
    """Alert transitions."""
    TRIGGERED = "triggered"
    RESOLVED = "resolved"


class AlertEvent(BaseModel):
    """Record of one alert transition."""
    rule_id: str
    rule_name: str = ""
    kind: AlertEventKind
    metric: str
    value: float
    threshold: float
    operator: ComparisonOperator
    severity: Severity
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def message(self) -> str:
        """Notification text for this transition."""
        label = "ALERT TRIGGERED" if self.kind == AlertEventKind.TRIGGERED else "ALERT RESOLVED"
        return (
            f"[{self.severity.value.upper()}] {label}: {self.rule_name or self.rule_id} "
            f"({self.metric}={self.value:g} {self.operator.value} {self.threshold:g})"
        )
