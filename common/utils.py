"""Common utility functions."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import yaml


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier."""
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    if prefix:
        return f"{prefix}_{timestamp}_{short_uuid}"
    return f"{timestamp}_{short_uuid}"


def generate_run_id() -> str:
    """Generate a scalability run ID."""
    return generate_id("run")


def generate_plan_id() -> str:
    """Generate a capacity plan ID."""
    return generate_id("plan")


def generate_report_id() -> str:
    """Generate a performance report ID."""
    return generate_id("report")


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def percentile(values: Sequence[float], pct: float) -> float:
    """Percentile of a sequence (pct in 0-100).

    Picks the sorted value at index floor(n * pct / 100), clamped to the
    last element, so p95 of 1..100 is 96.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = int(len(ordered) * pct / 100.0)
    return float(ordered[min(idx, len(ordered) - 1)])


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def ceil_units(value: float) -> int:
    """Round a capacity amount up to whole units.

    Values within floating point noise of an integer are not bumped up,
    so 10 * 1.1 is 11 rather than 12.
    """
    return int(math.ceil(round(value, 9)))


def format_duration(seconds: int) -> str:
    """Format seconds to human-readable duration."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs}s"


def format_currency(amount: float) -> str:
    """Format a monthly cost."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def save_yaml(path: str | Path, data: dict) -> None:
    """Save data to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def ensure_dir(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
