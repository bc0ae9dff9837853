"""Error hierarchy shared by the engine components."""

from __future__ import annotations

from typing import Optional


class PerfCapError(Exception):
    """Base class for engine errors."""


class ConfigurationError(PerfCapError):
    """Invalid run, rule or planner parameters; rejected before execution."""


class ProbeError(PerfCapError):
    """A metric sample or a load step failed."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class NotificationError(PerfCapError):
    """A notification channel failed to deliver."""

    def __init__(self, message: str, channel: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.channel = channel
        self.target = target


class InsufficientDataError(PerfCapError):
    """Not enough metric history for the requested analysis."""
