"""Trend analysis over metric series."""

from __future__ import annotations

import math
from typing import Sequence

from common.models.capacity import TrendData, TrendDirection

# Slope magnitude below which a series counts as stable
SLOPE_THRESHOLD = 0.1


class TrendAnalyzer:
    """Least-squares trend classification of a value series.

    Stateless: every call derives a fresh TrendData from its input.
    """

    def __init__(self, slope_threshold: float = SLOPE_THRESHOLD):
        self.slope_threshold = slope_threshold

    def analyze(self, values: Sequence[float]) -> TrendData:
        """Compute average, slope, direction and volatility of a series."""
        n = len(values)
        if n < 2:
            return TrendData(
                average_utilization=float(values[0]) if n == 1 else 0.0,
                direction=TrendDirection.STABLE,
                change_rate=0.0,
                volatility=0.0,
            )

        average = sum(values) / n

        # Regression against index positions 0..n-1
        sum_x = n * (n - 1) / 2
        sum_y = sum(values)
        sum_xy = sum(i * v for i, v in enumerate(values))
        sum_x2 = n * (n - 1) * (2 * n - 1) / 6
        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)

        variance = sum((v - average) ** 2 for v in values) / n
        volatility = math.sqrt(variance)

        return TrendData(
            average_utilization=average,
            direction=self.classify(slope),
            change_rate=slope,
            volatility=volatility,
        )

    def classify(self, slope: float) -> TrendDirection:
        if slope > self.slope_threshold:
            return TrendDirection.INCREASING
        if slope < -self.slope_threshold:
            return TrendDirection.DECREASING
        return TrendDirection.STABLE

    @staticmethod
    def change_percentage(values: Sequence[float]) -> float:
        """Percent change from the first to the last value."""
        if len(values) < 2 or values[0] == 0:
            return 0.0
        return (values[-1] - values[0]) / abs(values[0]) * 100.0
