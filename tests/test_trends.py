"""Unit tests for TrendAnalyzer."""

import pytest

from common.models.capacity import TrendDirection
from engine.core.trends import TrendAnalyzer


class TestTrendAnalyzer:
    """Tests for least-squares trend classification."""

    def test_increasing(self):
        trend = TrendAnalyzer().analyze([10, 12, 14, 16, 18])

        assert trend.direction == TrendDirection.INCREASING
        assert trend.change_rate == pytest.approx(2.0)
        assert trend.average_utilization == pytest.approx(14.0)
        assert trend.volatility == pytest.approx(8 ** 0.5)

    def test_decreasing(self):
        trend = TrendAnalyzer().analyze([18, 16, 14, 12, 10])

        assert trend.direction == TrendDirection.DECREASING
        assert trend.change_rate == pytest.approx(-2.0)

    def test_stable(self):
        trend = TrendAnalyzer().analyze([10, 10, 10])

        assert trend.direction == TrendDirection.STABLE
        assert trend.change_rate == 0
        assert trend.volatility == 0

    def test_small_slope_is_stable(self):
        trend = TrendAnalyzer().analyze([50.0, 50.05, 50.1, 50.15])

        assert trend.direction == TrendDirection.STABLE

    def test_custom_threshold(self):
        analyzer = TrendAnalyzer(slope_threshold=5)

        assert analyzer.analyze([10, 12, 14, 16, 18]).direction == TrendDirection.STABLE

    @pytest.mark.parametrize("values,average", [([], 0.0), ([42], 42.0)])
    def test_fewer_than_two_values(self, values, average):
        trend = TrendAnalyzer().analyze(values)

        assert trend.direction == TrendDirection.STABLE
        assert trend.average_utilization == average
        assert trend.change_rate == 0
        assert trend.volatility == 0

    def test_change_percentage(self):
        assert TrendAnalyzer.change_percentage([100, 150, 200]) == pytest.approx(100)
        assert TrendAnalyzer.change_percentage([200, 100]) == pytest.approx(-50)
        assert TrendAnalyzer.change_percentage([0, 10]) == 0
        assert TrendAnalyzer.change_percentage([5]) == 0
