"""
Tests for the legacy weakness-result mapping.
"""

import pytest

from src.proficiency.legacy import to_legacy_result, trend_from_slope


class TestLegacyMapping:
    @pytest.mark.parametrize(
        "slope,trend", [(0.01, "improving"), (0.0, "stable"), (-0.002, "declining")]
    )
    def test_trend(self, slope, trend):
        assert trend_from_slope(slope) == trend

    def test_fields(self, engine):
        for _ in range(10):
            engine.record_observation("k", True, 180)
        result = engine.analyze("k")

        legacy = to_legacy_result(result)
        assert legacy.key == "k"
        assert legacy.estimated_accuracy == result.accuracy_estimate
        assert legacy.confidence == result.confidence
        assert legacy.is_weak == result.is_weak
        assert legacy.priority == result.practice_priority
        assert legacy.next_review_date == result.next_practice
        assert legacy.recent_trend == "stable"
