"""
Legacy result mapping.

Older consumers expect a flat weakness record per key. This module is the
only place that shape exists; callers convert explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from src.proficiency.models import AnalysisResult

Trend = Literal["improving", "stable", "declining"]


@dataclass
class LegacyWeaknessResult:
    key: str
    estimated_accuracy: float
    confidence: float
    is_weak: bool
    priority: float
    recent_trend: Trend
    next_review_date: datetime


def trend_from_slope(slope: float) -> Trend:
    if slope > 0:
        return "improving"
    if slope < 0:
        return "declining"
    return "stable"


def to_legacy_result(result: AnalysisResult) -> LegacyWeaknessResult:
    return LegacyWeaknessResult(
        key=result.unit,
        estimated_accuracy=result.accuracy_estimate,
        confidence=result.confidence,
        is_weak=result.is_weak,
        priority=result.practice_priority,
        recent_trend=trend_from_slope(result.learning_slope),
        next_review_date=result.next_practice,
    )
