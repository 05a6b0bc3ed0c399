"""
Intervention Recommender.

Rule-based suggestions derived from a unit's estimates. Each rule yields
at most one Intervention carrying an expected improvement (percent) and a
confidence; the list is ordered by expected_improvement * confidence.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from src.proficiency.context import ContextAggregator
from src.proficiency.models import Intervention, KeyState


@dataclass(frozen=True)
class InterventionInputs:
    """Signals the rules look at."""

    unit: str
    state: KeyState
    weakness_score: float
    current_hour: int


Rule = Callable[[InterventionInputs], Intervention | None]


def format_hour(hour: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    display = hour % 12 or 12
    return f"{display}:00 {period}"


def hour_distance(a: int, b: int) -> int:
    """Distance between two hours on a 24h clock."""
    d = abs(a - b) % 24
    return min(d, 24 - d)


def speed_causing_errors(inputs: InterventionInputs) -> Intervention | None:
    mean_latency = inputs.state.mean_latency
    if mean_latency is None or mean_latency >= 150 or inputs.weakness_score <= 50:
        return None
    return Intervention(
        kind="slow_down",
        message="Practice at 70% speed to build accuracy first",
        expected_improvement=15.0,
        confidence=0.8,
    )


def off_peak_practice(inputs: InterventionInputs) -> Intervention | None:
    if not inputs.state.context_stats.hour_of_day or inputs.weakness_score <= 40:
        return None
    best_hour = ContextAggregator.best_practice_hour(inputs.state)
    if hour_distance(inputs.current_hour, best_hour) <= 3:
        return None
    return Intervention(
        kind="practice_time",
        message=f"Practice at {format_hour(best_hour)} for 20% better performance",
        expected_improvement=20.0,
        confidence=0.7,
    )


def isolate_key_drill(inputs: InterventionInputs) -> Intervention | None:
    if inputs.weakness_score <= 60:
        return None
    return Intervention(
        kind="isolation_drill",
        message=f"Practice '{inputs.unit}' in isolation for 5 minutes",
        expected_improvement=25.0,
        confidence=0.9,
    )


def fatigue_break(inputs: InterventionInputs) -> Intervention | None:
    if inputs.state.finger_load <= 0.7:
        return None
    return Intervention(
        kind="take_break",
        message="Take a 10-minute break - finger fatigue detected",
        expected_improvement=10.0,
        confidence=0.85,
    )


def correlated_adjacent_practice(inputs: InterventionInputs) -> Intervention | None:
    adjacent = inputs.state.context_stats.adjacent_units
    if not adjacent:
        return None
    weakest, rate = min(adjacent.items(), key=lambda item: item[1])
    if rate >= 0.7:
        return None
    return Intervention(
        kind="adjacent_pair",
        message=f"Practice '{inputs.unit}' together with adjacent key '{weakest}' - they're linked",
        expected_improvement=18.0,
        confidence=0.75,
    )


DEFAULT_RULES: tuple[Rule, ...] = (
    speed_causing_errors,
    off_peak_practice,
    isolate_key_drill,
    fatigue_break,
    correlated_adjacent_practice,
)


class InterventionRecommender:
    """Applies the ordered rule list and ranks what fires."""

    def __init__(self, rules: tuple[Rule, ...] = DEFAULT_RULES):
        self.rules = rules

    def recommend(
        self,
        unit: str,
        state: KeyState,
        weakness_score: float,
        current_hour: int,
    ) -> list[Intervention]:
        inputs = InterventionInputs(
            unit=unit,
            state=state,
            weakness_score=weakness_score,
            current_hour=current_hour,
        )
        fired = [i for i in (rule(inputs) for rule in self.rules) if i is not None]
        # sorted() is stable, so rule order breaks ties
        return sorted(fired, key=lambda i: i.score, reverse=True)
