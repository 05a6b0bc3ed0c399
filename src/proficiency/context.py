"""
Temporal/Context Aggregator.

Keeps exponentially smoothed success rates keyed by hour of day, position
within the session, and the unit typed just before, plus the rolling
learning curve and a finger-load estimate.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta, tzinfo
from itertools import islice

from src.proficiency import constants
from src.proficiency.models import (
    CorrelatedUnit,
    KeyState,
    Observation,
    ObservationContext,
    SessionPosition,
)


class ContextAggregator:
    """Per-observation context bookkeeping and the insights derived from it."""

    def __init__(
        self,
        learning_rate: float = 0.1,
        curve_limit: int = 50,
        rolling_window: int = constants.ROLLING_WINDOW,
        zone: tzinfo = UTC,
    ):
        self.learning_rate = learning_rate
        self.curve_limit = curve_limit
        self.rolling_window = rolling_window
        self.zone = zone

    def local_hour(self, moment: datetime) -> int:
        """Hour of day of ``moment`` in the configured zone."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self.zone).hour

    # =========================================================================
    # Updates
    # =========================================================================

    @staticmethod
    def position_bucket(position: float) -> int:
        """Map a 0-1 session position to one of five buckets."""
        if math.isnan(position):
            position = 0.5
        bucket = math.floor(position * constants.POSITION_BUCKETS)
        return min(constants.POSITION_BUCKETS - 1, max(0, bucket))

    def smooth(self, rates: dict, key, success: bool) -> float:
        current = rates.get(key, constants.NEUTRAL_PREDICTION)
        updated = current + self.learning_rate * ((1.0 if success else 0.0) - current)
        rates[key] = updated
        return updated

    def update(self, state: KeyState, observation: Observation, context: ObservationContext) -> None:
        stats = state.context_stats
        self.smooth(
            stats.hour_of_day,
            self.local_hour(observation.timestamp),
            observation.was_correct,
        )
        self.smooth(
            stats.session_position,
            self.position_bucket(context.session_position),
            observation.was_correct,
        )
        if context.adjacent_unit:
            self.smooth(stats.adjacent_units, context.adjacent_unit, observation.was_correct)

    def rolling_accuracy(self, state: KeyState) -> float | None:
        """Accuracy over the most recent rolling window, if it is full."""
        if state.observation_count < self.rolling_window:
            return None
        recent = islice(reversed(state.observations), self.rolling_window)
        return sum(1 for obs in recent if obs.was_correct) / self.rolling_window

    def update_learning_curve(self, state: KeyState) -> None:
        accuracy = self.rolling_accuracy(state)
        if accuracy is None:
            return
        state.learning_curve.append(accuracy)
        if len(state.learning_curve) > self.curve_limit:
            del state.learning_curve[: len(state.learning_curve) - self.curve_limit]

    def rebuild_learning_curve(self, state: KeyState) -> list[float]:
        """Recompute the curve from the retained observation window."""
        outcomes = [obs.was_correct for obs in state.observations]
        n = len(outcomes)
        first_end = max(self.rolling_window, n - self.curve_limit + 1)

        curve = []
        for end in range(first_end, n + 1):
            window = outcomes[end - self.rolling_window:end]
            curve.append(sum(window) / self.rolling_window)
        return curve

    @staticmethod
    def finger_load(state: KeyState) -> float:
        """Observation density in the hour before the newest observation."""
        if not state.observations:
            return 0.0

        newest = state.observations[-1].timestamp
        cutoff = newest - timedelta(seconds=constants.FATIGUE_WINDOW_SECONDS)
        recent = 0
        for obs in reversed(state.observations):
            if obs.timestamp <= cutoff:
                break
            recent += 1
        return min(1.0, recent / constants.FATIGUE_SATURATION)

    # =========================================================================
    # Insights
    # =========================================================================

    @staticmethod
    def best_practice_hour(state: KeyState, default: int = 12) -> int:
        rates = state.context_stats.hour_of_day
        if not rates:
            return default
        # Earliest hour wins ties
        return max(sorted(rates), key=lambda hour: rates[hour])

    @staticmethod
    def optimal_session_position(state: KeyState) -> SessionPosition:
        rates = state.context_stats.session_position
        early = rates.get(0, constants.NEUTRAL_PREDICTION)
        middle = rates.get(2, constants.NEUTRAL_PREDICTION)
        late = rates.get(4, constants.NEUTRAL_PREDICTION)

        if middle > early and middle > late:
            return "middle"
        if late > early and late > middle:
            return "late"
        return "early"

    @staticmethod
    def correlated_units(state: KeyState, limit: int = 5) -> list[CorrelatedUnit]:
        ranked = sorted(
            state.context_stats.adjacent_units.items(),
            key=lambda item: item[1],
            reverse=True,
        )
        return [CorrelatedUnit(unit=str(u), correlation=r) for u, r in ranked[:limit]]
