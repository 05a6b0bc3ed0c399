"""
Priority & Scheduler.

Turns the estimates for a unit into:

- a weakness score (0-100) built from accuracy gap, posterior variance,
  slowness, regression and plateau,
- a practice priority mixing that score with a Thompson sample of the
  accuracy posterior plus a UCB-style exploration bonus,
- a spaced-repetition interval and next-practice date,
- learning-curve trend insights (rate, sessions to mastery, plateau date).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from src.proficiency import constants
from src.proficiency.estimators import BetaAccuracyEstimator
from src.proficiency.models import HiddenState, KeyState
from src.proficiency.sampling import PosteriorSampler


@dataclass
class SchedulerConfig:
    """Weights and thresholds for scoring and scheduling."""

    accuracy_gap_scale: float = 400.0
    accuracy_gap_cap: float = 40.0
    variance_scale: float = 200.0
    variance_cap: float = 20.0
    speed_baseline_ms: float = 200.0
    speed_cap: float = 20.0
    regression_penalty: float = 10.0
    plateau_penalty: float = 10.0

    exploit_weight: float = 0.7
    explore_weight: float = 0.3
    exploration_rate: float = 0.1

    base_ease: float = 1.3
    ease_pivot: float = 0.6
    ease_slope: float = 0.3
    maximum_interval: int = constants.MAXIMUM_INTERVAL_DAYS


class PracticeScheduler:
    """Scores, prioritizes and schedules practice for a unit."""

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        sampler: PosteriorSampler | None = None,
    ):
        self.config = config or SchedulerConfig()
        self.sampler = sampler or PosteriorSampler()

    # =========================================================================
    # Weakness & priority
    # =========================================================================

    def weakness_score(self, state: KeyState, accuracy: float, baseline: float) -> float:
        """
        Weakness score (0-100, higher = more problematic).

        Args:
            state: Unit state
            accuracy: Ensemble accuracy estimate
            baseline: The user's typical accuracy
        """
        cfg = self.config
        score = 0.0

        gap = max(0.0, baseline - accuracy)
        score += min(cfg.accuracy_gap_cap, gap * cfg.accuracy_gap_scale)

        variance = BetaAccuracyEstimator.variance(state.accuracy_alpha, state.accuracy_beta)
        score += min(cfg.variance_cap, variance * cfg.variance_scale)

        mean_latency = state.mean_latency
        if mean_latency is None:
            mean_latency = cfg.speed_baseline_ms
        score += min(cfg.speed_cap, max(0.0, (mean_latency - cfg.speed_baseline_ms) / 10))

        if state.hidden_state == HiddenState.REGRESSING:
            score += cfg.regression_penalty
        if state.plateau_detected:
            score += cfg.plateau_penalty

        return min(100.0, max(0.0, score))

    def exploration_bonus(self, observation_count: int) -> float:
        n = observation_count
        return self.config.exploration_rate * math.sqrt(math.log(n + 1) / (n + 1))

    def priority(self, state: KeyState, weakness_score: float) -> float:
        """Thompson-sampled practice priority (0-100)."""
        cfg = self.config
        sampled_accuracy = self.sampler.beta(state.accuracy_alpha, state.accuracy_beta)
        bonus = self.exploration_bonus(state.observation_count)

        explore_score = (1 - sampled_accuracy) * 100 + bonus * 100
        priority = weakness_score * cfg.exploit_weight + explore_score * cfg.explore_weight
        return min(100.0, max(0.0, priority))

    # =========================================================================
    # Spaced repetition
    # =========================================================================

    def ease_factor(self, state: KeyState) -> float:
        cfg = self.config
        mean = state.accuracy_alpha / (state.accuracy_alpha + state.accuracy_beta)
        return cfg.base_ease + (mean - cfg.ease_pivot) * cfg.ease_slope

    def next_interval(self, state: KeyState, weakness_score: float, today: date) -> int:
        """
        Days until the unit should be practised again.

        Weak units get fixed short intervals. Strong units grow the stored
        interval by the ease factor, at most once per calendar day.
        """
        if weakness_score > 70:
            interval = 1
        elif weakness_score > 50:
            interval = 2
        elif weakness_score > 30:
            interval = 7
        elif state.last_scheduled_on == today:
            interval = state.practice_interval_days
        else:
            previous = state.practice_interval_days
            # A well-known key must get a longer gap each day it stays strong;
            # rounding alone keeps short intervals at their current length
            interval = max(previous + 1, round(previous * self.ease_factor(state)))

        interval = min(self.config.maximum_interval, max(1, interval))
        state.practice_interval_days = interval
        state.last_scheduled_on = today
        return interval

    def schedule(self, state: KeyState, weakness_score: float, now: datetime) -> tuple[datetime, int]:
        interval = self.next_interval(state, weakness_score, now.date())
        return now + timedelta(days=interval), interval

    # =========================================================================
    # Trend insights
    # =========================================================================

    @staticmethod
    def learning_slope(learning_curve: list[float]) -> float:
        """Least-squares slope of the learning curve (0 with < 3 samples)."""
        n = len(learning_curve)
        if n < 3:
            return 0.0

        sum_x = n * (n - 1) / 2
        sum_x2 = (n - 1) * n * (2 * n - 1) / 6
        sum_y = sum(learning_curve)
        sum_xy = sum(i * y for i, y in enumerate(learning_curve))

        denominator = n * sum_x2 - sum_x * sum_x
        if denominator == 0:
            return 0.0
        return (n * sum_xy - sum_x * sum_y) / denominator

    def learning_rate(self, learning_curve: list[float]) -> float:
        """Improvement per sample; 2% by default until the curve has 3 points."""
        if len(learning_curve) < 3:
            return 0.02
        return max(0.0, self.learning_slope(learning_curve))

    def sessions_to_mastery(self, learning_curve: list[float]) -> int:
        if len(learning_curve) < constants.MIN_TEMPORAL_SAMPLES:
            return 10

        current = learning_curve[-1]
        if current >= constants.MASTERY_TARGET:
            return 0

        rate = self.learning_rate(learning_curve)
        sessions = math.ceil((constants.MASTERY_TARGET - current) / max(0.01, rate))
        return min(50, max(1, sessions))

    def expected_plateau_date(self, state: KeyState, now: datetime) -> datetime | None:
        if state.plateau_detected:
            return now

        if self.learning_rate(state.learning_curve) < 0.005:
            return now + timedelta(days=7)

        current = state.learning_curve[-1] if state.learning_curve else constants.NEUTRAL_PREDICTION
        gap = constants.MASTERY_TARGET - current
        if gap < 0.05:
            return None

        days = math.ceil(gap / 0.01 * state.practice_interval_days)
        return now + timedelta(days=days)

    @staticmethod
    def transfer_potential(unit: str) -> dict[str, float]:
        """Other keys typed by the same finger benefit from practising this one."""
        finger = constants.FINGER_MAP.get(unit.lower())
        if finger is None:
            return {}
        return {
            other: constants.SAME_FINGER_TRANSFER
            for other, other_finger in constants.FINGER_MAP.items()
            if other_finger == finger and other != unit.lower()
        }
