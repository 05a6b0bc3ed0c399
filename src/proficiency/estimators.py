"""
Conjugate estimators for per-key accuracy and speed.

Accuracy: Beta-Binomial. Each success adds one to alpha, each failure one
to beta; the posterior mean is the accuracy estimate.

Speed: Gamma-Poisson over keystroke rate. Each observation adds one to the
shape and 1000/latency (keystrokes per second) to the rate; shape/rate
converts back to milliseconds per keystroke.
"""

from __future__ import annotations

import math

from src.proficiency.constants import DEFAULT_SPEED_CI, DEFAULT_SPEED_MS
from src.proficiency.models import AccuracyEstimate, KeyState, SpeedEstimate

Z_95 = 1.96


class BetaAccuracyEstimator:
    """Beta-Binomial accuracy model with a normal-approximation interval."""

    def __init__(self, z: float = Z_95):
        self.z = z

    @staticmethod
    def update(state: KeyState, was_correct: bool) -> None:
        if was_correct:
            state.accuracy_alpha += 1
        else:
            state.accuracy_beta += 1

    @staticmethod
    def retract(state: KeyState, was_correct: bool) -> None:
        """Remove an evicted observation, never dropping below the prior."""
        if was_correct:
            state.accuracy_alpha = max(state.alpha_prior, state.accuracy_alpha - 1)
        else:
            state.accuracy_beta = max(state.beta_prior, state.accuracy_beta - 1)

    @staticmethod
    def variance(alpha: float, beta: float) -> float:
        total = alpha + beta
        return (alpha * beta) / (total * total * (total + 1))

    def estimate(self, alpha: float, beta: float) -> AccuracyEstimate:
        mean = alpha / (alpha + beta)
        variance = self.variance(alpha, beta)
        spread = self.z * math.sqrt(variance)

        return AccuracyEstimate(
            estimate=mean,
            lower=max(0.0, mean - spread),
            upper=min(1.0, mean + spread),
            variance=variance,
            # Asymptotic to 1 as variance shrinks
            confidence=1.0 / (1.0 + variance * 10),
        )

    def estimate_state(self, state: KeyState) -> AccuracyEstimate:
        return self.estimate(state.accuracy_alpha, state.accuracy_beta)


class GammaSpeedEstimator:
    """Gamma-Poisson latency model."""

    def __init__(self, z: float = Z_95):
        self.z = z

    @staticmethod
    def update(state: KeyState, latency_ms: float) -> None:
        state.speed_shape += 1
        state.speed_rate += 1000.0 / latency_ms

    @staticmethod
    def retract(state: KeyState, latency_ms: float) -> None:
        state.speed_shape = max(state.shape_prior, state.speed_shape - 1)
        state.speed_rate = max(state.rate_prior, state.speed_rate - 1000.0 / latency_ms)

    def estimate(self, shape: float, rate: float) -> SpeedEstimate:
        mean = shape / rate * 1000
        spread = self.z * math.sqrt(shape) / rate * 1000
        return SpeedEstimate(
            estimate=mean,
            lower=max(0.0, mean - spread),
            upper=mean + spread,
        )

    def estimate_state(self, state: KeyState) -> SpeedEstimate:
        if not state.observations:
            return SpeedEstimate(DEFAULT_SPEED_MS, *DEFAULT_SPEED_CI)
        return self.estimate(state.speed_shape, state.speed_rate)
