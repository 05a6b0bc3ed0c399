"""
Ensemble Combiner.

Blends four accuracy predictions with fixed weights:

- bayesian: Beta posterior mean
- hidden_state: expected accuracy of the current hidden state
- temporal: recency-weighted learning curve
- meta: population learning curve at the user's progress (pluggable)
"""

from __future__ import annotations

import math
from typing import Protocol, runtime_checkable

from src.proficiency import constants
from src.proficiency.models import EnsemblePredictions, KeyState


@runtime_checkable
class MetaPredictor(Protocol):
    """Cross-user prediction source."""

    def predict(self, unit: str, progress: int) -> float | None:
        """Expected accuracy for ``unit`` after ``progress`` observations, if known."""
        ...


class GlobalCurvePredictor:
    """
    Population learning curves kept as running means.

    Curves are indexed by progress (e.g. session number). Where the
    population data comes from is up to the caller.
    """

    def __init__(self) -> None:
        self._curves: dict[str, list[float]] = {}
        self._counts: dict[str, list[int]] = {}

    def update_curve(self, unit: str, accuracy: float, index: int) -> None:
        if index < 0:
            raise ValueError(f"index must be non-negative, got {index}")
        if not math.isfinite(accuracy):
            raise ValueError(f"accuracy must be finite, got {accuracy}")

        curve = self._curves.setdefault(unit, [])
        counts = self._counts.setdefault(unit, [])
        while len(curve) <= index:
            curve.append(constants.NEUTRAL_PREDICTION)
            counts.append(0)

        accuracy = min(1.0, max(0.0, accuracy))
        counts[index] += 1
        # First sample replaces the neutral placeholder
        curve[index] += (accuracy - curve[index]) / counts[index]

    def curve(self, unit: str) -> list[float]:
        return list(self._curves.get(unit, []))

    def predict(self, unit: str, progress: int) -> float | None:
        curve = self._curves.get(unit)
        if not curve:
            return None
        return curve[min(progress, len(curve) - 1)]


class EnsembleCombiner:
    """Weighted blend of the four sub-predictions."""

    def __init__(
        self,
        weights: dict[str, float] | None = None,
        meta_predictor: MetaPredictor | None = None,
    ):
        self.weights = weights or dict(constants.ENSEMBLE_WEIGHTS)
        self.meta_predictor = meta_predictor

    @staticmethod
    def temporal_prediction(learning_curve: list[float]) -> float:
        """Exponentially recency-weighted mean of the learning curve."""
        n = len(learning_curve)
        if n < constants.MIN_TEMPORAL_SAMPLES:
            return constants.NEUTRAL_PREDICTION

        weights = [math.exp(i / n) for i in range(n)]
        weighted = sum(value * w for value, w in zip(learning_curve, weights))
        return weighted / sum(weights)

    def meta_prediction(self, unit: str, state: KeyState | None) -> float:
        if self.meta_predictor is None or state is None:
            return constants.NEUTRAL_PREDICTION
        if state.observation_count < constants.MIN_META_OBSERVATIONS:
            return constants.NEUTRAL_PREDICTION

        predicted = self.meta_predictor.predict(unit, state.observation_count)
        if predicted is None or not math.isfinite(predicted):
            return constants.NEUTRAL_PREDICTION
        return min(1.0, max(0.0, predicted))

    def combine(
        self,
        bayesian: float,
        hidden_state: float,
        temporal: float,
        meta: float,
    ) -> EnsemblePredictions:
        w = self.weights
        blended = (
            bayesian * w["bayesian"]
            + hidden_state * w["hidden_state"]
            + temporal * w["temporal"]
            + meta * w["meta"]
        )
        return EnsemblePredictions(
            bayesian=bayesian,
            hidden_state=hidden_state,
            temporal=temporal,
            meta=meta,
            ensemble=blended,
        )
