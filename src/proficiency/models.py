"""
Data models for the proficiency engine.

KeyState is the per-unit record mutated by the state store; everything else
here is an input or an ephemeral analysis output.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Literal

from src.proficiency.constants import STATES

SessionPosition = Literal["early", "middle", "late"]


class HiddenState(str, Enum):
    """
    Learning state of a unit.

    Canonical order (used for tie-breaking): learning, proficient,
    mastered, regressing.
    """

    LEARNING = "learning"
    PROFICIENT = "proficient"
    MASTERED = "mastered"
    REGRESSING = "regressing"

    @classmethod
    def ordered(cls) -> tuple[HiddenState, ...]:
        return tuple(cls(name) for name in STATES)


TransitionKey = tuple[HiddenState, HiddenState]


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class Observation:
    """A single keystroke outcome."""

    timestamp: datetime
    was_correct: bool
    latency_ms: float


@dataclass
class ObservationContext:
    """Context captured alongside an observation."""

    timestamp: datetime | None = None
    session_position: float = 0.5  # 0-1 position within the session
    recent_errors: int = 0
    adjacent_unit: str | None = None


# =============================================================================
# Per-unit state
# =============================================================================


@dataclass
class ContextStats:
    """Exponentially smoothed success rates by context."""

    hour_of_day: dict[int, float] = field(default_factory=dict)
    session_position: dict[int, float] = field(default_factory=dict)
    adjacent_units: dict[str, float] = field(default_factory=dict)


@dataclass
class KeyState:
    """State record for one unit."""

    alpha_prior: float
    beta_prior: float
    accuracy_alpha: float
    accuracy_beta: float

    shape_prior: float
    rate_prior: float
    speed_shape: float
    speed_rate: float

    transition_probabilities: dict[TransitionKey, float]
    hidden_state: HiddenState = HiddenState.LEARNING

    observations: deque[Observation] = field(default_factory=deque)
    success_count: int = 0
    latency_total: float = 0.0

    context_stats: ContextStats = field(default_factory=ContextStats)
    learning_curve: list[float] = field(default_factory=list)
    plateau_detected: bool = False
    finger_load: float = 0.0

    practice_interval_days: int = 1
    last_scheduled_on: date | None = None

    @property
    def observation_count(self) -> int:
        return len(self.observations)

    @property
    def success_rate(self) -> float:
        """Raw success rate over the retained window (0 when empty)."""
        if not self.observations:
            return 0.0
        return self.success_count / len(self.observations)

    @property
    def mean_latency(self) -> float | None:
        if not self.observations:
            return None
        return self.latency_total / len(self.observations)

    def transition_row(self, source: HiddenState) -> dict[HiddenState, float]:
        return {
            target: self.transition_probabilities.get((source, target), 0.0)
            for target in HiddenState.ordered()
        }


# =============================================================================
# Analysis outputs
# =============================================================================


@dataclass(frozen=True)
class AccuracyEstimate:
    estimate: float
    lower: float
    upper: float
    variance: float
    confidence: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class SpeedEstimate:
    estimate: float
    lower: float
    upper: float


@dataclass(frozen=True)
class EnsemblePredictions:
    bayesian: float
    hidden_state: float
    temporal: float
    meta: float
    ensemble: float

    def to_dict(self) -> dict[str, float]:
        return {
            "bayesian": self.bayesian,
            "hidden_state": self.hidden_state,
            "temporal": self.temporal,
            "meta": self.meta,
            "ensemble": self.ensemble,
        }


@dataclass(frozen=True)
class Intervention:
    """A recommended change in how the unit is practised."""

    kind: str
    message: str
    expected_improvement: float  # percent
    confidence: float  # 0-1

    @property
    def score(self) -> float:
        return self.expected_improvement * self.confidence


@dataclass(frozen=True)
class CorrelatedUnit:
    unit: str
    correlation: float


@dataclass
class AnalysisResult:
    """
    Full analysis of one unit.

    Computed on demand and owned by the caller; the engine keeps at most a
    short-lived cached copy.
    """

    unit: str
    observation_count: int

    accuracy_estimate: float
    accuracy_ci: tuple[float, float]
    confidence: float
    speed_estimate: float
    speed_ci: tuple[float, float]

    current_state: HiddenState
    state_probabilities: dict[HiddenState, float]

    is_weak: bool
    weakness_score: float
    practice_priority: float
    next_practice: datetime
    practice_interval_days: int
    estimated_sessions_to_mastery: int

    best_practice_hour: int
    optimal_session_position: SessionPosition
    correlated_units: list[CorrelatedUnit]

    recommended_interventions: list[Intervention]
    ensemble: EnsemblePredictions

    learning_rate: float
    learning_slope: float
    plateau_detected: bool
    expected_plateau_date: datetime | None
    transfer_potential: dict[str, float]

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "unit": self.unit,
            "observation_count": self.observation_count,
            "accuracy_estimate": self.accuracy_estimate,
            "accuracy_ci": list(self.accuracy_ci),
            "confidence": self.confidence,
            "speed_estimate": self.speed_estimate,
            "speed_ci": list(self.speed_ci),
            "current_state": self.current_state.value,
            "state_probabilities": {s.value: p for s, p in self.state_probabilities.items()},
            "is_weak": self.is_weak,
            "weakness_score": self.weakness_score,
            "practice_priority": self.practice_priority,
            "next_practice": self.next_practice.isoformat(),
            "practice_interval_days": self.practice_interval_days,
            "estimated_sessions_to_mastery": self.estimated_sessions_to_mastery,
            "best_practice_hour": self.best_practice_hour,
            "optimal_session_position": self.optimal_session_position,
            "correlated_units": [
                {"unit": c.unit, "correlation": c.correlation} for c in self.correlated_units
            ],
            "recommended_interventions": [
                {
                    "kind": i.kind,
                    "message": i.message,
                    "expected_improvement": i.expected_improvement,
                    "confidence": i.confidence,
                }
                for i in self.recommended_interventions
            ],
            "ensemble": self.ensemble.to_dict(),
            "learning_rate": self.learning_rate,
            "learning_slope": self.learning_slope,
            "plateau_detected": self.plateau_detected,
            "expected_plateau_date": (
                self.expected_plateau_date.isoformat() if self.expected_plateau_date else None
            ),
            "transfer_potential": dict(self.transfer_potential),
        }
