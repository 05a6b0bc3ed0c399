"""
Versioned snapshot schema.

Every nested map of a KeyState is written as an explicit association list
([[key, value], ...]) so the document is plain JSON and validates
structurally on the way back in.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.proficiency.models import (
    ContextStats,
    HiddenState,
    KeyState,
    Observation,
    TransitionKey,
)

SCHEMA_VERSION = 1

PositiveFloat = Annotated[float, Field(gt=0, allow_inf_nan=False)]
UnitInterval = Annotated[float, Field(ge=0.0, le=1.0, allow_inf_nan=False)]


def transition_label(key: TransitionKey) -> str:
    return f"{key[0].value}->{key[1].value}"


def parse_transition_label(label: str) -> TransitionKey:
    source, sep, target = label.partition("->")
    if not sep:
        raise ValueError(f"invalid transition label {label!r}")
    return HiddenState(source), HiddenState(target)


class ObservationRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: datetime
    was_correct: bool
    latency_ms: PositiveFloat

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_aware(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class KeyStateRecord(BaseModel):
    """Serialized KeyState."""

    model_config = ConfigDict(extra="ignore")

    alpha_prior: PositiveFloat
    beta_prior: PositiveFloat
    accuracy_alpha: PositiveFloat
    accuracy_beta: PositiveFloat
    shape_prior: PositiveFloat
    rate_prior: PositiveFloat
    speed_shape: PositiveFloat
    speed_rate: PositiveFloat

    hidden_state: HiddenState = HiddenState.LEARNING
    transition_probabilities: list[tuple[str, UnitInterval]]
    observations: list[ObservationRecord] = Field(default_factory=list)

    hour_of_day: list[tuple[Annotated[int, Field(ge=0, le=23)], UnitInterval]] = Field(
        default_factory=list
    )
    session_position: list[tuple[Annotated[int, Field(ge=0)], UnitInterval]] = Field(
        default_factory=list
    )
    adjacent_units: list[tuple[str, UnitInterval]] = Field(default_factory=list)

    learning_curve: list[UnitInterval] = Field(default_factory=list)
    plateau_detected: bool = False
    finger_load: UnitInterval = 0.0
    practice_interval_days: int = Field(default=1, ge=1)
    last_scheduled_on: date | None = None

    @field_validator("transition_probabilities")
    @classmethod
    def _labels_are_states(cls, value: list[tuple[str, float]]) -> list[tuple[str, float]]:
        for label, _ in value:
            parse_transition_label(label)
        return value

    @model_validator(mode="after")
    def _matrix_is_complete(self) -> KeyStateRecord:
        labels = {parse_transition_label(label) for label, _ in self.transition_probabilities}
        expected = {(s, t) for s in HiddenState.ordered() for t in HiddenState.ordered()}
        if labels != expected:
            raise ValueError("transition_probabilities must contain all 16 transitions")
        return self

    @classmethod
    def from_state(cls, state: KeyState) -> KeyStateRecord:
        stats = state.context_stats
        return cls(
            alpha_prior=state.alpha_prior,
            beta_prior=state.beta_prior,
            accuracy_alpha=state.accuracy_alpha,
            accuracy_beta=state.accuracy_beta,
            shape_prior=state.shape_prior,
            rate_prior=state.rate_prior,
            speed_shape=state.speed_shape,
            speed_rate=state.speed_rate,
            hidden_state=state.hidden_state,
            transition_probabilities=[
                (transition_label(key), p) for key, p in state.transition_probabilities.items()
            ],
            observations=[
                ObservationRecord(
                    timestamp=obs.timestamp,
                    was_correct=obs.was_correct,
                    latency_ms=obs.latency_ms,
                )
                for obs in state.observations
            ],
            hour_of_day=sorted(stats.hour_of_day.items()),
            session_position=sorted(stats.session_position.items()),
            adjacent_units=list(stats.adjacent_units.items()),
            learning_curve=list(state.learning_curve),
            plateau_detected=state.plateau_detected,
            finger_load=state.finger_load,
            practice_interval_days=state.practice_interval_days,
            last_scheduled_on=state.last_scheduled_on,
        )

    def to_state(self) -> KeyState:
        return KeyState(
            alpha_prior=self.alpha_prior,
            beta_prior=self.beta_prior,
            accuracy_alpha=self.accuracy_alpha,
            accuracy_beta=self.accuracy_beta,
            shape_prior=self.shape_prior,
            rate_prior=self.rate_prior,
            speed_shape=self.speed_shape,
            speed_rate=self.speed_rate,
            hidden_state=self.hidden_state,
            transition_probabilities={
                parse_transition_label(label): p for label, p in self.transition_probabilities
            },
            observations=deque(
                Observation(
                    timestamp=obs.timestamp,
                    was_correct=obs.was_correct,
                    latency_ms=obs.latency_ms,
                )
                for obs in self.observations
            ),
            success_count=sum(1 for obs in self.observations if obs.was_correct),
            latency_total=sum(obs.latency_ms for obs in self.observations),
            context_stats=ContextStats(
                hour_of_day=dict(self.hour_of_day),
                session_position=dict(self.session_position),
                adjacent_units=dict(self.adjacent_units),
            ),
            learning_curve=list(self.learning_curve),
            plateau_detected=self.plateau_detected,
            finger_load=self.finger_load,
            practice_interval_days=self.practice_interval_days,
            last_scheduled_on=self.last_scheduled_on,
        )


class SnapshotDocument(BaseModel):
    """Top-level persisted document."""

    model_config = ConfigDict(extra="ignore")

    version: Literal[1] = SCHEMA_VERSION
    saved_at: datetime
    global_priors: dict[str, PositiveFloat] = Field(default_factory=dict)
    ensemble_weights: dict[str, float] = Field(default_factory=dict)
    key_states: list[tuple[str, KeyStateRecord]] = Field(default_factory=list)
