"""
Typed engine configuration.

Bundles the runtime knobs from Settings with the seeded constants so every
component receives its parameters explicitly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, tzinfo
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.proficiency import constants

if TYPE_CHECKING:
    from config import Settings


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone {name!r}") from exc


@dataclass
class EngineConfig:
    """Configuration for one ProficiencyEngine instance."""

    alpha_prior: float = constants.GLOBAL_PRIORS["alpha"]
    beta_prior: float = constants.GLOBAL_PRIORS["beta"]
    shape_prior: float = constants.SPEED_PRIOR["shape"]
    rate_prior: float = constants.SPEED_PRIOR["rate"]

    transition_table: dict[str, dict[str, float]] = field(
        default_factory=lambda: {src: dict(row) for src, row in constants.TRANSITION_TABLE.items()}
    )
    ensemble_weights: dict[str, float] = field(
        default_factory=lambda: dict(constants.ENSEMBLE_WEIGHTS)
    )

    history_limit: int = 1000
    learning_curve_limit: int = 50
    context_learning_rate: float = 0.1
    exploration_rate: float = 0.1
    weak_threshold: float = 60.0
    min_observations_for_ranking: int = 5

    save_debounce_seconds: float = 2.0
    analysis_cache_ttl_seconds: float = 0.05
    analysis_cache_size: int = 256
    random_seed: int | None = None
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        for name in ("alpha_prior", "beta_prior", "shape_prior", "rate_prior"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")

        if set(self.ensemble_weights) != set(constants.ENSEMBLE_WEIGHTS):
            raise ValueError(
                f"ensemble_weights must have keys {sorted(constants.ENSEMBLE_WEIGHTS)}"
            )
        if any(w < 0 for w in self.ensemble_weights.values()):
            raise ValueError("ensemble_weights must be non-negative")
        if abs(sum(self.ensemble_weights.values()) - 1.0) > 1e-6:
            raise ValueError(
                f"ensemble_weights must sum to 1, got {sum(self.ensemble_weights.values()):.6f}"
            )

        for source in constants.STATES:
            row = self.transition_table.get(source)
            if row is None or set(row) != set(constants.STATES):
                raise ValueError(f"transition_table row '{source}' must cover all states")
            if any(p < 0 for p in row.values()) or sum(row.values()) <= 0:
                raise ValueError(f"transition_table row '{source}' must be non-negative and non-zero")

        if self.history_limit < constants.ROLLING_WINDOW:
            raise ValueError(f"history_limit must be at least {constants.ROLLING_WINDOW}")

        resolve_timezone(self.timezone)

    @property
    def zone(self) -> tzinfo:
        """Zone in which hours of the day are counted."""
        return resolve_timezone(self.timezone)

    @property
    def prior_mean(self) -> float:
        """Population accuracy implied by the Beta prior."""
        return self.alpha_prior / (self.alpha_prior + self.beta_prior)

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            history_limit=settings.history_limit,
            learning_curve_limit=settings.learning_curve_limit,
            context_learning_rate=settings.context_learning_rate,
            exploration_rate=settings.exploration_rate,
            weak_threshold=settings.weak_threshold,
            min_observations_for_ranking=settings.min_observations_for_ranking,
            save_debounce_seconds=settings.save_debounce_seconds,
            analysis_cache_ttl_seconds=settings.analysis_cache_ttl_seconds,
            analysis_cache_size=settings.analysis_cache_size,
            random_seed=settings.random_seed,
            timezone=settings.timezone,
        )
