"""
Per-Key State Store.

Holds one KeyState per unit and applies every per-observation update:
Beta and Gamma posteriors, context rates, hidden state, learning curve,
plateau flag, finger load and history pruning.

Posterior counters always describe the retained observation window: when
an observation is evicted, its contribution is subtracted again.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterator

from loguru import logger

from src.proficiency.context import ContextAggregator
from src.proficiency.engine_config import EngineConfig
from src.proficiency.estimators import BetaAccuracyEstimator, GammaSpeedEstimator
from src.proficiency.hidden_state import HiddenStateClassifier
from src.proficiency.models import KeyState, Observation, ObservationContext


class KeyStateStore:
    """In-memory map of unit -> KeyState."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        classifier: HiddenStateClassifier | None = None,
        aggregator: ContextAggregator | None = None,
    ):
        self.config = config or EngineConfig()
        self.classifier = classifier or HiddenStateClassifier(self.config.transition_table)
        self.aggregator = aggregator or ContextAggregator(
            learning_rate=self.config.context_learning_rate,
            curve_limit=self.config.learning_curve_limit,
            zone=self.config.zone,
        )
        self._states: dict[str, KeyState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, unit: str) -> bool:
        return unit in self._states

    def units(self) -> list[str]:
        return list(self._states)

    def items(self) -> Iterator[tuple[str, KeyState]]:
        # Copy so a snapshot can be taken while units are being added
        return iter(list(self._states.items()))

    def get(self, unit: str) -> KeyState | None:
        return self._states.get(unit)

    def new_state(self) -> KeyState:
        """A fresh state seeded with the global priors."""
        cfg = self.config
        return KeyState(
            alpha_prior=cfg.alpha_prior,
            beta_prior=cfg.beta_prior,
            accuracy_alpha=cfg.alpha_prior,
            accuracy_beta=cfg.beta_prior,
            shape_prior=cfg.shape_prior,
            rate_prior=cfg.rate_prior,
            speed_shape=cfg.shape_prior,
            speed_rate=cfg.rate_prior,
            transition_probabilities=self.classifier.initial_transitions(),
        )

    def get_or_create(self, unit: str) -> KeyState:
        state = self._states.get(unit)
        if state is None:
            state = self.new_state()
            self._states[unit] = state
            logger.debug("Created key state for '{}'", unit)
        return state

    def reset(self) -> None:
        self._states.clear()

    def replace_all(self, states: dict[str, KeyState]) -> None:
        self._states = dict(states)

    # =========================================================================
    # Update
    # =========================================================================

    def record(self, unit: str, observation: Observation, context: ObservationContext) -> KeyState:
        """Apply one validated observation to the unit's state."""
        state = self.get_or_create(unit)

        state.observations.append(observation)
        if observation.was_correct:
            state.success_count += 1
        state.latency_total += observation.latency_ms

        BetaAccuracyEstimator.update(state, observation.was_correct)
        GammaSpeedEstimator.update(state, observation.latency_ms)

        self.aggregator.update(state, observation, context)
        self.classifier.step(state, observation.was_correct)
        self.aggregator.update_learning_curve(state)
        state.plateau_detected = self.classifier.detect_plateau(state.learning_curve)
        state.finger_load = self.aggregator.finger_load(state)

        self.prune(state)
        return state

    def prune(self, state: KeyState) -> int:
        """
        Cap the observation history with FIFO eviction.

        Returns:
            Number of observations evicted
        """
        evicted = 0
        while len(state.observations) > self.config.history_limit:
            old = state.observations.popleft()
            if old.was_correct:
                state.success_count -= 1
            state.latency_total -= old.latency_ms
            BetaAccuracyEstimator.retract(state, old.was_correct)
            GammaSpeedEstimator.retract(state, old.latency_ms)
            evicted += 1

        if evicted:
            logger.trace("Evicted {} observations", evicted)
        return evicted

    def recount(self, state: KeyState) -> bool:
        """
        Rebuild every window-derived aggregate from the observations.

        Returns:
            True if any stored aggregate disagreed with the window
        """
        if len(state.observations) > self.config.history_limit:
            state.observations = deque(
                list(state.observations)[-self.config.history_limit:]
            )

        successes = sum(1 for obs in state.observations if obs.was_correct)
        failures = len(state.observations) - successes
        latency_total = sum(obs.latency_ms for obs in state.observations)
        inverse_total = sum(1000.0 / obs.latency_ms for obs in state.observations)

        expected = {
            "accuracy_alpha": state.alpha_prior + successes,
            "accuracy_beta": state.beta_prior + failures,
            "speed_shape": state.shape_prior + len(state.observations),
            "speed_rate": state.rate_prior + inverse_total,
        }
        changed = any(
            not math.isclose(getattr(state, name), value, rel_tol=1e-9, abs_tol=1e-6)
            for name, value in expected.items()
        )
        for name, value in expected.items():
            setattr(state, name, value)

        state.success_count = successes
        state.latency_total = latency_total

        curve = self.aggregator.rebuild_learning_curve(state)
        if len(curve) != len(state.learning_curve) or any(
            not math.isclose(a, b, abs_tol=1e-9) for a, b in zip(curve, state.learning_curve)
        ):
            changed = True
        state.learning_curve = curve
        state.plateau_detected = self.classifier.detect_plateau(curve)
        state.finger_load = self.aggregator.finger_load(state)

        return changed

    # =========================================================================
    # Aggregates
    # =========================================================================

    def pooled_accuracy(self, exclude: str | None = None) -> float | None:
        """Pooled posterior mean over tracked units (None when there are none)."""
        total_alpha = 0.0
        total_beta = 0.0
        for unit, state in self._states.items():
            if unit == exclude or not state.observations:
                continue
            total_alpha += state.accuracy_alpha
            total_beta += state.accuracy_beta

        if total_alpha + total_beta <= 0:
            return None
        return total_alpha / (total_alpha + total_beta)
