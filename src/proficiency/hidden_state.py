"""
Hidden-State Classifier.

Four-state Markov model over a unit's learning stage:

    learning -> proficient -> mastered <-> regressing   (plus self-loops)

Each observation is scored against every candidate next state:

    posterior(next) ∝ P(current -> next) * P(outcome | next)

and the unit moves to the arg-max. Once enough evidence exists, the
outgoing row of the new state is nudged toward the observed direction
(mastery or regression) and renormalized.
"""

from __future__ import annotations

from loguru import logger

from src.proficiency import constants
from src.proficiency.models import HiddenState, KeyState, TransitionKey


class HiddenStateClassifier:
    """Online arg-max filter over the four learning states."""

    def __init__(
        self,
        transition_table: dict[str, dict[str, float]] | None = None,
        reliability: dict[str, float] | None = None,
        state_accuracy: dict[str, float] | None = None,
        nudge_factor: float = constants.TRANSITION_NUDGE,
        min_observations: int = constants.NUDGE_MIN_OBSERVATIONS,
    ):
        self.transition_table = transition_table or constants.TRANSITION_TABLE
        self.reliability = reliability or constants.OBSERVATION_RELIABILITY
        self.state_accuracy = state_accuracy or constants.STATE_ACCURACY
        self.nudge_factor = nudge_factor
        self.min_observations = min_observations

    # =========================================================================
    # Transition matrix
    # =========================================================================

    def initial_transitions(self) -> dict[TransitionKey, float]:
        """Seeded transition matrix with every row normalized to 1."""
        transitions: dict[TransitionKey, float] = {}
        for source in HiddenState.ordered():
            row = self.transition_table[source.value]
            total = sum(row.values())
            for target in HiddenState.ordered():
                transitions[(source, target)] = row[target.value] / total
        return transitions

    @staticmethod
    def normalize_row(state: KeyState, source: HiddenState) -> None:
        keys = [(source, target) for target in HiddenState.ordered()]
        total = sum(state.transition_probabilities.get(k, 0.0) for k in keys)
        if total <= 0:
            return
        for k in keys:
            state.transition_probabilities[k] = state.transition_probabilities.get(k, 0.0) / total

    # =========================================================================
    # Update
    # =========================================================================

    def likelihoods(self, was_correct: bool) -> dict[HiddenState, float]:
        """P(outcome | state) for every state."""
        return {
            s: self.reliability[s.value] if was_correct else 1.0 - self.reliability[s.value]
            for s in HiddenState.ordered()
        }

    def posterior(self, state: KeyState, was_correct: bool) -> dict[HiddenState, float]:
        likelihood = self.likelihoods(was_correct)
        row = state.transition_row(state.hidden_state)
        unnormalized = {s: row[s] * likelihood[s] for s in HiddenState.ordered()}

        total = sum(unnormalized.values())
        if total <= 0:
            return {s: 0.0 for s in HiddenState.ordered()}
        return {s: p / total for s, p in unnormalized.items()}

    def step(self, state: KeyState, was_correct: bool) -> HiddenState:
        """
        Advance the hidden state by one observation.

        The observation must already be appended to ``state.observations``
        so the nudge sees the current success rate.
        """
        posterior = self.posterior(state, was_correct)

        best_state = state.hidden_state
        best_prob = 0.0
        # Strict comparison keeps the first state in canonical order on ties
        for candidate in HiddenState.ordered():
            if posterior[candidate] > best_prob:
                best_prob = posterior[candidate]
                best_state = candidate

        if best_state != state.hidden_state:
            logger.debug(
                "Hidden state {} -> {} (p={:.3f})",
                state.hidden_state.value,
                best_state.value,
                best_prob,
            )
        state.hidden_state = best_state

        if state.observation_count >= self.min_observations:
            self.nudge(state)

        return best_state

    def nudge(self, state: KeyState) -> None:
        """Shift the current state's outgoing row toward the observed trend."""
        performance = state.success_rate
        source = state.hidden_state

        if performance > constants.NUDGE_MASTERY_RATE:
            target = HiddenState.MASTERED
        elif performance < constants.NUDGE_REGRESSION_RATE:
            target = HiddenState.REGRESSING
        else:
            return

        key = (source, target)
        state.transition_probabilities[key] = (
            state.transition_probabilities.get(key, 0.0) * self.nudge_factor
        )
        self.normalize_row(state, source)

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def state_probabilities(state: KeyState) -> dict[HiddenState, float]:
        """One-step outlook: the transition row out of the current state."""
        return state.transition_row(state.hidden_state)

    def expected_accuracy(self, hidden_state: HiddenState) -> float:
        return self.state_accuracy[hidden_state.value]

    @staticmethod
    def detect_plateau(
        learning_curve: list[float],
        window: int = constants.PLATEAU_WINDOW,
        threshold: float = constants.PLATEAU_THRESHOLD,
    ) -> bool:
        """Plateau when the last window barely differs from the one before it."""
        if len(learning_curve) < 2 * window:
            return False

        recent = learning_curve[-window:]
        previous = learning_curve[-2 * window:-window]
        improvement = sum(recent) / window - sum(previous) / window
        return abs(improvement) < threshold
