"""
Tests for the hidden-state classifier.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.proficiency.hidden_state import HiddenStateClassifier
from src.proficiency.models import HiddenState, Observation, ObservationContext

START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def feed(store, unit, outcomes):
    for i, correct in enumerate(outcomes):
        obs = Observation(timestamp=START + timedelta(seconds=i), was_correct=correct, latency_ms=200)
        store.record(unit, obs, ObservationContext())
    return store.get(unit)


class TestTransitions:
    def test_initial_rows_are_normalized(self):
        transitions = HiddenStateClassifier().initial_transitions()
        assert len(transitions) == 16
        for source in HiddenState.ordered():
            row = sum(transitions[(source, target)] for target in HiddenState.ordered())
            assert row == pytest.approx(1.0)

    def test_state_probabilities_is_current_row(self, store):
        state = store.new_state()
        probabilities = HiddenStateClassifier.state_probabilities(state)
        assert list(probabilities) == list(HiddenState.ordered())
        assert sum(probabilities.values()) == pytest.approx(1.0)
        assert probabilities[HiddenState.PROFICIENT] == pytest.approx(0.472 / 0.744)


class TestStep:
    def test_new_state_is_learning(self, store):
        assert store.new_state().hidden_state == HiddenState.LEARNING

    def test_first_success_moves_to_proficient(self, store):
        state = feed(store, "a", [True])
        assert state.hidden_state == HiddenState.PROFICIENT

    def test_sustained_success_reaches_mastered(self, store):
        state = feed(store, "a", [True] * 40)
        assert state.hidden_state == HiddenState.MASTERED

    def test_sustained_failure_reaches_regressing(self, store):
        state = feed(store, "q", [False] * 60)
        assert state.hidden_state == HiddenState.REGRESSING

    def test_all_zero_posterior_keeps_state(self, store):
        state = store.new_state()
        for target in HiddenState.ordered():
            state.transition_probabilities[(HiddenState.LEARNING, target)] = 0.0

        classifier = HiddenStateClassifier()
        assert classifier.posterior(state, True) == {s: 0.0 for s in HiddenState.ordered()}
        assert classifier.step(state, True) == HiddenState.LEARNING

    def test_nudge_keeps_row_normalized(self, store):
        state = feed(store, "a", [True] * 30)
        row = state.transition_row(state.hidden_state)
        assert sum(row.values()) == pytest.approx(1.0)

    def test_no_nudge_before_ten_observations(self, store):
        state = feed(store, "a", [True] * 9)
        initial = HiddenStateClassifier().initial_transitions()
        assert state.transition_probabilities == pytest.approx(initial)

    def test_expected_accuracy(self):
        classifier = HiddenStateClassifier()
        assert classifier.expected_accuracy(HiddenState.LEARNING) == 0.65
        assert classifier.expected_accuracy(HiddenState.PROFICIENT) == 0.85
        assert classifier.expected_accuracy(HiddenState.MASTERED) == 0.95
        assert classifier.expected_accuracy(HiddenState.REGRESSING) == 0.55


class TestPlateau:
    def test_needs_twenty_samples(self):
        assert HiddenStateClassifier.detect_plateau([0.8] * 19) is False

    def test_flat_curve_is_plateau(self):
        assert HiddenStateClassifier.detect_plateau([0.8] * 20) is True

    def test_improving_curve_is_not_plateau(self):
        curve = [0.5 + 0.01 * i for i in range(20)]
        assert HiddenStateClassifier.detect_plateau(curve) is False

    def test_declining_curve_is_not_plateau(self):
        curve = [0.9 - 0.01 * i for i in range(20)]
        assert HiddenStateClassifier.detect_plateau(curve) is False
