"""
End-to-end tests for ProficiencyEngine.

Exercises the full record -> analyze -> persist loop over realistic typing
sequences.
"""

import json
import math
from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.proficiency.engine import ProficiencyEngine
from src.proficiency.engine_config import EngineConfig
from src.proficiency.ensemble import GlobalCurvePredictor
from src.proficiency.models import HiddenState, ObservationContext
from src.proficiency.persistence import PersistenceGateway


def type_key(engine, clock, unit, outcomes, latencies, adjacent=None):
    for correct, latency in zip(outcomes, latencies):
        clock.advance(seconds=1)
        engine.record_observation(unit, correct, latency, ObservationContext(adjacent_unit=adjacent))


# ========================================
# Scenarios
# ========================================


class TestScenarios:
    def test_strong_key(self, engine, clock):
        """Twenty correct keystrokes at 150 ms."""
        type_key(engine, clock, "a", [True] * 20, [150] * 20)
        result = engine.analyze("a")

        assert result.accuracy_estimate > 0.85
        assert result.is_weak is False
        assert result.observation_count == 20
        assert result.speed_estimate < 1000

    def test_struggling_key(self, engine, clock):
        """A hundred keystrokes, 70% of them wrong, at 180-230 ms."""
        outcomes = [i % 10 >= 7 for i in range(100)]
        latencies = [180 + (i * 7) % 51 for i in range(100)]
        type_key(engine, clock, "q", outcomes, latencies, adjacent="w")
        result = engine.analyze("q")

        assert result.weakness_score > 40
        assert result.recommended_interventions
        assert result.accuracy_estimate < 0.7
        assert result.current_state == HiddenState.REGRESSING
        assert result.plateau_detected

    def test_never_observed_key(self, engine):
        result = engine.analyze("z")

        assert result.current_state == HiddenState.LEARNING
        assert result.observation_count == 0
        assert result.accuracy_estimate == pytest.approx(engine.config.prior_mean)
        assert result.speed_estimate == 200
        assert result.speed_ci == (150, 250)
        assert result.ensemble.temporal == 0.5
        assert result.ensemble.meta == 0.5
        assert "z" not in engine.store

    def test_space_is_a_valid_unit(self, engine):
        assert engine.record_observation(" ", True, 120) is True
        assert " " in engine.store


# ========================================
# Properties
# ========================================


class TestProperties:
    def test_successes_never_lower_accuracy(self, engine, clock):
        previous = engine.analyze("f").accuracy_estimate
        weak_flags = []
        for _ in range(60):
            type_key(engine, clock, "f", [True], [160])
            result = engine.analyze("f")
            assert result.accuracy_estimate >= previous
            previous = result.accuracy_estimate
            weak_flags.append(result.is_weak)

        assert weak_flags[-1] is False

    def test_failures_raise_weakness_above_baseline(self, engine, clock):
        baseline = engine.analyze("x").weakness_score

        type_key(engine, clock, "x", [False] * 30, [200] * 30)
        assert engine.analyze("x").weakness_score > baseline

    def test_interval_contains_estimate_and_narrows(self, engine, clock):
        widths = []
        for _ in range(30):
            type_key(engine, clock, "j", [True], [170])
            result = engine.analyze("j")
            low, high = result.accuracy_ci
            assert low <= result.accuracy_estimate <= high
            widths.append(high - low)

        assert all(later < earlier for earlier, later in zip(widths, widths[1:]))

    def test_analyze_all_sorted_by_priority(self, engine, clock):
        type_key(engine, clock, "a", [True] * 20, [150] * 20)
        type_key(engine, clock, "q", [i % 3 == 0 for i in range(30)], [220] * 30)
        type_key(engine, clock, "s", [i % 5 != 0 for i in range(25)], [190] * 25)
        type_key(engine, clock, "d", [True] * 3, [150] * 3)

        results = engine.analyze_all()
        priorities = [r.practice_priority for r in results]
        assert priorities == sorted(priorities, reverse=True)
        assert {r.unit for r in results} == {"a", "q", "s"}

    def test_history_is_pruned(self, engine, clock):
        type_key(engine, clock, "e", [i % 2 == 0 for i in range(1200)], [200] * 1200)
        state = engine.store.get("e")

        assert state.observation_count == 1000
        successes = sum(1 for o in state.observations if o.was_correct)
        assert state.accuracy_alpha == pytest.approx(engine.config.alpha_prior + successes)
        assert state.accuracy_beta == pytest.approx(
            engine.config.beta_prior + 1000 - successes
        )

    def test_state_probabilities_sum_to_one(self, engine, clock):
        type_key(engine, clock, "r", [True, False] * 20, [200] * 40)
        result = engine.analyze("r")
        assert sum(result.state_probabilities.values()) == pytest.approx(1.0)
        assert 0.0 <= result.weakness_score <= 100.0
        assert 0.0 <= result.practice_priority <= 100.0


# ========================================
# Time zones
# ========================================


class TestTimeZones:
    PACIFIC = timezone(timedelta(hours=-8))

    def type_at_ten_pacific(self, engine):
        start = datetime(2026, 3, 2, 10, 0, tzinfo=self.PACIFIC)
        for i in range(100):
            context = ObservationContext(timestamp=start + timedelta(seconds=i))
            engine.record_observation("q", i % 10 >= 7, 200, context)

    @pytest.mark.parametrize("utc_hour,advised", [(18, False), (2, True)])
    def test_practice_time_compares_hours_in_one_zone(self, engine, clock, utc_hour, advised):
        self.type_at_ten_pacific(engine)
        clock.now = datetime(2026, 3, 3, utc_hour, 0, tzinfo=UTC)

        result = engine.analyze("q")
        kinds = [i.kind for i in result.recommended_interventions]
        assert result.best_practice_hour == 18
        assert ("practice_time" in kinds) is advised


# ========================================
# Input validation
# ========================================


class TestInputValidation:
    @pytest.mark.parametrize("unit", ["", None, 5])
    def test_invalid_unit_is_rejected(self, engine, unit):
        assert engine.record_observation(unit, True, 200) is False
        assert len(engine.store) == 0

    @pytest.mark.parametrize("latency", [0, -5, math.nan, math.inf, "fast", True])
    def test_invalid_latency_is_rejected(self, engine, latency):
        assert engine.record_observation("a", True, latency) is False
        assert len(engine.store) == 0

    def test_latency_is_clamped(self, engine):
        engine.record_observation("a", True, 0.2)
        engine.record_observation("a", True, 10_000_000)
        latencies = [o.latency_ms for o in engine.store.get("a").observations]
        assert latencies == [1.0, 60000.0]

    @pytest.mark.parametrize("stamp", [1772442000000, "2026-03-02T09:00:00Z"])
    def test_non_datetime_timestamp_is_rejected(self, engine, stamp):
        assert engine.record_observation("a", True, 200, ObservationContext(timestamp=stamp)) is False
        assert len(engine.store) == 0

    @pytest.mark.parametrize("position,bucket", [(math.nan, 2), (-1.0, 0), (4.0, 4)])
    def test_session_position_is_normalized(self, engine, position, bucket):
        engine.record_observation("a", True, 200, ObservationContext(session_position=position))
        assert list(engine.store.get("a").context_stats.session_position) == [bucket]


# ========================================
# Persistence
# ========================================


class TestPersistence:
    def test_save_load_round_trip(self, engine, clock, kv_store, config):
        type_key(engine, clock, "a", [True] * 25, [150] * 25)
        type_key(engine, clock, "q", [i % 2 == 0 for i in range(40)], [210] * 40)
        before = {u: engine.analyze(u).accuracy_estimate for u in ("a", "q")}
        assert engine.save() is True

        restored = ProficiencyEngine(
            config=config,
            gateway=PersistenceGateway(kv_store, config=config),
            clock=clock,
            autoload=True,
        )
        for unit, accuracy in before.items():
            assert restored.analyze(unit).accuracy_estimate == pytest.approx(accuracy, abs=1e-2)
        assert restored.store.get("q").hidden_state == engine.store.get("q").hidden_state

    def test_recording_schedules_debounced_save(self, engine, kv_store, fake_timers):
        for _ in range(5):
            engine.record_observation("a", True, 150)

        assert kv_store.get("proficiency-engine") is None
        assert sum(1 for t in fake_timers if not t.cancelled) == 1

        fake_timers[-1].fire()
        assert kv_store.get("proficiency-engine") is not None

    def test_close_flushes_pending_save(self, config, kv_store, clock, timer_factory):
        gateway = PersistenceGateway(kv_store, config=config, timer_factory=timer_factory)
        with ProficiencyEngine(config=config, gateway=gateway, clock=clock) as engine:
            engine.record_observation("a", True, 150)
        assert kv_store.get("proficiency-engine") is not None

    def test_corrupt_store_loads_empty(self, config, kv_store, clock):
        kv_store.set("proficiency-engine", "{broken")
        engine = ProficiencyEngine(
            config=config,
            gateway=PersistenceGateway(kv_store, config=config),
            clock=clock,
            autoload=True,
        )
        assert len(engine.store) == 0
        assert engine.analyze("a").current_state == HiddenState.LEARNING

    def test_load_repairs_drifted_counters(self, engine, clock, kv_store, config):
        type_key(engine, clock, "a", [True] * 30, [150] * 30)
        engine.store.get("a").accuracy_alpha += 100
        engine.save()

        assert engine.load() == 1
        assert engine.store.get("a").accuracy_alpha == pytest.approx(config.alpha_prior + 30)

    def test_clear(self, engine, clock, kv_store):
        type_key(engine, clock, "a", [True] * 5, [150] * 5)
        engine.save()

        engine.clear()
        assert len(engine.store) == 0
        assert kv_store.get("proficiency-engine") is None

    def test_engine_without_gateway(self, config, clock):
        engine = ProficiencyEngine(config=config, clock=clock)
        assert engine.record_observation("a", True, 150)
        assert engine.save() is False
        assert engine.load() == 0
        assert engine.flush() is False
        engine.close()


# ========================================
# Caching, batching and helpers
# ========================================


class TestCaching:
    def test_cached_result_is_reused_within_ttl(self, clock, gateway):
        engine = ProficiencyEngine(
            config=EngineConfig(analysis_cache_ttl_seconds=60), gateway=gateway, clock=clock
        )
        first = engine.analyze_cached("a")
        assert engine.analyze_cached("a") is first

    def test_recording_invalidates_cache(self, clock, gateway):
        engine = ProficiencyEngine(
            config=EngineConfig(analysis_cache_ttl_seconds=60), gateway=gateway, clock=clock
        )
        first = engine.analyze_cached("a")
        engine.record_observation("a", False, 200)
        assert engine.analyze_cached("a") is not first

    def test_zero_ttl_recomputes(self, clock, gateway):
        engine = ProficiencyEngine(
            config=EngineConfig(analysis_cache_ttl_seconds=0), gateway=gateway, clock=clock
        )
        first = engine.analyze_cached("a")
        assert engine.analyze_cached("a") is not first

    def test_cache_is_bounded(self, clock, gateway):
        engine = ProficiencyEngine(
            config=EngineConfig(analysis_cache_size=3, analysis_cache_ttl_seconds=60),
            gateway=gateway,
            clock=clock,
        )
        engine.analyze_batch(["a", "b", "c", "d", "e"])
        assert list(engine._cache) == ["c", "d", "e"]

    def test_analyze_batch_preserves_order(self, engine):
        results = engine.analyze_batch(["k", "j", "k"])
        assert [r.unit for r in results] == ["k", "j", "k"]


class TestHelpers:
    def test_focus_units(self, engine, clock):
        type_key(engine, clock, "a", [True] * 30, [150] * 30)
        type_key(engine, clock, "q", [False] * 60, [260] * 60, adjacent="w")

        focus = engine.focus_units(limit=3)
        assert focus == ["q"]

    def test_update_global_curve(self, config, clock):
        predictor = GlobalCurvePredictor()
        engine = ProficiencyEngine(config=config, meta_predictor=predictor, clock=clock)
        for _ in range(12):
            engine.record_observation("a", True, 150)

        assert engine.update_global_curve("a", 0.8, 0) is True
        assert engine.analyze("a").ensemble.meta == pytest.approx(0.8)

    def test_update_global_curve_without_predictor(self, engine):
        assert engine.update_global_curve("a", 0.8, 0) is False

    def test_to_dict_is_json_ready(self, engine, clock):
        type_key(engine, clock, "a", [True] * 25, [150] * 25, adjacent="s")
        payload = engine.analyze("a").to_dict()
        assert json.loads(json.dumps(payload))["unit"] == "a"
        assert payload["current_state"] in {s.value for s in HiddenState}
