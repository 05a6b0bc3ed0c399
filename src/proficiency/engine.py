"""
Proficiency Engine.

Public entry point: records keystroke observations and turns the per-key
state into an AnalysisResult on demand.

    engine = ProficiencyEngine.from_settings()
    engine.record_observation("q", was_correct=False, latency_ms=230)
    result = engine.analyze("q")

One engine belongs to one session. It is synchronous apart from the
debounced snapshot write, which runs on a timer thread and therefore only
ever sees deep copies taken under the engine lock.
"""

from __future__ import annotations

import copy
import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger

from src.proficiency import constants
from src.proficiency.context import ContextAggregator
from src.proficiency.engine_config import EngineConfig
from src.proficiency.ensemble import EnsembleCombiner, MetaPredictor
from src.proficiency.estimators import BetaAccuracyEstimator, GammaSpeedEstimator
from src.proficiency.hidden_state import HiddenStateClassifier
from src.proficiency.interventions import InterventionRecommender
from src.proficiency.models import (
    AnalysisResult,
    KeyState,
    Observation,
    ObservationContext,
)
from src.proficiency.persistence import PersistenceGateway, create_store
from src.proficiency.sampling import PosteriorSampler
from src.proficiency.scheduler import PracticeScheduler, SchedulerConfig
from src.proficiency.state_store import KeyStateStore

if TYPE_CHECKING:
    from config import Settings


def utc_now() -> datetime:
    return datetime.now(UTC)


class ProficiencyEngine:
    """Per-key proficiency tracking, analysis and scheduling."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        gateway: PersistenceGateway | None = None,
        meta_predictor: MetaPredictor | None = None,
        clock: Callable[[], datetime] = utc_now,
        autoload: bool = False,
    ):
        self.config = config or EngineConfig()
        self.gateway = gateway
        self.clock = clock

        self.classifier = HiddenStateClassifier(self.config.transition_table)
        self.aggregator = ContextAggregator(
            learning_rate=self.config.context_learning_rate,
            curve_limit=self.config.learning_curve_limit,
            zone=self.config.zone,
        )
        self.store = KeyStateStore(self.config, self.classifier, self.aggregator)
        self.accuracy = BetaAccuracyEstimator()
        self.speed = GammaSpeedEstimator()
        self.ensemble = EnsembleCombiner(self.config.ensemble_weights, meta_predictor)
        self.scheduler = PracticeScheduler(
            SchedulerConfig(exploration_rate=self.config.exploration_rate),
            PosteriorSampler(seed=self.config.random_seed),
        )
        self.recommender = InterventionRecommender()

        self._lock = threading.RLock()
        self._cache: OrderedDict[str, tuple[float, AnalysisResult]] = OrderedDict()

        if autoload:
            self.load()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        meta_predictor: MetaPredictor | None = None,
        autoload: bool = True,
    ) -> ProficiencyEngine:
        """Build an engine with the persistence backend chosen in settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()

        config = EngineConfig.from_settings(settings)
        gateway = PersistenceGateway(
            create_store(settings),
            config=config,
            storage_key=settings.storage_key,
        )
        return cls(config=config, gateway=gateway, meta_predictor=meta_predictor, autoload=autoload)

    def __enter__(self) -> ProficiencyEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_observation(
        self,
        unit: str,
        was_correct: bool,
        latency_ms: float,
        context: ObservationContext | None = None,
    ) -> bool:
        """
        Record one keystroke outcome.

        Args:
            unit: Key identifier (any non-empty string, " " included)
            was_correct: Whether the key was typed correctly
            latency_ms: Time to type the key
            context: Optional timestamp, session position and adjacent key

        Returns:
            True if the observation was accepted
        """
        if not isinstance(unit, str) or not unit:
            logger.warning("Rejected observation with invalid unit {!r}", unit)
            return False

        if (
            isinstance(latency_ms, bool)
            or not isinstance(latency_ms, (int, float))
            or not math.isfinite(latency_ms)
            or latency_ms <= 0
        ):
            logger.warning("Rejected observation for '{}' with latency {!r}", unit, latency_ms)
            return False

        if (
            context is not None
            and context.timestamp is not None
            and not isinstance(context.timestamp, datetime)
        ):
            logger.warning(
                "Rejected observation for '{}' with timestamp {!r}", unit, context.timestamp
            )
            return False

        latency = min(constants.MAX_LATENCY_MS, max(constants.MIN_LATENCY_MS, float(latency_ms)))
        context = self._normalize_context(context)
        timestamp = context.timestamp or self.clock()
        if timestamp.tzinfo is None:
            # Naive timestamps are taken as UTC so windows compare cleanly
            timestamp = timestamp.replace(tzinfo=UTC)
        observation = Observation(
            timestamp=timestamp,
            was_correct=bool(was_correct),
            latency_ms=latency,
        )

        with self._lock:
            self.store.record(unit, observation, context)
            self._cache.pop(unit, None)

        if self.gateway is not None:
            self.gateway.request_save(self._snapshot)
        return True

    @staticmethod
    def _normalize_context(context: ObservationContext | None) -> ObservationContext:
        if context is None:
            return ObservationContext()

        position = context.session_position
        if not isinstance(position, (int, float)) or math.isnan(position):
            position = 0.5
        position = min(1.0, max(0.0, float(position)))

        if position == context.session_position:
            return context
        return ObservationContext(
            timestamp=context.timestamp,
            session_position=position,
            recent_errors=context.recent_errors,
            adjacent_unit=context.adjacent_unit,
        )

    # =========================================================================
    # Analysis
    # =========================================================================

    def baseline_accuracy(self, unit: str) -> float:
        """The user's typical accuracy, excluding ``unit`` itself."""
        pooled = self.store.pooled_accuracy(exclude=unit)
        return self.config.prior_mean if pooled is None else pooled

    def analyze(self, unit: str) -> AnalysisResult:
        """
        Full analysis of one unit.

        An unknown unit is analyzed from the priors alone without being
        added to the store.
        """
        with self._lock:
            state = self.store.get(unit)
            tracked = state is not None
            if state is None:
                state = self.store.new_state()
            return self._analyze_state(unit, state, tracked)

    def _analyze_state(self, unit: str, state: KeyState, tracked: bool) -> AnalysisResult:
        now = self.clock()

        accuracy = self.accuracy.estimate_state(state)
        speed = self.speed.estimate_state(state)

        predictions = self.ensemble.combine(
            bayesian=accuracy.estimate,
            hidden_state=self.classifier.expected_accuracy(state.hidden_state),
            temporal=self.ensemble.temporal_prediction(state.learning_curve),
            meta=self.ensemble.meta_prediction(unit, state if tracked else None),
        )

        weakness = self.scheduler.weakness_score(
            state, predictions.ensemble, self.baseline_accuracy(unit)
        )
        priority = self.scheduler.priority(state, weakness)
        next_practice, interval = self.scheduler.schedule(state, weakness, now)

        curve = state.learning_curve
        return AnalysisResult(
            unit=unit,
            observation_count=state.observation_count,
            accuracy_estimate=accuracy.estimate,
            accuracy_ci=(accuracy.lower, accuracy.upper),
            confidence=accuracy.confidence,
            speed_estimate=speed.estimate,
            speed_ci=(speed.lower, speed.upper),
            current_state=state.hidden_state,
            state_probabilities=self.classifier.state_probabilities(state),
            is_weak=weakness > self.config.weak_threshold,
            weakness_score=weakness,
            practice_priority=priority,
            next_practice=next_practice,
            practice_interval_days=interval,
            estimated_sessions_to_mastery=self.scheduler.sessions_to_mastery(curve),
            best_practice_hour=self.aggregator.best_practice_hour(state),
            optimal_session_position=self.aggregator.optimal_session_position(state),
            correlated_units=self.aggregator.correlated_units(state),
            recommended_interventions=self.recommender.recommend(
                unit, state, weakness, self.aggregator.local_hour(now)
            ),
            ensemble=predictions,
            learning_rate=self.scheduler.learning_rate(curve),
            learning_slope=self.scheduler.learning_slope(curve),
            plateau_detected=state.plateau_detected,
            expected_plateau_date=self.scheduler.expected_plateau_date(state, now),
            transfer_potential=self.scheduler.transfer_potential(unit),
        )

    def analyze_all(self) -> list[AnalysisResult]:
        """Every unit with enough observations, highest priority first."""
        with self._lock:
            results = [
                self._analyze_state(unit, state, tracked=True)
                for unit, state in self.store.items()
                if state.observation_count >= self.config.min_observations_for_ranking
            ]
        results.sort(key=lambda r: r.practice_priority, reverse=True)
        return results

    def analyze_cached(self, unit: str) -> AnalysisResult:
        """Like analyze(), but reuses a result younger than the cache TTL."""
        now = time.monotonic()
        with self._lock:
            entry = self._cache.get(unit)
            if entry is not None and now - entry[0] < self.config.analysis_cache_ttl_seconds:
                self._cache.move_to_end(unit)
                return entry[1]

            result = self.analyze(unit)
            self._cache[unit] = (now, result)
            self._cache.move_to_end(unit)
            while len(self._cache) > self.config.analysis_cache_size:
                self._cache.popitem(last=False)
            return result

    def analyze_batch(self, units: Iterable[str]) -> list[AnalysisResult]:
        return [self.analyze_cached(unit) for unit in units]

    def focus_units(self, limit: int = 5) -> list[str]:
        """The weakest units, for lesson generation."""
        return [r.unit for r in self.analyze_all() if r.is_weak][:limit]

    # =========================================================================
    # Meta predictor
    # =========================================================================

    def update_global_curve(self, unit: str, accuracy: float, index: int) -> bool:
        """Feed a population data point to the meta predictor, if it takes them."""
        predictor = self.ensemble.meta_predictor
        update = getattr(predictor, "update_curve", None)
        if update is None:
            return False
        update(unit, accuracy, index)
        return True

    # =========================================================================
    # Persistence
    # =========================================================================

    def _snapshot(self) -> list[tuple[str, KeyState]]:
        with self._lock:
            return [(unit, copy.deepcopy(state)) for unit, state in self.store.items()]

    def save(self) -> bool:
        """Write a snapshot immediately."""
        if self.gateway is None:
            return False
        return self.gateway.save(self._snapshot())

    def load(self) -> int:
        """
        Replace the in-memory state with the persisted snapshot.

        Window-derived aggregates are recomputed from the stored
        observations. Returns the number of units loaded.
        """
        if self.gateway is None:
            return 0

        states = self.gateway.load()
        for unit, state in states.items():
            if self.store.recount(state):
                logger.info("Recomputed aggregates for '{}' from its observations", unit)

        with self._lock:
            self.store.replace_all(states)
            self._cache.clear()
        return len(states)

    def clear(self) -> None:
        """Forget every unit, in memory and in the backend."""
        with self._lock:
            self.store.reset()
            self._cache.clear()
        if self.gateway is not None:
            self.gateway.clear()
        logger.info("Cleared all proficiency state")

    def flush(self) -> bool:
        """Run a pending debounced save now."""
        if self.gateway is None:
            return False
        return self.gateway.flush()

    def close(self) -> None:
        if self.gateway is not None:
            self.gateway.close()
