"""
Proficiency: per-key typing proficiency tracking.

This package contains the estimation and scheduling logic:
- estimators: Beta-Binomial accuracy and Gamma-Poisson speed
- hidden_state: four-state learning classifier
- ensemble: blended accuracy prediction
- scheduler: weakness, Thompson-sampled priority, spaced repetition
- engine: public API tying it all together
"""

from src.proficiency.engine import ProficiencyEngine
from src.proficiency.engine_config import EngineConfig
from src.proficiency.ensemble import GlobalCurvePredictor, MetaPredictor
from src.proficiency.legacy import LegacyWeaknessResult, to_legacy_result
from src.proficiency.models import (
    AnalysisResult,
    HiddenState,
    Intervention,
    KeyState,
    ObservationContext,
)
from src.proficiency.persistence import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    PersistenceGateway,
    SqlKeyValueStore,
)

__all__ = [
    # Engine
    "ProficiencyEngine",
    "EngineConfig",
    # Models
    "AnalysisResult",
    "HiddenState",
    "Intervention",
    "KeyState",
    "ObservationContext",
    # Meta prediction
    "GlobalCurvePredictor",
    "MetaPredictor",
    # Persistence
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SqlKeyValueStore",
    "PersistenceGateway",
    # Legacy
    "LegacyWeaknessResult",
    "to_legacy_result",
]
