"""
Tests for EngineConfig validation and Settings integration.
"""

from datetime import UTC

import pytest

from config import Settings
from src.proficiency.engine_config import EngineConfig


class TestEngineConfig:
    def test_defaults_are_valid(self):
        config = EngineConfig()
        assert config.prior_mean == pytest.approx(0.9488, abs=1e-3)
        assert sum(config.ensemble_weights.values()) == pytest.approx(1.0)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError, match="sum to 1"):
            EngineConfig(ensemble_weights={"bayesian": 0.5, "hidden_state": 0.5, "temporal": 0.5, "meta": 0.0})

    def test_weights_need_all_models(self):
        with pytest.raises(ValueError, match="keys"):
            EngineConfig(ensemble_weights={"bayesian": 1.0})

    def test_negative_weight(self):
        with pytest.raises(ValueError, match="non-negative"):
            EngineConfig(ensemble_weights={"bayesian": 1.2, "hidden_state": -0.2, "temporal": 0.0, "meta": 0.0})

    @pytest.mark.parametrize("field", ["alpha_prior", "beta_prior", "shape_prior", "rate_prior"])
    @pytest.mark.parametrize("value", [0.0, -1.0, float("inf"), float("nan")])
    def test_priors_must_be_positive_and_finite(self, field, value):
        with pytest.raises(ValueError, match=field):
            EngineConfig(**{field: value})

    def test_transition_rows_must_be_complete(self):
        table = EngineConfig().transition_table
        del table["mastered"]["regressing"]
        with pytest.raises(ValueError, match="mastered"):
            EngineConfig(transition_table=table)

    def test_history_limit_covers_rolling_window(self):
        with pytest.raises(ValueError, match="history_limit"):
            EngineConfig(history_limit=10)

    def test_default_table_is_not_shared(self):
        a = EngineConfig()
        a.transition_table["learning"]["learning"] = 9.0
        assert EngineConfig().transition_table["learning"]["learning"] == 0.150

    def test_from_settings(self):
        settings = Settings(history_limit=500, exploration_rate=0.2, random_seed=3, save_debounce_seconds=0.5)
        config = EngineConfig.from_settings(settings)
        assert config.history_limit == 500
        assert config.exploration_rate == 0.2
        assert config.random_seed == 3
        assert config.save_debounce_seconds == 0.5

    def test_utc_zone(self):
        assert EngineConfig().zone is UTC

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="timezone"):
            EngineConfig(timezone="Nowhere/Atlantis")
