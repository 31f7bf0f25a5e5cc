"""
tests/test_config.py
─────────────────────
Tests for ``ForecastConfig`` validation and the ``Settings`` → preset
bridge in ``core.config``.
"""

import pytest
from pydantic import ValidationError

from analytics.forecasting import ForecastConfig, ScalerKind, VariationStrategy
from core.config import Settings


class TestForecastConfig:
    @pytest.mark.parametrize("name", ["standard", "hybrid", "advanced"])
    def test_presets_are_valid(self, name: str) -> None:
        assert ForecastConfig.preset(name).lookback >= 1

    def test_hourly_strategy_requires_minmax(self) -> None:
        with pytest.raises(ValueError, match="minmax"):
            ForecastConfig(
                scaler_kind=ScalerKind.ZSCORE,
                variation_strategy=VariationStrategy.HOURLY,
            )

    def test_hybrid_preset_rejects_zscore_override(self) -> None:
        with pytest.raises(ValueError, match="minmax"):
            ForecastConfig.preset("hybrid", scaler_kind=ScalerKind.ZSCORE)

    def test_posthoc_strategy_accepts_either_scaler(self) -> None:
        for kind in ScalerKind:
            config = ForecastConfig(scaler_kind=kind, variation_strategy=VariationStrategy.POSTHOC)
            assert config.scaler_kind is kind

    def test_rejects_zero_lookback(self) -> None:
        with pytest.raises(ValueError, match="lookback"):
            ForecastConfig(lookback=0)


class TestSettings:
    def test_forecast_config_applies_epoch_override(self) -> None:
        settings = Settings(FORECAST_PRESET="Hybrid", FORECAST_EPOCHS=3)

        config = settings.forecast_config()

        assert settings.FORECAST_PRESET == "hybrid"
        assert config.epochs == 3
        assert config.variation_strategy is VariationStrategy.HOURLY

    def test_unknown_preset_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(FORECAST_PRESET="turbo")

    def test_unknown_timezone_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(FORECAST_TIMEZONE="Mars/Olympus")
