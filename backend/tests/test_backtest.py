"""
tests/test_backtest.py
───────────────────────
Tests for the hold-out backtest in ``analytics.metrics``.
"""

import math

import numpy as np
import pytest

from analytics import metrics
from analytics.forecasting import ModelLifecycle
from analytics.forecasting import scaler as scaling
from analytics.forecasting.base import Accuracy, ScalerKind
from conftest import daily_cycle


class PersistenceModel:
    """Repeats the last value of the window."""

    def __init__(self) -> None:
        self.calls = 0

    def predict(self, window) -> float:
        self.calls += 1
        return float(window[-1])


class TestMaeRmse:
    def test_known_errors(self) -> None:
        scores = metrics.mae_rmse([1.0, 2.0, 3.0], [2.0, 2.0, 5.0])
        assert scores["mae"] == pytest.approx(1.0)
        assert scores["rmse"] == pytest.approx(math.sqrt(5 / 3))

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError):
            metrics.mae_rmse([1.0, 2.0], [1.0])


class TestEvaluate:
    def test_short_history_reports_zero(self) -> None:
        data = np.arange(24, dtype=float)
        state = scaling.fit(data)
        model = PersistenceModel()

        assert metrics.evaluate(data, 12, model, state) == Accuracy(0.0, 0.0)
        assert model.calls == 0

    def test_persistence_on_linear_trend(self) -> None:
        """Holding data[-21] against data[-20:] misses by 1, 2, ..., 20."""
        data = np.arange(60, dtype=float)
        state = scaling.fit(data, ScalerKind.ZSCORE)

        accuracy = metrics.evaluate(data, 12, PersistenceModel(), state, test_size=20)

        errors = np.arange(1, 21, dtype=float)
        assert accuracy.mae == pytest.approx(errors.mean())
        assert accuracy.rmse == pytest.approx(math.sqrt((errors ** 2).mean()))

    def test_test_size_is_capped_by_history(self) -> None:
        # n = 25, lookback 12 → at most 25 - 12 - 1 = 12 held-out points
        data = np.arange(25, dtype=float)
        model = PersistenceModel()
        metrics.evaluate(data, 12, model, scaling.fit(data), test_size=20)
        assert model.calls == 12

    def test_perfect_model_on_constant_series(self) -> None:
        data = np.full(50, 42.0)
        accuracy = metrics.evaluate(data, 12, PersistenceModel(), scaling.fit(data))
        assert accuracy == Accuracy(0.0, 0.0)

    def test_trained_model_scores_are_finite(self, trained_lifecycle: ModelLifecycle) -> None:
        accuracy = metrics.evaluate(
            daily_cycle(72),
            trained_lifecycle.lookback,
            trained_lifecycle,
            trained_lifecycle.scaler,
        )
        assert np.isfinite(accuracy.mae) and accuracy.mae >= 0.0
        assert accuracy.rmse >= accuracy.mae
