"""
tests/test_lifecycle.py
────────────────────────
Tests for ``ModelLifecycle``: the Untrained → Trained → Disposed state
machine, input validation, rollback on failure, cancellation and the busy
guard.

These tests train real (tiny) Keras models, so they take a few seconds.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from analytics.forecasting import ForecastConfig, ModelLifecycle, ModelState
from analytics.forecasting.errors import (
    EmptySeriesError,
    InsufficientDataError,
    InvalidDataError,
    ModelBusyError,
    NotTrainedError,
    TrainingCancelledError,
    TrainingFailureError,
)
from conftest import daily_cycle


@pytest.fixture
def lifecycle(fast_config: ForecastConfig):
    model = ModelLifecycle(fast_config)
    yield model
    model.dispose()


def _wait_until_training(model: ModelLifecycle, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not model.is_training:
        if time.monotonic() > deadline:
            raise AssertionError("training never started")
        time.sleep(0.01)


# ── State machine ─────────────────────────────────────────────────────────────


class TestStateMachine:
    def test_starts_untrained(self, lifecycle: ModelLifecycle) -> None:
        assert lifecycle.state is ModelState.UNTRAINED
        assert not lifecycle.is_trained

    def test_predict_before_train_raises(self, lifecycle: ModelLifecycle) -> None:
        with pytest.raises(NotTrainedError):
            lifecycle.predict(np.zeros(12))

    def test_scaler_before_train_raises(self, lifecycle: ModelLifecycle) -> None:
        with pytest.raises(NotTrainedError):
            _ = lifecycle.scaler

    def test_train_then_predict(self, lifecycle: ModelLifecycle) -> None:
        summary = lifecycle.train(daily_cycle(60))

        assert lifecycle.state is ModelState.TRAINED
        assert summary.data_points == 60
        assert summary.lookback == 12
        assert summary.epochs == 2
        assert np.isfinite(summary.final_loss)
        assert isinstance(lifecycle.predict(np.zeros(12)), float)

    def test_dispose_then_predict_raises(self, lifecycle: ModelLifecycle) -> None:
        lifecycle.train(daily_cycle(60))
        lifecycle.dispose()

        assert lifecycle.state is ModelState.DISPOSED
        with pytest.raises(NotTrainedError):
            lifecycle.predict(np.zeros(12))

    def test_dispose_is_idempotent(self, lifecycle: ModelLifecycle) -> None:
        lifecycle.dispose()
        lifecycle.dispose()
        assert lifecycle.state is ModelState.DISPOSED

    def test_can_retrain_after_dispose(self, lifecycle: ModelLifecycle) -> None:
        lifecycle.train(daily_cycle(60))
        lifecycle.dispose()
        lifecycle.train(daily_cycle(60, seed=1))
        assert lifecycle.is_trained


# ── Input validation ──────────────────────────────────────────────────────────


class TestValidation:
    def test_too_few_points_for_lookback(self) -> None:
        model = ModelLifecycle(ForecastConfig.preset("standard", epochs=1))
        with pytest.raises(InsufficientDataError):
            model.train(daily_cycle(24))
        assert model.state is ModelState.UNTRAINED

    def test_explicit_lookback_override(self, lifecycle: ModelLifecycle) -> None:
        with pytest.raises(InsufficientDataError):
            lifecycle.train(daily_cycle(24), lookback=30)

    def test_nan_is_rejected_before_training(self, lifecycle: ModelLifecycle) -> None:
        data = daily_cycle(60)
        data[10] = np.nan
        with pytest.raises(InvalidDataError):
            lifecycle.train(data)
        assert lifecycle.state is ModelState.UNTRAINED
        with pytest.raises(NotTrainedError):
            lifecycle.predict(np.zeros(12))

    def test_infinity_is_rejected(self, lifecycle: ModelLifecycle) -> None:
        data = daily_cycle(60)
        data[-1] = np.inf
        with pytest.raises(InvalidDataError):
            lifecycle.train(data)

    def test_empty_series(self, lifecycle: ModelLifecycle) -> None:
        with pytest.raises(EmptySeriesError):
            lifecycle.train([])

    def test_rejected_input_keeps_previous_model(self, lifecycle: ModelLifecycle) -> None:
        lifecycle.train(daily_cycle(60))
        with pytest.raises(InsufficientDataError):
            lifecycle.train(daily_cycle(5))
        assert lifecycle.is_trained

    def test_predict_checks_window_length(self, trained_lifecycle: ModelLifecycle) -> None:
        with pytest.raises(ValueError):
            trained_lifecycle.predict(np.zeros(5))


# ── Concurrency ───────────────────────────────────────────────────────────────


class TestConcurrency:
    @pytest.fixture
    def slow_lifecycle(self):
        model = ModelLifecycle(ForecastConfig.preset("advanced", epochs=5000, batch_size=4))
        yield model
        model.dispose()

    def test_cancel_stops_training(self, slow_lifecycle: ModelLifecycle) -> None:
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(slow_lifecycle.train, daily_cycle(120))
            _wait_until_training(slow_lifecycle)
            time.sleep(0.5)
            assert slow_lifecycle.cancel() is True

            with pytest.raises(TrainingCancelledError):
                future.result(timeout=60)

        assert slow_lifecycle.state is ModelState.UNTRAINED
        assert not slow_lifecycle.is_training

    def test_overlapping_train_is_busy(self, slow_lifecycle: ModelLifecycle) -> None:
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(slow_lifecycle.train, daily_cycle(120))
            _wait_until_training(slow_lifecycle)

            with pytest.raises(ModelBusyError):
                slow_lifecycle.train(daily_cycle(120))

            time.sleep(0.5)
            slow_lifecycle.cancel()
            with pytest.raises(TrainingCancelledError):
                future.result(timeout=60)

    def test_dispose_cancels_running_training(self, slow_lifecycle: ModelLifecycle) -> None:
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(slow_lifecycle.train, daily_cycle(120))
            _wait_until_training(slow_lifecycle)
            time.sleep(0.5)

            disposer = threading.Thread(target=slow_lifecycle.dispose)
            disposer.start()
            disposer.join(timeout=60)

            with pytest.raises(TrainingCancelledError):
                future.result(timeout=60)

        assert slow_lifecycle.state is ModelState.DISPOSED

    def test_cancel_without_training_is_noop(self, lifecycle: ModelLifecycle) -> None:
        assert lifecycle.cancel() is False

    def test_preset_token_keeps_previous_model(self, lifecycle: ModelLifecycle) -> None:
        lifecycle.train(daily_cycle(60))
        token = threading.Event()
        token.set()

        with pytest.raises(TrainingCancelledError):
            lifecycle.train(daily_cycle(60, seed=1), cancel_events=[token])

        assert lifecycle.is_trained
        assert lifecycle.summary.data_points == 60
        assert not lifecycle.is_training

    def test_token_stops_running_training(self, slow_lifecycle: ModelLifecycle) -> None:
        token = threading.Event()
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(slow_lifecycle.train, daily_cycle(120), cancel_events=[token])
            _wait_until_training(slow_lifecycle)
            time.sleep(0.5)
            token.set()

            with pytest.raises(TrainingCancelledError):
                future.result(timeout=60)

        assert slow_lifecycle.state is ModelState.UNTRAINED


# ── Rollback on failure ───────────────────────────────────────────────────────


class TestRollback:
    def _assert_rolled_back(self, model: ModelLifecycle) -> None:
        assert model.state is ModelState.UNTRAINED
        assert not model.is_trained
        assert model.summary is None
        with pytest.raises(NotTrainedError):
            model.predict(np.zeros(model.lookback))
        with pytest.raises(NotTrainedError):
            _ = model.scaler

    def test_build_error_discards_previous_model(
        self, lifecycle: ModelLifecycle, monkeypatch
    ) -> None:
        lifecycle.train(daily_cycle(60))
        assert lifecycle.is_trained

        def broken_build(lookback):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(lifecycle, "_build_model", broken_build)
        with pytest.raises(TrainingFailureError, match="out of memory"):
            lifecycle.train(daily_cycle(60, seed=1))

        self._assert_rolled_back(lifecycle)
        assert not lifecycle.is_training

    def test_diverging_loss_rolls_back(self) -> None:
        model = ModelLifecycle(
            ForecastConfig.preset("advanced", epochs=5, learning_rate=1e12)
        )
        data = daily_cycle(60) * 1e6

        with pytest.raises(TrainingFailureError, match="diverged"):
            model.train(data)

        self._assert_rolled_back(model)


def test_model_info_reports_config(trained_lifecycle: ModelLifecycle) -> None:
    info = trained_lifecycle.get_model_info()
    assert info["model_name"] == "ModelLifecycle"
    assert info["state"] == "trained"
    assert info["lookback"] == 12
    assert info["config"]["scaler_kind"] == "zscore"
    assert info["training"]["data_points"] == 72
