"""
analytics/forecasting/service.py
────────────────────────────────
``PredictionService``: one forecasting session.

Lifecycle
---------
    service = PredictionService(ForecastConfig.preset("advanced"))
    service.train(series)                 # Untrained → Trained
    result = service.forecast(series, steps=168)
    service.dispose()                     # → Disposed (idempotent)

The caller owns the session object.  ``train`` and ``forecast`` are
admitted one at a time; an overlapping call raises ``ModelBusyError``
instead of racing on the model.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import pandas as pd

from analytics import metrics
from analytics.forecasting import forecaster, variation
from analytics.forecasting.base import (
    ForecastConfig,
    ForecastResult,
    ModelState,
    TrainingSummary,
    VariationStrategy,
    validate_series,
)
from analytics.forecasting.errors import (
    InsufficientDataError,
    ModelBusyError,
    NotTrainedError,
)
from analytics.forecasting.forecaster import Origin
from analytics.forecasting.lstm import ModelLifecycle
from analytics.forecasting.variation import HourlyPattern, StepAdjuster, VariationProfile

logger = logging.getLogger(__name__)


class PredictionService:
    """
    Façade combining scaler, windower, LSTM lifecycle, forecaster,
    variation profiler and backtester.

    Args:
        config: Pipeline configuration; defaults to the ``advanced`` preset.
        tz:     Timezone for hour-of-day logic and timestamp labels.
        seed:   Seed for the variation RNG; ``None`` draws fresh entropy.
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        tz: str = "UTC",
        seed: Optional[int] = None,
    ) -> None:
        self.config = config or ForecastConfig.preset("advanced")
        self.tz = tz

        self._lifecycle = ModelLifecycle(self.config)
        self._profile: Optional[VariationProfile] = None
        self._hourly: Dict[int, HourlyPattern] = {}
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self._run_cancel: Optional[threading.Event] = None

    # ── properties ────────────────────────────────────────────────────────

    @property
    def state(self) -> ModelState:
        return self._lifecycle.state

    @property
    def is_trained(self) -> bool:
        return self._lifecycle.is_trained

    @property
    def is_training(self) -> bool:
        return self._run_cancel is not None or self._lifecycle.is_training

    @property
    def variation_profile(self) -> Optional[VariationProfile]:
        return self._profile

    @property
    def hourly_patterns(self) -> Dict[int, HourlyPattern]:
        return dict(self._hourly)

    # ── internal helpers ──────────────────────────────────────────────────

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ModelBusyError(f"Cannot {operation}: the model is busy with another request")
        try:
            yield
        finally:
            self._lock.release()

    def _adjuster(self, start: pd.Timestamp, overall_std: float) -> Optional[StepAdjuster]:
        if self.config.variation_strategy is not VariationStrategy.HOURLY:
            return None
        return variation.hourly_adjuster(
            self._hourly,
            self._lifecycle.scaler,
            start,
            overall_std,
            rng=self._rng,
            tz=self.tz,
        )

    # ── train ─────────────────────────────────────────────────────────────

    def train(
        self,
        series: pd.Series,
        cancel: Optional[threading.Event] = None,
    ) -> TrainingSummary:
        """
        Train a fresh model on ``series``.

        Args:
            series: Raw readings with a DatetimeIndex, oldest → newest.
            cancel: Token owned by the caller; once set, this call stops
                    before or during the fit and installs nothing.
                    ``cancel()`` and ``dispose()`` have the same effect
                    from the moment the call is admitted.

        Returns:
            ``TrainingSummary`` of the run.

        Raises:
            TypeError:             ``series`` is not a DatetimeIndex-ed pd.Series.
            EmptySeriesError:      ``series`` is empty.
            InvalidDataError:      NaN/Infinity present.
            InsufficientDataError: Fewer than ``lookback + 10`` points.
            ModelBusyError:        Another train/forecast is running.
            TrainingCancelledError: ``cancel`` was set or ``cancel()/dispose()`` ran.
            TrainingFailureError:  Training failed; the model is untrained.
        """
        with self._exclusive("train"):
            self._run_cancel = threading.Event()
            try:
                events = [self._run_cancel]
                if cancel is not None:
                    events.append(cancel)
                return self._train(series, events)
            finally:
                self._run_cancel = None

    def _train(self, series: pd.Series, cancel_events: List[threading.Event]) -> TrainingSummary:
        values = validate_series(series)
        if values.size < self.config.min_training_points:
            raise InsufficientDataError(
                f"Insufficient data: need at least {self.config.min_training_points} "
                f"points, got {values.size}"
            )

        profile = variation.analyze(values)
        hourly = (
            variation.analyze_hourly(series, tz=self.tz)
            if self.config.variation_strategy is VariationStrategy.HOURLY
            else {}
        )

        try:
            summary = self._lifecycle.train(values, cancel_events=cancel_events)
        except Exception:
            # Statistics follow the model: kept only while it survives
            if not self._lifecycle.is_trained:
                self._profile = None
                self._hourly = {}
            raise

        self._profile = profile
        self._hourly = hourly
        return summary

    # ── forecast ──────────────────────────────────────────────────────────

    def forecast(
        self,
        series: pd.Series,
        steps: int = 168,
        origin: Optional[Origin] = None,
    ) -> ForecastResult:
        """
        Forecast ``steps`` hours past the end of ``series``.

        Args:
            series: Raw readings with a DatetimeIndex; the last ``lookback``
                    points seed the rollout, the tail feeds the backtest.
            steps:  Horizon in hours.
            origin: Timestamp of the last known reading; defaults to the
                    last index entry.

        Returns:
            ``ForecastResult`` with ``steps`` values, labels and accuracy.

        Raises:
            NotTrainedError:       No trained model (never trained or disposed).
            ValueError:            ``steps`` < 1.
            InsufficientDataError: ``series`` shorter than the lookback.
            ModelBusyError:        Another train/forecast is running.
        """
        if steps < 1:
            raise ValueError(f"steps must be >= 1, got {steps}")

        with self._exclusive("forecast"):
            if not self._lifecycle.is_trained:
                raise NotTrainedError(
                    f"Model is {self._lifecycle.state.value}. Call train() first."
                )
            values = validate_series(series)
            state = self._lifecycle.scaler
            lookback = self._lifecycle.lookback
            origin = origin if origin is not None else series.index[-1]
            origin_ts = forecaster.to_timestamp(origin)
            overall_std = float(values.std())

            posthoc = (
                self._profile
                if self.config.variation_strategy is VariationStrategy.POSTHOC
                else None
            )
            future, labels = forecaster.full_forecast(
                values,
                lookback,
                origin_ts,
                steps,
                self._lifecycle,
                state,
                variation_profile=posthoc,
                adjust=self._adjuster(origin_ts + forecaster.STEP, overall_std),
                rng=self._rng,
                tz=self.tz,
            )

            test_size = min(self.config.backtest_size, values.size - lookback - 1)
            backtest_start = (
                forecaster.to_timestamp(series.index[-test_size]) if test_size > 0 else origin_ts
            )
            accuracy = metrics.evaluate(
                values,
                lookback,
                self._lifecycle,
                state,
                test_size=self.config.backtest_size,
                adjust=self._adjuster(backtest_start, overall_std),
            )

        return ForecastResult(values=future, timestamps=labels, accuracy=accuracy)

    # ── cancel / dispose ──────────────────────────────────────────────────

    def cancel(self) -> bool:
        """
        Stop an in-flight ``train()``.

        The request sticks to the admitted call: one still validating its
        input stops before fitting, one fitting stops at its next batch.

        Returns:
            True if a ``train()`` call was in progress.
        """
        token = self._run_cancel
        if token is None:
            return False
        token.set()
        logger.info("Cancellation requested for in-flight training")
        return True

    def dispose(self) -> None:
        """
        Release the model and every statistic derived from training.

        Cancels an in-flight training run and waits for the running
        train/forecast call to return; never raises.
        """
        self.cancel()
        with self._lock:
            self._lifecycle.dispose()
            self._profile = None
            self._hourly = {}

    def get_model_info(self) -> Dict[str, Any]:
        """Return session metadata for logging / API responses."""
        info = self._lifecycle.get_model_info()
        info.update(
            {
                "timezone": self.tz,
                "variation_profile": (
                    {
                        "mean": self._profile.mean,
                        "std": self._profile.std,
                        "spike_frequency": self._profile.spike_frequency,
                        "avg_spike_height": self._profile.avg_spike_height,
                    }
                    if self._profile
                    else None
                ),
            }
        )
        return info
