"""
analytics/forecasting/lstm.py
─────────────────────────────
Lifecycle owner of the LSTM regressor: Untrained → Trained → Disposed.

Architecture
------------
Input (lookback, 1)
  → LSTM(u1, return_sequences=True) → Dropout
  → LSTM(u2) → Dropout
  → Dense(d, relu) → Dense(1)
  → normalized next-hour concentration

Training runs for a fixed epoch budget with no early stopping, which keeps
``/train`` inside the dashboard's patience.  Any internal failure rolls the
lifecycle back to Untrained; no partial model or scaler survives it.

Requires
--------
    pip install tensorflow>=2.15.0
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import numpy as np
import tensorflow as tf
from tensorflow.keras import callbacks, layers

from analytics.forecasting import scaler as scaling
from analytics.forecasting import windowing
from analytics.forecasting.base import (
    ForecastConfig,
    ModelState,
    TrainingSummary,
    as_values,
)
from analytics.forecasting.errors import (
    InsufficientDataError,
    ModelBusyError,
    NotTrainedError,
    TrainingCancelledError,
    TrainingFailureError,
)
from analytics.forecasting.scaler import ScalerState

logger = logging.getLogger(__name__)

# Extra points required beyond one lookback window before training.
MIN_EXTRA_POINTS = 10


# ─── Keras callbacks ──────────────────────────────────────────────────────────


class _EpochLogger(callbacks.Callback):
    """Log loss roughly five times per run plus the final epoch."""

    def __init__(self, epochs: int) -> None:
        super().__init__()
        self.epochs = epochs
        self.every = max(epochs // 5, 1)

    def on_epoch_end(self, epoch: int, logs: Optional[Dict[str, float]] = None) -> None:
        logs = logs or {}
        if epoch % self.every == 0 or epoch == self.epochs - 1:
            logger.info(
                "Epoch %d/%d: loss=%.6f val_loss=%s",
                epoch + 1,
                self.epochs,
                logs.get("loss", float("nan")),
                "%.6f" % logs["val_loss"] if "val_loss" in logs else "n/a",
            )


class _StopOnEvent(callbacks.Callback):
    """Stop ``fit`` at the next batch boundary once any of ``events`` is set."""

    def __init__(self, *events: threading.Event) -> None:
        super().__init__()
        self._events = events
        self.triggered = False

    @property
    def requested(self) -> bool:
        return any(event.is_set() for event in self._events)

    def on_train_batch_end(self, batch: int, logs: Optional[Dict[str, float]] = None) -> None:
        if self.requested:
            self.triggered = True
            self.model.stop_training = True


# ─── Lifecycle ────────────────────────────────────────────────────────────────


class ModelLifecycle:
    """
    Owns the Keras model and the scaler it was trained with.

    No other object holds a reference to the underlying model or its
    tensors; ``predict`` returns a plain ``float``.

    Args:
        config: Pipeline configuration (architecture and default training
                parameters).
    """

    def __init__(self, config: Optional[ForecastConfig] = None) -> None:
        self.config = config or ForecastConfig()

        self._model: Optional[tf.keras.Model] = None
        self._scaler: Optional[ScalerState] = None
        self._lookback: int = self.config.lookback
        self._summary: Optional[TrainingSummary] = None
        self._state: ModelState = ModelState.UNTRAINED

        self._train_lock = threading.Lock()
        self._cancel = threading.Event()

    # ── properties ────────────────────────────────────────────────────────

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_trained(self) -> bool:
        return self._state is ModelState.TRAINED and self._model is not None

    @property
    def is_training(self) -> bool:
        return self._train_lock.locked()

    @property
    def lookback(self) -> int:
        return self._lookback

    @property
    def scaler(self) -> ScalerState:
        """The scaler fitted by the last successful ``train()``."""
        self._check_trained()
        return self._scaler

    @property
    def summary(self) -> Optional[TrainingSummary]:
        return self._summary

    # ── internal helpers ──────────────────────────────────────────────────

    def _check_trained(self) -> None:
        if not self.is_trained or self._scaler is None:
            raise NotTrainedError(
                f"Model is {self._state.value}. Call train() before predicting."
            )

    def _build_model(self, lookback: int) -> tf.keras.Model:
        """Construct and compile the stacked LSTM regressor."""
        first_units, second_units = self.config.lstm_units
        model = tf.keras.Sequential(
            [
                layers.Input(shape=(lookback, 1)),
                layers.LSTM(first_units, return_sequences=True),
                layers.Dropout(self.config.dropout),
                layers.LSTM(second_units),
                layers.Dropout(self.config.dropout),
                layers.Dense(self.config.dense_units, activation="relu"),
                layers.Dense(1),
            ],
            name="lstm_gas_forecaster",
        )
        model.compile(
            optimizer=tf.keras.optimizers.Adam(learning_rate=self.config.learning_rate),
            loss="mse",
            metrics=["mae"],
        )
        return model

    def _release(self) -> None:
        """Drop the model and everything derived from the last fit."""
        self._model = None
        self._scaler = None
        self._summary = None

    def _rollback(self) -> None:
        self._release()
        self._state = ModelState.UNTRAINED

    # ── train ─────────────────────────────────────────────────────────────

    def train(
        self,
        series: Sequence[float],
        lookback: Optional[int] = None,
        epochs: Optional[int] = None,
        batch_size: Optional[int] = None,
        validation_split: Optional[float] = None,
        cancel_events: Sequence[threading.Event] = (),
    ) -> TrainingSummary:
        """
        Fit the scaler, window the series and train a fresh network.

        Parameters left as ``None`` come from ``self.config``.  Input
        validation happens before anything is touched, so a rejected call
        leaves a previously trained model in place.  The same holds for a
        ``cancel_events`` token that is already set when the call starts.

        Args:
            series:           Raw readings, oldest → newest.
            lookback:         Input window length.
            epochs:           Fixed epoch budget.
            batch_size:       Mini-batch size.
            validation_split: Trailing fraction of windows used for val_loss.
            cancel_events:    Caller-owned tokens; setting any of them stops
                              this run like ``cancel()`` does.

        Returns:
            ``TrainingSummary`` of the run.

        Raises:
            ModelBusyError:         Another ``train()`` is in flight.
            EmptySeriesError:       ``series`` is empty.
            InvalidDataError:       NaN/Infinity in ``series``.
            InsufficientDataError:  Fewer than ``lookback + 10`` points.
            TrainingCancelledError: ``cancel()``, ``dispose()`` or a token stopped it.
            TrainingFailureError:   Divergence or any Keras/TensorFlow error.
        """
        if not self._train_lock.acquire(blocking=False):
            raise ModelBusyError("A training run is already in progress for this model")
        try:
            return self._train(
                series,
                lookback=lookback if lookback is not None else self.config.lookback,
                epochs=epochs if epochs is not None else self.config.epochs,
                batch_size=batch_size if batch_size is not None else self.config.batch_size,
                validation_split=(
                    validation_split
                    if validation_split is not None
                    else self.config.validation_split
                ),
                cancel_events=cancel_events,
            )
        finally:
            # A cancel only ever targets the run holding the lock
            self._cancel.clear()
            self._train_lock.release()

    def _train(
        self,
        series: Sequence[float],
        lookback: int,
        epochs: int,
        batch_size: int,
        validation_split: float,
        cancel_events: Sequence[threading.Event] = (),
    ) -> TrainingSummary:
        values = as_values(series)
        if values.size < lookback + MIN_EXTRA_POINTS:
            raise InsufficientDataError(
                f"Insufficient data: need at least {lookback + MIN_EXTRA_POINTS} "
                f"points for lookback {lookback}, got {values.size}"
            )

        stopper = _StopOnEvent(self._cancel, *cancel_events)
        if stopper.requested:
            logger.info("Training cancelled before it started")
            raise TrainingCancelledError("Training was cancelled before it started")

        logger.info("Training LSTM on %d samples (lookback=%d)", values.size, lookback)
        self._release()
        self._lookback = lookback

        state = scaling.fit(values, self.config.scaler_kind)
        dataset = windowing.build_training_set(scaling.apply(state, values), lookback)
        logger.info(
            "Scaler %s: location=%.2f scale=%.2f; %d training windows",
            state.kind.value,
            state.location,
            state.scale,
            len(dataset),
        )

        started = time.perf_counter()
        try:
            if self.config.random_state is not None:
                tf.keras.utils.set_random_seed(self.config.random_state)
            model = self._build_model(lookback)
            history = model.fit(
                dataset.as_model_input().astype(np.float32),
                dataset.targets.reshape(-1, 1).astype(np.float32),
                epochs=epochs,
                batch_size=batch_size,
                validation_split=validation_split if validation_split > 0 else 0.0,
                verbose=0,
                callbacks=[callbacks.TerminateOnNaN(), _EpochLogger(epochs), stopper],
            )
        except Exception as exc:
            self._rollback()
            logger.error("LSTM training failed: %s", exc)
            raise TrainingFailureError(f"LSTM training failed: {exc}") from exc

        # A cancel landing after the last batch still discards the run
        if stopper.triggered or stopper.requested:
            self._rollback()
            logger.warning("LSTM training cancelled after %.1fs", time.perf_counter() - started)
            raise TrainingCancelledError("Training was cancelled before completion")

        losses = history.history.get("loss", [])
        if not losses or not np.all(np.isfinite(losses)):
            self._rollback()
            raise TrainingFailureError(
                "Training diverged: loss became NaN or Infinity. "
                "Check the input series for extreme values."
            )

        val_losses = history.history.get("val_loss")
        self._model = model
        self._scaler = state
        self._state = ModelState.TRAINED
        self._summary = TrainingSummary(
            data_points=int(values.size),
            lookback=lookback,
            epochs=len(losses),
            final_loss=float(losses[-1]),
            final_val_loss=float(val_losses[-1]) if val_losses else None,
            trained_at=datetime.now(timezone.utc),
        )
        logger.info(
            "LSTM trained in %.1fs, final loss %.6f",
            time.perf_counter() - started,
            self._summary.final_loss,
        )
        return self._summary

    # ── predict ───────────────────────────────────────────────────────────

    def predict(self, window: Sequence[float]) -> float:
        """
        One-step-ahead prediction in the normalized domain.

        Args:
            window: Exactly ``lookback`` normalized values.

        Returns:
            The normalized prediction; the caller denormalizes it.

        Raises:
            NotTrainedError: Model is untrained or disposed.
            ValueError:      ``window`` has the wrong length.
        """
        self._check_trained()
        arr = np.asarray(window, dtype=np.float32).reshape(-1)
        if arr.size != self._lookback:
            raise ValueError(
                f"window must have exactly {self._lookback} values, got {arr.size}"
            )

        x = tf.convert_to_tensor(arr.reshape(1, self._lookback, 1))
        y = self._model(x, training=False)
        value = float(np.asarray(y)[0, 0])
        # Release both eager tensors before the caller's next step
        del x, y
        return value

    # ── cancel / dispose ──────────────────────────────────────────────────

    def cancel(self) -> bool:
        """
        Ask an in-flight ``train()`` to stop at its next batch.

        Returns:
            True if a training run was in progress.
        """
        running = self.is_training
        if running:
            self._cancel.set()
            logger.info("Cancellation requested for in-flight training")
        return running

    def dispose(self) -> None:
        """
        Release the model and its scaler; safe to call repeatedly.

        An in-flight training run is cancelled and awaited first.
        """
        self.cancel()
        with self._train_lock:
            if self._state is ModelState.DISPOSED:
                return
            self._release()
            self._state = ModelState.DISPOSED
        logger.info("Model disposed")

    def get_model_info(self) -> Dict[str, Any]:
        """Return lifecycle metadata for logging / API responses."""
        return {
            "model_name": self.__class__.__name__,
            "state": self._state.value,
            "lookback": self._lookback,
            "config": self.config.to_dict(),
            "training": self._summary.to_dict() if self._summary else None,
        }
