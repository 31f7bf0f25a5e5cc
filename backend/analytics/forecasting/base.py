"""
analytics/forecasting/base.py
─────────────────────────────
Shared types, pipeline configuration presets and input validation.

Classes
-------
ForecastConfig
    Frozen parameter set selecting scaler, lookback, epoch budget and
    variation strategy.  Replaces the three duplicated predictor classes.
Reading, Accuracy, ForecastResult, TrainingSummary
    Plain value objects passed between the pipeline stages.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from analytics.forecasting.errors import EmptySeriesError, InvalidDataError


# ─── Enumerations ─────────────────────────────────────────────────────────────


class ScalerKind(str, Enum):
    """Normalization applied before the series reaches the network."""

    ZSCORE = "zscore"
    MINMAX = "minmax"


class VariationStrategy(str, Enum):
    """How forecasts are made to look like real sensor output."""

    NONE = "none"
    POSTHOC = "posthoc"
    HOURLY = "hourly"


class ModelState(str, Enum):
    """Lifecycle states of the recurrent model."""

    UNTRAINED = "untrained"
    TRAINED = "trained"
    DISPOSED = "disposed"


# ─── Value objects ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Reading:
    """One sensor measurement: epoch milliseconds and concentration (ppm)."""

    timestamp: int
    value: float


@dataclass(frozen=True)
class Accuracy:
    """Backtest error metrics in the original (ppm) scale."""

    mae: float = 0.0
    rmse: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"mae": self.mae, "rmse": self.rmse}


@dataclass
class ForecastResult:
    """
    Output of one ``PredictionService.forecast()`` call.

    Attributes:
        values:     Forecast concentrations, one per hour, all ``>= 0``.
        timestamps: ``"YYYY-MM-DD HH:MM"`` labels, one hour apart.
        accuracy:   Backtest metrics computed on the held-out tail.
    """

    values: List[float]
    timestamps: List[str]
    accuracy: Accuracy = field(default_factory=Accuracy)


@dataclass(frozen=True)
class TrainingSummary:
    """Facts about a completed training run."""

    data_points: int
    lookback: int
    epochs: int
    final_loss: Optional[float]
    final_val_loss: Optional[float]
    trained_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["trained_at"] = self.trained_at.isoformat()
        return out


# ─── Configuration ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ForecastConfig:
    """
    Parameters of the forecasting pipeline, fixed at construction time.

    Args:
        scaler_kind:        Z-score or min-max normalization.
        lookback:           Input window length (hours).
        epochs:             Fixed training epoch budget (no early stopping).
        batch_size:         Mini-batch size during training.
        validation_split:   Trailing fraction of windows held out by Keras.
        variation_strategy: Realism stage applied to the raw rollout.
        backtest_size:      Maximum held-out points for the accuracy backtest.
        lstm_units:         Units of the two stacked LSTM layers.
        dense_units:        Units of the hidden dense layer.
        dropout:            Dropout rate after each LSTM layer.
        learning_rate:      Adam learning rate.
        random_state:       Seed for TensorFlow, NumPy and the variation RNG.
    """

    scaler_kind: ScalerKind = ScalerKind.ZSCORE
    lookback: int = 12
    epochs: int = 10
    batch_size: int = 64
    validation_split: float = 0.1
    variation_strategy: VariationStrategy = VariationStrategy.POSTHOC
    backtest_size: int = 20
    lstm_units: Tuple[int, int] = (64, 32)
    dense_units: int = 25
    dropout: float = 0.2
    learning_rate: float = 0.001
    random_state: Optional[int] = 42

    def __post_init__(self) -> None:
        if self.lookback < 1:
            raise ValueError(f"lookback must be >= 1, got {self.lookback}")
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 0.0 <= self.validation_split < 1.0:
            raise ValueError("validation_split must be in [0, 1)")
        if self.backtest_size < 1:
            raise ValueError("backtest_size must be >= 1")
        if (
            self.variation_strategy is VariationStrategy.HOURLY
            and self.scaler_kind is not ScalerKind.MINMAX
        ):
            raise ValueError(
                "variation_strategy 'hourly' clips into the min-max range and "
                "requires scaler_kind 'minmax'"
            )

    @property
    def min_training_points(self) -> int:
        """Smallest series ``train()`` accepts."""
        return self.lookback + 10

    @classmethod
    def preset(cls, name: str, **overrides: Any) -> "ForecastConfig":
        """
        Build a config from one of the named presets.

        Args:
            name:      ``standard``, ``hybrid`` or ``advanced``.
            overrides: Field values replacing the preset's.

        Raises:
            ValueError: If ``name`` is not a known preset.
        """
        key = name.strip().lower()
        if key not in PRESETS:
            available = ", ".join(PRESETS)
            raise ValueError(f"Unknown preset '{name}'. Available presets: {available}")
        params = {**PRESETS[key], **overrides}
        return cls(**params)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["scaler_kind"] = self.scaler_kind.value
        out["variation_strategy"] = self.variation_strategy.value
        out["lstm_units"] = list(self.lstm_units)
        return out


# ---------------------------------------------------------------------------
# Predictor variants
# ---------------------------------------------------------------------------
# standard – min-max scaling, 30 h lookback, long training, raw rollout.
# hybrid   – as standard, plus per-hour mean/std blended into every step.
# advanced – z-score scaling, 12 h lookback, 10 epochs to keep /train
#            interactive, post-hoc noise/spike/diurnal injection.
# ---------------------------------------------------------------------------
PRESETS: Dict[str, Dict[str, Any]] = {
    "standard": {
        "scaler_kind": ScalerKind.MINMAX,
        "lookback": 30,
        "epochs": 100,
        "batch_size": 32,
        "validation_split": 0.2,
        "variation_strategy": VariationStrategy.NONE,
        "backtest_size": 20,
        "lstm_units": (50, 50),
        "dense_units": 25,
    },
    "hybrid": {
        "scaler_kind": ScalerKind.MINMAX,
        "lookback": 30,
        "epochs": 100,
        "batch_size": 32,
        "validation_split": 0.2,
        "variation_strategy": VariationStrategy.HOURLY,
        "backtest_size": 30,
        "lstm_units": (50, 50),
        "dense_units": 25,
    },
    "advanced": {
        "scaler_kind": ScalerKind.ZSCORE,
        "lookback": 12,
        "epochs": 10,
        "batch_size": 64,
        "validation_split": 0.1,
        "variation_strategy": VariationStrategy.POSTHOC,
        "backtest_size": 20,
        "lstm_units": (64, 32),
        "dense_units": 25,
    },
}


# ─── Shared validation helpers ────────────────────────────────────────────────


def as_values(values: Sequence[float]) -> np.ndarray:
    """
    Convert ``values`` to a 1-D float array and reject unusable input.

    Raises:
        EmptySeriesError: No values at all.
        InvalidDataError: NaN or Infinity present.
    """
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    if arr.size == 0:
        raise EmptySeriesError("series is empty")
    if not np.isfinite(arr).all():
        bad = int((~np.isfinite(arr)).sum())
        raise InvalidDataError(
            f"series contains {bad} NaN/Infinity value(s); check the sensor feed"
        )
    return arr


def validate_series(series: pd.Series) -> np.ndarray:
    """
    Validate a reading series and return its values.

    Args:
        series: pd.Series with a DatetimeIndex, oldest → newest.

    Returns:
        The values as a float64 array.

    Raises:
        TypeError:        Wrong type or wrong index type.
        EmptySeriesError: Empty series.
        InvalidDataError: NaN or Infinity values present.
    """
    if not isinstance(series, pd.Series):
        raise TypeError("series must be a pandas Series")
    if not isinstance(series.index, pd.DatetimeIndex):
        raise TypeError("series must have a DatetimeIndex")
    return as_values(series.to_numpy())


def readings_to_series(readings: Sequence[Reading]) -> pd.Series:
    """
    Build the pipeline's series representation from ``Reading`` objects.

    The index is a UTC ``DatetimeIndex`` built from the epoch-millisecond
    timestamps.  Order is preserved; sorting is the provider's job.
    """
    index = pd.to_datetime([r.timestamp for r in readings], unit="ms", utc=True)
    return pd.Series([r.value for r in readings], index=index, name="value", dtype=float)
