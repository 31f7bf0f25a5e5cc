"""
analytics/forecasting — Gas-concentration forecasting pipeline.

Public API
----------
    from analytics.forecasting import ForecastConfig, PredictionService
    from analytics.forecasting import ModelLifecycle
    from analytics.forecasting import NotTrainedError, InsufficientDataError
"""

from analytics.forecasting.base import (
    PRESETS,
    Accuracy,
    ForecastConfig,
    ForecastResult,
    ModelState,
    Reading,
    ScalerKind,
    TrainingSummary,
    VariationStrategy,
    readings_to_series,
)
from analytics.forecasting.errors import (
    EmptySeriesError,
    ForecastingError,
    InsufficientDataError,
    InvalidDataError,
    ModelBusyError,
    NotTrainedError,
    TrainingCancelledError,
    TrainingFailureError,
)
from analytics.forecasting.scaler import ScalerState
from analytics.forecasting.lstm import ModelLifecycle
from analytics.forecasting.service import PredictionService

__all__ = [
    "PRESETS",
    "Accuracy",
    "ForecastConfig",
    "ForecastResult",
    "ModelState",
    "Reading",
    "ScalerKind",
    "TrainingSummary",
    "VariationStrategy",
    "readings_to_series",
    "EmptySeriesError",
    "ForecastingError",
    "InsufficientDataError",
    "InvalidDataError",
    "ModelBusyError",
    "NotTrainedError",
    "TrainingCancelledError",
    "TrainingFailureError",
    "ScalerState",
    "ModelLifecycle",
    "PredictionService",
]
