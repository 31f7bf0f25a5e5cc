"""
analytics/forecasting/errors.py
───────────────────────────────
Exception taxonomy for the forecasting pipeline.

Every error is raised synchronously to the caller.  The HTTP layer maps
them onto status codes in ``app/api/v1/endpoints/predictions.py``.
"""


class ForecastingError(Exception):
    """Base class for every error raised by the forecasting pipeline."""


class EmptySeriesError(ForecastingError):
    """The input series has no points at all."""


class InsufficientDataError(ForecastingError):
    """Not enough points to scale, window, or train on."""


class InvalidDataError(ForecastingError):
    """The input series contains NaN or Infinity values."""


class NotTrainedError(ForecastingError):
    """Prediction requested on an untrained or disposed model."""


class TrainingFailureError(ForecastingError):
    """Training failed internally; the model was rolled back to untrained."""


class TrainingCancelledError(TrainingFailureError):
    """Training was cancelled before the epoch budget was exhausted."""


class ModelBusyError(ForecastingError):
    """Another train/forecast call is already running on this model."""
