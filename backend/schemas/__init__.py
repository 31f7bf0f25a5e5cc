"""
Pydantic schemas for request/response serialization.

Separate from the forecasting core (analytics) and routes (HTTP layer).
"""

from schemas.predictions import (
    AccuracyOut,
    DisposeResponse,
    ForecastResponse,
    PredictionOut,
    StatusResponse,
    TrainResponse,
)

__all__ = [
    "AccuracyOut",
    "DisposeResponse",
    "ForecastResponse",
    "PredictionOut",
    "StatusResponse",
    "TrainResponse",
]
