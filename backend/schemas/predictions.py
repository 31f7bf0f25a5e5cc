"""
Pydantic schemas for the prediction endpoints.

Envelope fields are camelCase on the wire (``dataPoints``,
``generatedAt``); the forecast payload keeps snake_case keys
(``future_values``).
"""

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from analytics.forecasting import ForecastResult


class _CamelModel(BaseModel):
    """Base for envelopes serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class TrainResponse(_CamelModel):
    """
    Result of POST /api/v1/predictions/train.

    Attributes:
        success:       Always ``True`` (errors are raised as HTTP errors).
        message:       Human-readable summary.
        data_points:   Readings the model was trained on.
        days_used:     Distinct days covered by those readings.
        training_date: UTC completion time.
        training:      Loss figures and parameters of the run.
    """

    success: bool = True
    message: str
    data_points: int
    days_used: int
    training_date: datetime
    training: Dict[str, Any] = Field(default_factory=dict)


class AccuracyOut(BaseModel):
    """Backtest metrics, rounded to 4 decimals."""

    mae: float
    rmse: float


class PredictionOut(BaseModel):
    """
    Forecast payload.

    Attributes:
        future_values: Hourly concentrations (ppm), rounded to 2 decimals.
        future_dates:  ``YYYY-MM-DD HH:MM`` labels, one per value.
        accuracy:      Hold-out backtest of the trained model.
    """

    future_values: List[float]
    future_dates: List[str]
    accuracy: AccuracyOut

    @classmethod
    def from_result(cls, result: ForecastResult) -> "PredictionOut":
        """Round a core ``ForecastResult`` for the wire."""
        return cls(
            future_values=[round(v, 2) for v in result.values],
            future_dates=list(result.timestamps),
            accuracy=AccuracyOut(
                mae=round(result.accuracy.mae, 4),
                rmse=round(result.accuracy.rmse, 4),
            ),
        )


class ForecastResponse(_CamelModel):
    """Result of GET /api/v1/predictions/forecast."""

    success: bool = True
    prediction: PredictionOut
    generated_at: datetime
    steps_generated: int


class DisposeResponse(_CamelModel):
    """Result of POST /api/v1/predictions/dispose; never fails."""

    success: bool = True
    message: str = "Model disposed successfully"


class StatusResponse(_CamelModel):
    """Result of GET /api/v1/predictions/status."""

    state: str
    is_trained: bool
    is_training: bool
    preset: str
    model_info: Dict[str, Any]
