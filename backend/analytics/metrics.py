"""
analytics/metrics.py
────────────────────
Hold-out backtest of the trained LSTM.

The last ``test_size`` readings are treated as unknown, the model is rolled
forward from the window just before them, and the rollout is compared with
what the sensor actually reported.  No variation is added, so the metrics
describe the model rather than the random realism stage.

Used by ``PredictionService.forecast`` to fill ``accuracy`` in every
forecast response.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np

from analytics.forecasting import scaler as scaling
from analytics.forecasting.base import Accuracy
from analytics.forecasting.forecaster import denormalize_and_floor, iterate
from analytics.forecasting.lstm import ModelLifecycle
from analytics.forecasting.scaler import ScalerState
from analytics.forecasting.variation import StepAdjuster

logger = logging.getLogger(__name__)

# Default number of held-out points.
DEFAULT_TEST_SIZE = 20


def mae_rmse(actual: Sequence[float], predicted: Sequence[float]) -> Dict[str, float]:
    """Compute MAE and RMSE of two equal-length arrays."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape:
        raise ValueError(
            f"actual {actual.shape} and predicted {predicted.shape} must have the same shape"
        )
    errors = actual - predicted
    return {
        "mae": float(np.mean(np.abs(errors))),
        "rmse": float(np.sqrt(np.mean(errors ** 2))),
    }


def evaluate(
    series: Sequence[float],
    lookback: int,
    model: ModelLifecycle,
    state: ScalerState,
    test_size: int = DEFAULT_TEST_SIZE,
    adjust: Optional[StepAdjuster] = None,
) -> Accuracy:
    """
    Backtest the model on the tail of ``series``.

    Histories of ``2 * lookback`` points or fewer are too short for a
    meaningful backtest; the result is then ``Accuracy(0, 0)``.

    Args:
        series:    Raw history, oldest → newest.
        lookback:  Window length the model was trained with.
        model:     Trained lifecycle.
        state:     Scaler fitted at training time.
        test_size: Maximum held-out points.
        adjust:    Per-step hook for strategies that act inside the rollout.

    Returns:
        ``Accuracy`` in the original units.

    Raises:
        NotTrainedError: If ``model`` is not trained.
    """
    data = np.asarray(series, dtype=np.float64).reshape(-1)
    n = data.size
    if n <= lookback * 2:
        logger.info(
            "Backtest skipped: %d points is not more than 2 x lookback (%d)", n, lookback
        )
        return Accuracy()

    test_size = min(test_size, n - lookback - 1)
    seed = scaling.apply(state, data[-test_size - lookback : -test_size])
    actual = data[-test_size:]
    predicted = denormalize_and_floor(iterate(model, seed, test_size, adjust=adjust), state)

    scores = mae_rmse(actual, predicted)
    logger.info(
        "Backtest over %d points: MAE=%.2f RMSE=%.2f",
        test_size,
        scores["mae"],
        scores["rmse"],
    )
    return Accuracy(mae=scores["mae"], rmse=scores["rmse"])
