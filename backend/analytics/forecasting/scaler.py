"""
analytics/forecasting/scaler.py
───────────────────────────────
Invertible normalization of a one-dimensional series.

The statistics are fitted with scikit-learn (``StandardScaler`` for
z-score, ``MinMaxScaler`` for min-max) and frozen into a ``ScalerState``
so the same fit is reused by every later prediction.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from sklearn.preprocessing import MinMaxScaler, StandardScaler

from analytics.forecasting.base import ScalerKind
from analytics.forecasting.errors import EmptySeriesError

logger = logging.getLogger(__name__)

ArrayOrFloat = Union[float, np.ndarray]


@dataclass(frozen=True)
class ScalerState:
    """
    Fitted normalization parameters.

    Attributes:
        kind:     Which normalization was fitted.
        location: Mean (z-score) or minimum (min-max).
        scale:    Std (z-score) or range (min-max); always ``> 0``.
    """

    kind: ScalerKind
    location: float
    scale: float


def fit(series: Sequence[float], kind: ScalerKind = ScalerKind.ZSCORE) -> ScalerState:
    """
    Fit a scaler over the whole of ``series``.

    A constant series has no spread; ``scale`` is then 1 so ``apply`` never
    divides by zero.

    Args:
        series: Raw values.
        kind:   ``ScalerKind.ZSCORE`` or ``ScalerKind.MINMAX``.

    Returns:
        Immutable ``ScalerState``.

    Raises:
        EmptySeriesError: If ``series`` has no points.
    """
    arr = np.asarray(series, dtype=np.float64).reshape(-1, 1)
    if arr.shape[0] == 0:
        raise EmptySeriesError("cannot fit a scaler on an empty series")

    kind = ScalerKind(kind)
    if kind is ScalerKind.ZSCORE:
        est = StandardScaler().fit(arr)
        location = float(est.mean_[0])
        # scale_ is the population std with zeros already replaced by 1
        scale = float(est.scale_[0])
    else:
        est = MinMaxScaler(feature_range=(0, 1)).fit(arr)
        location = float(est.data_min_[0])
        scale = float(est.data_range_[0])

    if not scale > 0:
        scale = 1.0

    state = ScalerState(kind=kind, location=location, scale=scale)
    logger.debug(
        "Scaler fitted (%s): location=%.4f scale=%.4f", kind.value, location, scale
    )
    return state


def apply(state: ScalerState, value: ArrayOrFloat) -> ArrayOrFloat:
    """Normalize ``value`` (scalar or array) with a fitted state."""
    return (value - state.location) / state.scale


def invert(state: ScalerState, normalized: ArrayOrFloat) -> ArrayOrFloat:
    """Map normalized values back to the original scale."""
    return normalized * state.scale + state.location
