"""
analytics/forecasting/windowing.py
──────────────────────────────────
Supervised sequence construction for the recurrent model.

``build_training_set`` slides a window over the normalized series to
produce ``(input, target)`` pairs; ``last_window`` returns the seed for
inference.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from analytics.forecasting.errors import InsufficientDataError


@dataclass(frozen=True)
class TrainingSet:
    """
    Windowed training examples.

    Attributes:
        inputs:  shape (n_samples, lookback)
        targets: shape (n_samples,)
    """

    inputs: np.ndarray
    targets: np.ndarray

    def __len__(self) -> int:
        return int(self.targets.shape[0])

    def as_model_input(self) -> np.ndarray:
        """Inputs reshaped to (n_samples, lookback, 1) for the LSTM."""
        return self.inputs.reshape(self.inputs.shape[0], self.inputs.shape[1], 1)


def _check_lookback(lookback: int) -> None:
    if lookback < 1:
        raise ValueError(f"lookback must be >= 1, got {lookback}")


def build_training_set(normalized: Sequence[float], lookback: int) -> TrainingSet:
    """
    Produce exactly ``max(0, N - lookback)`` (window, next value) pairs.

    Args:
        normalized: Normalized 1-D series.
        lookback:   Window length.

    Returns:
        ``TrainingSet`` where ``inputs[i] = normalized[i:i+lookback]`` and
        ``targets[i] = normalized[i+lookback]``.

    Raises:
        InsufficientDataError: Fewer than 2 pairs; Keras needs at least two
                               to carve out a validation split.
    """
    _check_lookback(lookback)
    arr = np.asarray(normalized, dtype=np.float64).reshape(-1)
    count = max(0, arr.shape[0] - lookback)
    if count < 2:
        raise InsufficientDataError(
            f"Need at least {lookback + 2} points to build 2 windows of "
            f"lookback {lookback}, got {arr.shape[0]}"
        )

    # Drop the final point: it is a target, never the start of an input
    inputs = sliding_window_view(arr[:-1], lookback).copy()
    targets = arr[lookback:].copy()
    return TrainingSet(inputs=inputs, targets=targets)


def last_window(normalized: Sequence[float], lookback: int) -> np.ndarray:
    """
    Return the trailing ``lookback`` values as a fresh array.

    Raises:
        InsufficientDataError: If the series is shorter than ``lookback``.
    """
    _check_lookback(lookback)
    arr = np.asarray(normalized, dtype=np.float64).reshape(-1)
    if arr.shape[0] < lookback:
        raise InsufficientDataError(
            f"Need at least {lookback} points for an inference window, got {arr.shape[0]}"
        )
    return arr[-lookback:].copy()
