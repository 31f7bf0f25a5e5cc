"""
analytics/forecasting/forecaster.py
───────────────────────────────────
Autoregressive multi-step rollout on top of a trained ``ModelLifecycle``.

Each step predicts one hour ahead, drops the oldest value of the window and
appends the *normalized* prediction, so the model always consumes its own
output in the domain it was trained on.  Errors compound with the horizon;
there is no ground truth for the future to correct them with.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from analytics.forecasting import scaler as scaling
from analytics.forecasting import variation, windowing
from analytics.forecasting.lstm import ModelLifecycle
from analytics.forecasting.scaler import ScalerState
from analytics.forecasting.variation import StepAdjuster, VariationProfile

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"
STEP = pd.Timedelta(hours=1)

Origin = Union[int, datetime, pd.Timestamp]


def iterate(
    model: ModelLifecycle,
    seed_window: Sequence[float],
    steps: int,
    adjust: Optional[StepAdjuster] = None,
) -> np.ndarray:
    """
    Roll the model forward ``steps`` hours.

    Args:
        model:       Trained lifecycle.
        seed_window: ``lookback`` normalized values preceding the forecast.
        steps:       Horizon length.
        adjust:      Optional per-step hook ``(step, prediction) -> value``
                     applied before the value is fed back.

    Returns:
        Normalized predictions, length ``steps``.

    Raises:
        NotTrainedError: If ``model`` is not trained.
    """
    window = np.asarray(seed_window, dtype=np.float64).reshape(-1).copy()
    out = np.empty(steps, dtype=np.float64)

    for i in range(steps):
        prediction = model.predict(window)
        if adjust is not None:
            prediction = adjust(i, prediction)
        out[i] = prediction
        window = np.append(window[1:], prediction)

        if (i + 1) % 50 == 0:
            logger.debug("Generated %d/%d predictions", i + 1, steps)

    return out


def denormalize_and_floor(values: Sequence[float], state: ScalerState) -> np.ndarray:
    """Invert the normalization and clamp at zero; concentrations are never negative."""
    restored = scaling.invert(state, np.asarray(values, dtype=np.float64))
    return np.maximum(restored, 0.0)


def to_timestamp(origin: Origin) -> pd.Timestamp:
    """Coerce epoch milliseconds or a datetime to a UTC ``pd.Timestamp``."""
    if isinstance(origin, (int, np.integer)):
        return pd.Timestamp(int(origin), unit="ms", tz="UTC")
    ts = pd.Timestamp(origin)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def future_timestamps(origin: Origin, steps: int, tz: str = "UTC") -> List[str]:
    """
    Hourly labels for the forecast horizon.

    The first label is one hour after ``origin``; consecutive labels are
    exactly 3 600 000 ms apart.

    Args:
        origin: Timestamp of the last known reading.
        steps:  Number of labels.
        tz:     Timezone the labels are rendered in.
    """
    start = to_timestamp(origin) + STEP
    index = pd.date_range(start=start, periods=steps, freq=STEP)
    return index.tz_convert(tz).strftime(TIMESTAMP_FORMAT).tolist()


def full_forecast(
    series: Sequence[float],
    lookback: int,
    origin: Origin,
    steps: int,
    model: ModelLifecycle,
    state: ScalerState,
    variation_profile: Optional[VariationProfile] = None,
    adjust: Optional[StepAdjuster] = None,
    rng: Optional[np.random.Generator] = None,
    tz: str = "UTC",
    now: Optional[datetime] = None,
) -> Tuple[List[float], List[str]]:
    """
    Normalize, roll out, denormalize and optionally add variation.

    When ``variation_profile`` is given the post-hoc variation starts at the
    current wall-clock hour in ``tz`` (``now`` overrides the clock).

    Args:
        series:            Raw history, oldest → newest.
        lookback:          Window length the model was trained with.
        origin:            Timestamp of the last known reading.
        steps:             Horizon length.
        model:             Trained lifecycle.
        state:             Scaler fitted at training time.
        variation_profile: Enables the post-hoc variation stage.
        adjust:            Per-step hook passed to ``iterate``.
        rng:               Random generator for the variation stage.
        tz:                Timezone for labels and the diurnal hour.
        now:               Override of the wall clock.

    Returns:
        ``(values, timestamps)``, both of length ``steps``.
    """
    normalized = scaling.apply(state, np.asarray(series, dtype=np.float64))
    seed = windowing.last_window(normalized, lookback)

    logger.info("Generating %d-step forecast (lookback=%d)", steps, lookback)
    values = denormalize_and_floor(iterate(model, seed, steps, adjust=adjust), state)

    if variation_profile is not None:
        clock = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
        if clock.tzinfo is None:
            clock = clock.tz_localize("UTC")
        start_hour = clock.tz_convert(tz).hour
        values = variation.apply_variation(variation_profile, values, start_hour, rng=rng)

    if values.size:
        logger.info("Forecast range: %.2f – %.2f", float(values.min()), float(values.max()))

    return values.tolist(), future_timestamps(origin, steps, tz)
