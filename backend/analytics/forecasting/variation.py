"""
analytics/forecasting/variation.py
──────────────────────────────────
Statistically calibrated variation for otherwise smooth LSTM rollouts.

An autoregressive LSTM forecast converges towards the series mean within a
few dozen steps.  For the dashboard the forecast should look like sensor
output, so two strategies re-inject variation measured on the training
history:

posthoc
    ``apply_variation`` adds Gaussian noise, occasional spikes and a
    day/night factor to the finished forecast, in that order.
hourly
    ``hourly_adjuster`` blends per-hour-of-day statistics into every
    normalized prediction before it is fed back into the model.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from analytics.forecasting import scaler as scaling
from analytics.forecasting.errors import EmptySeriesError
from analytics.forecasting.scaler import ScalerState

logger = logging.getLogger(__name__)

NOISE_FRACTION = 0.15
SPIKE_RATE_BOOST = 1.5
DAY_HOURS = range(8, 21)
DAY_FACTOR = 0.10
NIGHT_FACTOR = -0.05

StepAdjuster = Callable[[int, float], float]


@dataclass(frozen=True)
class VariationProfile:
    """
    Variation statistics of the raw (unnormalized) training series.

    Attributes:
        mean:             Series mean.
        std:              Population standard deviation.
        spike_frequency:  Fraction of points classified as spikes.
        avg_spike_height: Mean excess over ``mean`` of the spike points.
    """

    mean: float
    std: float
    spike_frequency: float
    avg_spike_height: float


@dataclass(frozen=True)
class HourlyPattern:
    """Statistics of all readings taken during one hour of the day."""

    hour: int
    mean: float
    std: float
    min: float
    max: float


# ─── posthoc strategy ─────────────────────────────────────────────────────────


def analyze(series: Sequence[float]) -> VariationProfile:
    """
    Measure noise and spike statistics of ``series``.

    A point is a spike when it is above ``mean + 2·std`` and it rose by more
    than ``std`` since the previous reading.

    Raises:
        EmptySeriesError: If ``series`` has no points.
    """
    data = np.asarray(series, dtype=np.float64).reshape(-1)
    if data.size == 0:
        raise EmptySeriesError("cannot profile an empty series")

    mean = float(data.mean())
    std = float(data.std())

    diffs = np.diff(data)
    candidates = data[1:]
    spikes = candidates[(candidates > mean + 2 * std) & (diffs > std)]

    spike_frequency = spikes.size / data.size
    avg_spike_height = float((spikes - mean).mean()) if spikes.size else 2 * std

    logger.info(
        "Variation profile: mean=%.2f std=%.2f spike_freq=%.4f avg_spike=%.2f",
        mean,
        std,
        spike_frequency,
        avg_spike_height,
    )
    return VariationProfile(
        mean=mean,
        std=std,
        spike_frequency=float(spike_frequency),
        avg_spike_height=avg_spike_height,
    )


def diurnal_factor(hour: int) -> float:
    """Relative day/night adjustment: +10 % from 08:00 to 20:59, else −5 %."""
    return DAY_FACTOR if hour % 24 in DAY_HOURS else NIGHT_FACTOR


def apply_variation(
    profile: VariationProfile,
    raw_forecast: Sequence[float],
    start_hour: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Add noise, spikes and the diurnal factor to a forecast.

    Per step ``i`` (hour ``(start_hour + i) % 24``):

    1. add ``N(0, 0.15·std)``
    2. with probability ``1.5·spike_frequency`` add
       ``|N(0.5·avg_spike_height, 0.3·avg_spike_height)|``
    3. multiply by ``1 + diurnal_factor(hour)``
    4. clamp at 0

    Args:
        profile:      Statistics from ``analyze``.
        raw_forecast: Denormalized forecast values.
        start_hour:   Hour of day of the first step.
        rng:          Random generator; a fresh unseeded one by default.

    Returns:
        New array, same length as ``raw_forecast``.
    """
    rng = rng if rng is not None else np.random.default_rng()
    values = np.asarray(raw_forecast, dtype=np.float64).reshape(-1)
    n = values.size
    if n == 0:
        return values.copy()

    noise = rng.normal(0.0, NOISE_FRACTION * profile.std, size=n)
    spike_hit = rng.random(n) < SPIKE_RATE_BOOST * profile.spike_frequency
    spike_size = np.abs(
        rng.normal(0.5 * profile.avg_spike_height, 0.3 * profile.avg_spike_height, size=n)
    )
    hours = (start_hour + np.arange(n)) % 24
    factors = np.array([diurnal_factor(int(h)) for h in hours])

    varied = values + noise
    varied = varied + np.where(spike_hit, spike_size, 0.0)
    varied = varied * (1.0 + factors)
    varied = np.maximum(varied, 0.0)

    logger.debug(
        "Applied variation to %d values (%d spikes, start_hour=%d)",
        n,
        int(spike_hit.sum()),
        start_hour,
    )
    return varied


# ─── hourly strategy ──────────────────────────────────────────────────────────


def local_hours(index: pd.DatetimeIndex, tz: str = "UTC") -> np.ndarray:
    """Hour of day of each index entry in ``tz`` (naive indexes are taken as-is)."""
    if index.tz is not None:
        index = index.tz_convert(tz)
    return np.asarray(index.hour)


def analyze_hourly(series: pd.Series, tz: str = "UTC") -> Dict[int, HourlyPattern]:
    """
    Group ``series`` by hour of day and summarise each group.

    Hours with no readings are absent from the result.

    Args:
        series: Raw values with a DatetimeIndex.
        tz:     Timezone whose wall-clock hours define the groups.
    """
    hours = local_hours(series.index, tz)
    stats = (
        pd.Series(series.to_numpy(dtype=np.float64), index=hours)
        .groupby(level=0)
        .agg(["mean", lambda v: float(np.std(v)), "min", "max"])
    )
    stats.columns = ["mean", "std", "min", "max"]

    patterns = {
        int(hour): HourlyPattern(
            hour=int(hour),
            mean=float(row["mean"]),
            std=float(row["std"]),
            min=float(row["min"]),
            max=float(row["max"]),
        )
        for hour, row in stats.iterrows()
    }
    logger.info("Analyzed hourly patterns for %d hours", len(patterns))
    return patterns


def hourly_adjuster(
    patterns: Dict[int, HourlyPattern],
    state: ScalerState,
    start: pd.Timestamp,
    overall_std: float,
    rng: Optional[np.random.Generator] = None,
    tz: str = "UTC",
) -> StepAdjuster:
    """
    Build the per-step blend used by the hourly strategy.

    Step ``i`` falls in hour ``(start + i hours).hour``.  The returned
    callable maps a normalized prediction to
    ``clip(pred + modulation + noise, 0.1, 0.9)`` where ``modulation`` pulls
    towards that hour's normalized mean (half strength around a 0.5
    baseline) and ``noise`` is uniform with a width of 30 % of that hour's
    normalized std.

    Args:
        patterns:    Output of ``analyze_hourly``.
        state:       Min-max scaler fitted on the training series.
        start:       Timestamp of the first forecast step.
        overall_std: Std of the whole raw series, for hours with no pattern.
        rng:         Random generator.
        tz:          Timezone used for hour-of-day.
    """
    rng = rng if rng is not None else np.random.default_rng()
    start = pd.Timestamp(start)
    if start.tzinfo is not None:
        start = start.tz_convert(tz)
    fallback_width = overall_std * NOISE_FRACTION * 0.1 / state.scale

    def adjust(step: int, prediction: float) -> float:
        hour = (start + timedelta(hours=step)).hour
        pattern = patterns.get(hour)
        if pattern is None:
            modulation = 0.0
            width = fallback_width
        else:
            modulation = 0.5 * (float(scaling.apply(state, pattern.mean)) - 0.5)
            width = 0.3 * pattern.std / state.scale
        noise = (rng.random() - 0.5) * width
        return float(np.clip(prediction + modulation + noise, 0.1, 0.9))

    return adjust
