"""
app/api/v1/endpoints/predictions.py
────────────────────────────────────
Gas-concentration prediction endpoints.

Routes
------
POST /api/v1/predictions/train     Train the LSTM on the full sensor history.
GET  /api/v1/predictions/forecast  Hourly forecast past the newest reading.
POST /api/v1/predictions/dispose   Release the model (always succeeds).
GET  /api/v1/predictions/status    Session state and last training summary.

Design note
-----------
Training and inference are CPU-bound.  Each endpoint offloads the work to
a thread-pool executor so FastAPI's asyncio event loop is never blocked.
Training is awaited with ``TRAIN_TIMEOUT_SECONDS``; on timeout the request's
cancel token is set, so the run stops wherever it is (history fetch,
validation or the fit itself) and installs no model.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from supabase import Client

from analytics.forecasting import (
    ForecastingError,
    InsufficientDataError,
    ModelBusyError,
    NotTrainedError,
    PredictionService,
    TrainingCancelledError,
    TrainingFailureError,
)
from app.api.dependencies import get_db, get_prediction_service
from core.config import Settings, get_settings
from data_engine import HistoricalDataset, HistoryRepository
from schemas.predictions import (
    DisposeResponse,
    ForecastResponse,
    PredictionOut,
    StatusResponse,
    TrainResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()

# Model work is CPU-bound; the service runs one train/forecast at a time.
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="predictions")


# ── helpers ───────────────────────────────────────────────────────────────────


def _load_history(db: Client, settings: Settings) -> HistoricalDataset:
    """Read the complete sensor history through the data engine."""
    repo = HistoryRepository(
        db,
        table=settings.READINGS_TABLE,
        page_size=settings.READINGS_PAGE_SIZE,
        tz=settings.FORECAST_TIMEZONE,
    )
    return repo.build_complete_dataset()


def _run_train(
    db: Client,
    service: PredictionService,
    settings: Settings,
    cancel: threading.Event,
) -> TrainResponse:
    """Fetch history and train synchronously (called inside thread pool)."""
    dataset = _load_history(db, settings)
    if cancel.is_set():
        raise TrainingCancelledError("Training was cancelled while loading history")
    if dataset.total_points < settings.MIN_TRAINING_POINTS:
        raise InsufficientDataError(
            f"Insufficient data for training: need at least "
            f"{settings.MIN_TRAINING_POINTS} readings, got {dataset.total_points} "
            f"from {dataset.days} day(s)"
        )

    summary = service.train(dataset.to_series(), cancel=cancel)
    return TrainResponse(
        message=(
            f"Model trained with {dataset.total_points} readings "
            f"from {dataset.days} day(s)"
        ),
        data_points=dataset.total_points,
        days_used=dataset.days,
        training_date=summary.trained_at,
        training=summary.to_dict(),
    )


def _run_forecast(
    db: Client, service: PredictionService, settings: Settings, steps: int
) -> ForecastResponse:
    """Fetch history and forecast synchronously (called inside thread pool)."""
    if not service.is_trained:
        raise NotTrainedError("Model not trained. Call /train first.")

    dataset = _load_history(db, settings)
    if dataset.total_points == 0:
        raise InsufficientDataError("No historical data available")

    result = service.forecast(
        dataset.to_series(), steps=steps, origin=dataset.last_timestamp
    )
    return ForecastResponse(
        prediction=PredictionOut.from_result(result),
        generated_at=datetime.now(timezone.utc),
        steps_generated=len(result.values),
    )


# ── endpoints ─────────────────────────────────────────────────────────────────


@router.post("/train", response_model=TrainResponse, summary="Train the forecasting model")
async def train_model(
    db: Client = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
    settings: Settings = Depends(get_settings),
) -> TrainResponse:
    """
    Train a fresh LSTM on every reading stored in Supabase.

    Replaces any previously trained model once training succeeds.

    Returns:
        Data volume used and the completion time.

    Raises:
        HTTPException 400: Too few readings, NaN/Infinity in the history.
        HTTPException 409: Another train/forecast is running, or training
                           was cancelled by a dispose.
        HTTPException 504: Training exceeded ``TRAIN_TIMEOUT_SECONDS``.
        HTTPException 500: Training failed internally.
    """
    cancel = threading.Event()
    loop = asyncio.get_event_loop()
    future = loop.run_in_executor(_executor, _run_train, db, service, settings, cancel)
    try:
        return await asyncio.wait_for(future, timeout=settings.TRAIN_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as exc:
        cancel.set()
        logger.warning("Training timed out after %gs", settings.TRAIN_TIMEOUT_SECONDS)
        raise HTTPException(
            status_code=504,
            detail=f"Training timed out after {settings.TRAIN_TIMEOUT_SECONDS:g}s and was cancelled",
        ) from exc
    except ModelBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TrainingCancelledError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TrainingFailureError as exc:
        logger.exception("Model training failed")
        raise HTTPException(status_code=500, detail="Model training failed") from exc
    except (ForecastingError, TypeError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Training request failed")
        raise HTTPException(status_code=500, detail="Model training failed") from exc


@router.get("/forecast", response_model=ForecastResponse, summary="Hourly gas forecast")
async def get_forecast(
    steps: Optional[int] = Query(
        default=None,
        ge=1,
        description="Hours to forecast; defaults to 168 and is capped at 336.",
    ),
    db: Client = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
    settings: Settings = Depends(get_settings),
) -> ForecastResponse:
    """
    Forecast ``steps`` hourly concentrations past the newest reading.

    Args:
        steps: Horizon in hours.

    Returns:
        Values (ppm), ``YYYY-MM-DD HH:MM`` labels and backtest accuracy.

    Raises:
        HTTPException 400: Model not trained, or no history to seed from.
        HTTPException 409: Another train/forecast is running.
        HTTPException 500: Inference failed.
    """
    steps = min(steps or settings.DEFAULT_FORECAST_STEPS, settings.MAX_FORECAST_STEPS)

    loop = asyncio.get_event_loop()
    try:
        return await loop.run_in_executor(_executor, _run_forecast, db, service, settings, steps)
    except ModelBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (ForecastingError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Forecast failed (steps=%d)", steps)
        raise HTTPException(status_code=500, detail="Forecast computation failed") from exc


@router.post("/dispose", response_model=DisposeResponse, summary="Release the model")
async def dispose_model(
    service: PredictionService = Depends(get_prediction_service),
) -> DisposeResponse:
    """
    Cancel any running training and drop the trained model.

    Idempotent; always reports success.
    """
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(_executor, service.dispose)
    logger.info("Model disposed")
    return DisposeResponse()


@router.get("/status", response_model=StatusResponse, summary="Model status")
def get_status(
    service: PredictionService = Depends(get_prediction_service),
    settings: Settings = Depends(get_settings),
) -> StatusResponse:
    """Report the session state, active preset and last training summary."""
    return StatusResponse(
        state=service.state.value,
        is_trained=service.is_trained,
        is_training=service.is_training,
        preset=settings.FORECAST_PRESET,
        model_info=service.get_model_info(),
    )
