"""
app/main.py
────────────
FastAPI application factory.

All business logic lives in ``app/api/v1/endpoints/``.
This file is intentionally slim: it wires together middleware,
routers, and lifecycle events only.

API Layout
----------
GET  /                                 Health check  (no auth)
POST /api/v1/predictions/train         Train the LSTM on the sensor history
GET  /api/v1/predictions/forecast      Hourly forecast (default 7 days)
POST /api/v1/predictions/dispose       Release the trained model
GET  /api/v1/predictions/status        Model state and training summary

OpenAPI docs
------------
- Swagger UI:  http://localhost:8000/docs
- ReDoc:       http://localhost:8000/redoc
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analytics.forecasting import PredictionService
from app.api.v1.router import api_router
from core.config import get_settings
from core.database import get_supabase_client

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application startup and shutdown logic.

    Startup:  Warm up the Supabase client singleton and create the
              forecasting session shared by every request.
    Shutdown: Cancel any running training and release the model.
    """
    logger.info(
        "Starting %s v%s (debug=%s, preset=%s)",
        settings.APP_TITLE,
        settings.APP_VERSION,
        settings.DEBUG,
        settings.FORECAST_PRESET,
    )
    try:
        get_supabase_client()  # warm up; raises early if env vars are wrong
        logger.info("Supabase connection verified")
    except Exception as exc:
        logger.error("Supabase initialisation failed: %s", exc)
        raise

    app.state.prediction_service = PredictionService(
        settings.forecast_config(), tz=settings.FORECAST_TIMEZONE
    )

    yield  # ← application runs here

    app.state.prediction_service.dispose()
    logger.info("Shutting down %s", settings.APP_TITLE)


# ── App factory ───────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware ────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(api_router, prefix="/api/v1")

# ── Root health-check ─────────────────────────────────────────────────────────


@app.get("/", tags=["health"], summary="Health check")
def health_check() -> dict:
    """
    Lightweight liveness probe.

    Returns:
        Status and current API version.
    """
    return {"status": "ok", "version": settings.APP_VERSION}
