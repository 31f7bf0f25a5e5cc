"""
app/api/dependencies.py
───────────────────────
FastAPI dependency functions shared across all endpoints.

Usage
-----
    from app.api.dependencies import get_db, get_prediction_service

    @router.post("/train")
    async def train(
        db = Depends(get_db),
        service = Depends(get_prediction_service),
    ):
        ...
"""

from fastapi import HTTPException, Request
from supabase import Client

from analytics.forecasting import PredictionService
from core.database import get_supabase_client


def get_db() -> Client:
    """
    FastAPI dependency that returns the Supabase client singleton.

    Inject via ``Depends(get_db)`` in any route handler.

    Returns:
        Authenticated Supabase ``Client`` instance.
    """
    return get_supabase_client()


def get_prediction_service(request: Request) -> PredictionService:
    """
    FastAPI dependency that returns the application's forecasting session.

    The session is created by the lifespan handler in ``app/main.py`` and
    lives on ``app.state`` for the lifetime of the process.

    Returns:
        The shared ``PredictionService``.

    Raises:
        HTTPException 503: If the application has not finished starting up.
    """
    service = getattr(request.app.state, "prediction_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Prediction service is not initialised")
    return service
