"""
app/api/v1/router.py
────────────────────
Aggregates every v1 endpoint module under one router.

Mounted by ``app/main.py`` at ``/api/v1``.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import predictions

api_router = APIRouter()
api_router.include_router(predictions.router, prefix="/predictions", tags=["predictions"])
