"""
tests/conftest.py
──────────────────
Shared pytest fixtures for the backend test suite.

Fixtures
--------
app_client
    ``httpx.AsyncClient`` wired to the FastAPI app with a mocked Supabase
    client and a fast ``PredictionService`` so tests never hit the real
    database or train for long.

mock_db
    ``MagicMock`` standing in for the Supabase client, pre-configured with
    sensible defaults so individual tests can override only what they need.

fast_config / service
    Advanced-preset configuration with a two-epoch budget, and a session
    built from it that is disposed after the test.

trained_lifecycle
    One ``ModelLifecycle`` trained once per test session, for tests that
    only need inference.

Usage
-----
    async def test_health(app_client):
        resp = await app_client.get("/")
        assert resp.status_code == 200
"""

import os

# Settings require Supabase credentials; tests never connect.
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from typing import AsyncGenerator, Callable, Dict, Iterator, List, Sequence
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest
from httpx import ASGITransport, AsyncClient

from analytics.forecasting import ForecastConfig, ModelLifecycle, PredictionService
from app.api.dependencies import get_db, get_prediction_service
from app.main import app

# 2024-01-01 00:00 UTC
START_MS = 1_704_067_200_000
HOUR_MS = 3_600_000


# ── Synthetic sensor data ─────────────────────────────────────────────────────


def daily_cycle(n: int, seed: int = 0) -> np.ndarray:
    """Hourly CO readings: 42 ppm baseline, ±5 ppm daily swing, light noise."""
    rng = np.random.default_rng(seed)
    hours = np.arange(n)
    return 42.0 + 5.0 * np.sin(2 * np.pi * hours / 24) + rng.normal(0.0, 0.5, n)


@pytest.fixture
def hourly_series() -> Callable[..., pd.Series]:
    """Factory turning values into an hourly UTC series starting 2024-01-01."""

    def _make(values: Sequence[float], start: str = "2024-01-01") -> pd.Series:
        index = pd.date_range(start=start, periods=len(values), freq="h", tz="UTC")
        return pd.Series(np.asarray(values, dtype=float), index=index, name="value")

    return _make


@pytest.fixture
def sensor_rows() -> Callable[[Sequence[float]], List[Dict[str, float]]]:
    """Factory turning values into Supabase rows one hour apart."""

    def _make(values: Sequence[float]) -> List[Dict[str, float]]:
        return [
            {"timestamp": START_MS + i * HOUR_MS, "value": float(v)}
            for i, v in enumerate(values)
        ]

    return _make


# ── Forecasting fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def fast_config() -> ForecastConfig:
    """Advanced preset with a two-epoch budget."""
    return ForecastConfig.preset("advanced", epochs=2)


@pytest.fixture
def service(fast_config: ForecastConfig) -> Iterator[PredictionService]:
    """Fresh forecasting session, disposed after the test."""
    svc = PredictionService(fast_config, seed=7)
    yield svc
    svc.dispose()


@pytest.fixture(scope="session")
def trained_lifecycle() -> Iterator[ModelLifecycle]:
    """A lifecycle trained once on three days of synthetic readings."""
    lifecycle = ModelLifecycle(ForecastConfig.preset("advanced", epochs=2))
    lifecycle.train(daily_cycle(72))
    yield lifecycle
    lifecycle.dispose()


# ── Mock Supabase client ──────────────────────────────────────────────────────


@pytest.fixture
def mock_db() -> MagicMock:
    """
    Return a MagicMock that mimics the Supabase client's fluent query builder.

    The default return value for ``.execute()`` is ``MagicMock(data=[])``.
    Override in individual tests as needed:

        def test_something(mock_db):
            mock_db.table().select().order().range().execute.return_value = MagicMock(
                data=[{"timestamp": 1704067200000, "value": 42.0}]
            )
    """
    client = MagicMock()
    # Default: the paginated history query returns an empty page.
    client.table.return_value.select.return_value.order.return_value.range.return_value.execute.return_value = MagicMock(
        data=[]
    )
    return client


def set_history(mock_db: MagicMock, rows: List[Dict[str, float]]) -> None:
    """Make the paginated history query return ``rows`` in a single page."""
    mock_db.table.return_value.select.return_value.order.return_value.range.return_value.execute.return_value = MagicMock(
        data=rows
    )


# ── Test client ───────────────────────────────────────────────────────────────


@pytest.fixture
async def app_client(
    mock_db: MagicMock, service: PredictionService
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTPX client with Supabase and the forecasting session overridden.

    Startup lifespan is skipped to avoid real DB connections in tests.
    """
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_prediction_service] = lambda: service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
