"""
core/config.py
──────────────
Centralised application settings via ``pydantic-settings``.

All configuration is driven by environment variables (or a ``.env`` file
in the ``backend/`` directory).  ``pydantic-settings`` validates types at
startup, so missing required values fail fast with a clear error message.

Usage
-----
    from core.config import get_settings

    settings = get_settings()
    config = settings.forecast_config()
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from analytics.forecasting.base import PRESETS, ForecastConfig

# Resolve the backend/ directory so relative .env paths work from any cwd.
_BACKEND_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables / ``.env`` file.

    Attributes:
        APP_TITLE:              Human-readable API name shown in OpenAPI docs.
        APP_VERSION:            Semantic version string.
        DEBUG:                  Enable verbose logging.
        LOG_LEVEL:              Root logging level.
        SUPABASE_URL:           Supabase project URL (required).
        SUPABASE_KEY:           Supabase anon or service-role key (required).
        FRONTEND_URL:           Optional deployed dashboard origin for CORS.
        READINGS_TABLE:         Table holding the CO sensor history.
        READINGS_PAGE_SIZE:     Rows fetched per Supabase request.
        FORECAST_PRESET:        ``standard``, ``hybrid`` or ``advanced``.
        FORECAST_EPOCHS:        Optional override of the preset's epoch budget.
        FORECAST_TIMEZONE:      IANA zone for hour-of-day logic and labels.
        MIN_TRAINING_POINTS:    Readings required before /train is attempted.
        DEFAULT_FORECAST_STEPS: Horizon when the client sends none (7 days).
        MAX_FORECAST_STEPS:     Hard cap on the horizon (14 days).
        TRAIN_TIMEOUT_SECONDS:  /train gives up and cancels after this long.
    """

    model_config = SettingsConfigDict(
        env_file=str(_BACKEND_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        # Extra env vars are ignored.
        extra="ignore",
    )

    # ── API metadata ──────────────────────────────────────────────────────
    APP_TITLE: str = "Gas Sensor Forecasting API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = (
        "Backend for the CO monitoring dashboard. "
        "Trains an LSTM on the sensor history and serves hourly forecasts."
    )

    # ── Feature flags ─────────────────────────────────────────────────────
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Supabase (required) ───────────────────────────────────────────────
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_KEY: str = Field(..., description="Supabase anon or service-role key")

    READINGS_TABLE: str = "sensor_readings"
    READINGS_PAGE_SIZE: int = Field(default=1000, ge=1, le=10000)

    # ── Forecasting ───────────────────────────────────────────────────────
    FORECAST_PRESET: str = "advanced"
    FORECAST_EPOCHS: Optional[int] = Field(default=None, ge=1)
    FORECAST_TIMEZONE: str = "UTC"
    MIN_TRAINING_POINTS: int = Field(default=25, ge=1)
    DEFAULT_FORECAST_STEPS: int = Field(default=168, ge=1)
    MAX_FORECAST_STEPS: int = Field(default=336, ge=1)
    TRAIN_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Optional extra origin injected by the hosting environment.
    FRONTEND_URL: str = ""

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Build the full CORS allow-list.

        Hard-coded dev origins plus the optional ``FRONTEND_URL`` env var.

        Returns:
            List of allowed origin strings.
        """
        origins: List[str] = [
            "http://localhost:5173",   # Vite / React dev server
            "http://127.0.0.1:5173",
        ]
        if self.FRONTEND_URL:
            origins.append(self.FRONTEND_URL)
        return origins

    @field_validator("SUPABASE_URL")
    @classmethod
    def _must_not_be_empty(cls, v: str) -> str:
        """Raise if a required URL field is blank."""
        if not v:
            raise ValueError("SUPABASE_URL must not be empty")
        return v

    @field_validator("FORECAST_PRESET")
    @classmethod
    def _known_preset(cls, v: str) -> str:
        """Reject preset names the pipeline does not define."""
        v = v.strip().lower()
        if v not in PRESETS:
            raise ValueError(
                f"FORECAST_PRESET must be one of {', '.join(PRESETS)}, got '{v}'"
            )
        return v

    @field_validator("FORECAST_TIMEZONE")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        """Reject timezone names unknown to the IANA database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown FORECAST_TIMEZONE '{v}'") from exc
        return v

    def forecast_config(self) -> ForecastConfig:
        """
        Build the pipeline configuration for the selected preset.

        Returns:
            ForecastConfig with ``FORECAST_EPOCHS`` applied when set.
        """
        overrides = {}
        if self.FORECAST_EPOCHS is not None:
            overrides["epochs"] = self.FORECAST_EPOCHS
        return ForecastConfig.preset(self.FORECAST_PRESET, **overrides)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return a cached ``Settings`` singleton.

    The instance is created (and the ``.env`` file parsed) only once per
    process lifetime, courtesy of ``functools.lru_cache``.

    Returns:
        Settings: Validated application configuration.
    """
    return Settings()
