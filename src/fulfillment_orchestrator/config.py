"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup. If a required setting is missing, the app fails fast with a
clear error message.

The reminder and auto-close thresholds are policy, not contract: they default
to the values the product shipped with (remind after 24h, close after 7 days)
and can be tuned per deployment.

Usage:
    from fulfillment_orchestrator.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Fulfillment Orchestrator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://orchestrator:orchestrator_dev"
        "@localhost:5432/fulfillment_orchestrator"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Orders & Escrow ---
    default_currency: str = Field(default="SAR", min_length=3, max_length=3)

    # --- Reminder / Auto-close Policy ---
    reminder_after_hours: int = Field(default=24, gt=0)
    auto_close_after_days: int = Field(default=7, gt=0)

    # --- Sweep Guard ---
    sweep_interval_seconds: int = 3600
    sweep_min_interval_seconds: int = 300
    sweep_stale_after_seconds: int = 1800
    sweep_lock_key: str = "locks:reminder_sweep"
    sweep_lock_ttl_seconds: int = 900

    # --- Notification Hand-off ---
    notification_max_attempts: int = 3

    # --- Order Drafts ---
    draft_ttl_seconds: int = 7 * 86400
    max_drafts_per_customer: int = Field(default=10, gt=0)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def reminder_after(self) -> timedelta:
        return timedelta(hours=self.reminder_after_hours)

    @property
    def auto_close_after(self) -> timedelta:
        return timedelta(days=self.auto_close_after_days)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
