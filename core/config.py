"""Runtime configuration, loaded from environment variables (or a `.env` file)."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Data source (PostgREST / Supabase REST endpoint)
    supabase_url: str = Field(default="", description="Project URL, e.g. https://xyz.supabase.co")
    supabase_key: str = Field(default="", description="API key sent as apikey + bearer token")
    request_timeout: float = Field(default=15.0, description="HTTP timeout in seconds")

    metrics_table: str = Field(default="dashboard_diario")
    metrics_fallback_table: str = Field(default="leads")
    metrics_date_column: str = Field(default="data")
    investments_table: str = Field(default="investimentos")
    settings_table: str = Field(default="financial_settings")

    # Aggregation window
    default_range_days: int = Field(default=30, ge=1)
    history_lookback_days: int = Field(default=60, ge=0, description="Extra days fetched before the range for backlog snapshots")

    # API / logging
    log_level: str = Field(default="INFO")
    cors_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000,http://localhost:8501")

    @property
    def has_credentials(self) -> bool:
        return bool(self.supabase_url.strip() and self.supabase_key.strip())

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
