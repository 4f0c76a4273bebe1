"""
config.py — pydantic-settings Settings class.

All environment variables for mgnrega-sync are declared here.
The pipeline, scheduler, and client all import `settings` from this module.

Usage:
    from mgnrega_shared.config import settings
    print(settings.data_gov_base_url)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Upstream open-data API (data.gov.in)
    # -------------------------------------------------------------------------
    data_gov_base_url: str = Field(default="https://api.data.gov.in/resource")
    data_gov_api_key: str = Field(default="")
    upstream_timeout_s: float = Field(default=30.0)
    upstream_page_size: int = Field(default=1000)
    upstream_max_attempts: int = Field(default=3, ge=1)

    # -------------------------------------------------------------------------
    # Supabase (store)
    # -------------------------------------------------------------------------
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_service_key: str = Field(default="")

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------
    sync_cron: str = Field(default="0 2 * * *")
    sync_timezone: str = Field(default="Asia/Kolkata")
    staleness_hours: float = Field(default=24.0)

    # -------------------------------------------------------------------------
    # Read API client (presentation tier)
    # -------------------------------------------------------------------------
    read_api_url: str = Field(default="http://localhost:5000/api")
    client_max_retries: int = Field(default=4, ge=0)
    client_cache_ttl_s: float = Field(default=3600.0)

    # Inbound rate limit, enforced by the routing layer
    rate_limit_window_ms: int = Field(default=900_000)
    rate_limit_max_requests: int = Field(default=100)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("data_gov_base_url", "supabase_url", "read_api_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton — import this everywhere
# ---------------------------------------------------------------------------
settings = Settings()
