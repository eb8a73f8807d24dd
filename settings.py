"""Application settings loaded from the environment and .env files.

The .env file is resolved as ENV_FILE > .env.{APP_ENV} > .env.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_env_file() -> Path:
    explicit = os.getenv("ENV_FILE")
    if explicit:
        return Path(explicit)
    cwd = Path.cwd()
    specific = cwd / f".env.{os.getenv('APP_ENV', 'dev')}"
    if specific.exists():
        return specific
    return cwd / ".env"


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=_resolve_env_file(),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "natal-chart-api"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    DATABASE_URL: str = "sqlite+pysqlite:///./natal_charts.db"

    # Directory holding Swiss Ephemeris .se1 files; Moshier is used without it
    EPHEMERIS_PATH: Optional[str] = None
    HOUSE_SYSTEM: str = "Placidus"
    NODE_TYPE: str = "true"  # "true" | "mean"
    INCLUDE_POINTS: bool = True

    CACHE_MAX_AGE_DAYS: int = 30
    PROVIDER_MAPPING_POLICY: str = "lenient"  # "strict" | "lenient"


@lru_cache
def get_settings() -> Settings:
    return Settings()
