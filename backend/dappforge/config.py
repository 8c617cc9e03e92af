"""
Application settings, read from the environment (and a local .env file).
"""

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_CORS_ORIGIN_REGEX = r"^http:\/\/localhost:\d+$|^http:\/\/127\.0\.0\.1:\d+$"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    log_level: str = "INFO"
    cors_origin_regex: str = DEFAULT_CORS_ORIGIN_REGEX
    generation_max_concurrency: int = Field(default=1, ge=1)
    run_retention_hours: int = Field(default=24, ge=1)


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return Settings(
        log_level=log_level,
        cors_origin_regex=os.getenv("CORS_ORIGIN_REGEX") or DEFAULT_CORS_ORIGIN_REGEX,
        generation_max_concurrency=_int_env("GENERATION_MAX_CONCURRENCY", 1),
        run_retention_hours=_int_env("RUN_RETENTION_HOURS", 24),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
