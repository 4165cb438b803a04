"""Configuration and feature toggle utilities for storyloom."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

# Load environment variables from a local .env if present.
load_dotenv()


AllowedLogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseModel):
    """Runtime configuration derived from environment variables."""

    start_passage: str = Field(default="Start", alias="STORYLOOM_START_PASSAGE")
    auto_play: bool = Field(default=True, alias="STORYLOOM_AUTO_PLAY")
    max_embed_depth: int = Field(default=64, alias="STORYLOOM_MAX_EMBED_DEPTH")
    log_level: AllowedLogLevel = Field(default="WARNING", alias="STORYLOOM_LOG_LEVEL")

    @field_validator("start_passage")
    @classmethod
    def _require_start_passage(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("STORYLOOM_START_PASSAGE must not be empty.")
        return value

    @field_validator("max_embed_depth")
    @classmethod
    def _validate_depth(cls, value: int) -> int:
        if value < 1:
            raise ValueError("STORYLOOM_MAX_EMBED_DEPTH must be at least 1.")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = str(value).strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(
                "STORYLOOM_LOG_LEVEL must be one of DEBUG|INFO|WARNING|ERROR|CRITICAL."
            )
        return normalized


def _raw_environment() -> dict[str, Optional[str]]:
    """Snapshot environment variables relevant to the settings."""
    keys = [
        "STORYLOOM_START_PASSAGE",
        "STORYLOOM_AUTO_PLAY",
        "STORYLOOM_MAX_EMBED_DEPTH",
        "STORYLOOM_LOG_LEVEL",
    ]
    raw = {key: os.getenv(key) for key in keys}
    # Unset variables fall back to the field defaults.
    return {key: value for key, value in raw.items() if value is not None}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and memoize Settings from the environment."""
    try:
        return Settings(**_raw_environment())
    except ValidationError as exc:
        raise RuntimeError(f"Invalid storyloom configuration: {exc}") from exc


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Apply the configured log level to the package logger and return it."""
    if settings is None:
        settings = get_settings()
    logger = logging.getLogger("storyloom")
    logger.setLevel(settings.log_level)
    return logger


__all__ = [
    "Settings",
    "AllowedLogLevel",
    "configure_logging",
    "get_settings",
]
