"""Centralised application configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/highlightkeeper/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_COLOR = "#ffeb3b"
DEFAULT_PALETTE = (
    "#ffeb3b",
    "#ffa726",
    "#81c784",
    "#64b5f6",
    "#f48fb1",
    "#c792ea",
)


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class AnchoringConfig(BaseModel):
    """Anchor construction and resolution tuning."""

    context_chars: int = 60
    selector_max_depth: int = 6
    selector_max_classes: int = 2
    # Treat selectors matching more than one element as unresolved
    require_unique_selector: bool = True
    anchor_version: int = 1

    @model_validator(mode="after")
    def _positive_limits(self) -> AnchoringConfig:
        if self.context_chars < 0:
            msg = "ANCHORING__CONTEXT_CHARS must not be negative"
            raise ValueError(msg)
        if self.selector_max_depth < 1:
            msg = "ANCHORING__SELECTOR_MAX_DEPTH must be at least 1"
            raise ValueError(msg)
        return self


class RestoreConfig(BaseModel):
    """Restoration retry schedule."""

    backoff_ms: list[int] = [450, 1500, 3500]
    max_attempts: int = 4

    @model_validator(mode="after")
    def _valid_schedule(self) -> RestoreConfig:
        if self.max_attempts < 1:
            msg = "RESTORE__MAX_ATTEMPTS must be at least 1"
            raise ValueError(msg)
        if any(delay <= 0 for delay in self.backoff_ms):
            msg = "RESTORE__BACKOFF_MS delays must be positive"
            raise ValueError(msg)
        return self

    @property
    def delays(self) -> tuple[float, ...]:
        """Backoff delays in seconds."""
        return tuple(ms / 1000 for ms in self.backoff_ms)


class StorageConfig(BaseModel):
    """Highlight store location."""

    path: Path = Path("highlights.json")


class AppConfig(BaseModel):
    """Application runtime configuration."""

    log_dir: Path = Path("logs")
    default_color: str = DEFAULT_COLOR
    palette: list[str] = list(DEFAULT_PALETTE)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``ANCHORING__CONTEXT_CHARS``, ``RESTORE__BACKOFF_MS``,
    ``STORAGE__PATH``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    anchoring: AnchoringConfig = AnchoringConfig()
    restore: RestoreConfig = RestoreConfig()
    storage: StorageConfig = StorageConfig()
    app: AppConfig = AppConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
