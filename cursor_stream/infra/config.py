"""Centralized configuration for cursor streams.

Defaults are read from environment variables via pydantic-settings.
Example: CURSOR_STREAM_HIGH_WATER_MARK=64 overrides high_water_mark.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamSettings(BaseSettings):
    """Process-wide defaults applied when a stream is built without explicit options."""

    model_config = SettingsConfigDict(env_prefix="CURSOR_STREAM_", extra="ignore")

    high_water_mark: int = Field(default=16, gt=0, description="Records buffered before backpressure applies")
    reopen_on_timeout: bool = Field(default=True, description="Reopen a cursor whose transaction timed out")
    max_reopens: int | None = Field(
        default=None,
        ge=0,
        description="Consecutive reopens without progress before a timeout becomes fatal (unset: unlimited)",
    )
    log_level: str = Field(default="INFO", description="Log level applied by setup_logging")


@lru_cache
def get_settings() -> StreamSettings:
    return StreamSettings()
