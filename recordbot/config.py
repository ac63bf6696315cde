import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Configuration for the database."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DATABASE_", extra="ignore"
    )

    path: str = Field("records.db", description="Path to the SQLite database file")
    pool_size: int = Field(5, ge=1, description="Number of pooled connections")
    pool_timeout: float = Field(30.0, gt=0, description="Seconds to wait for a pooled connection")


class ChainSettings(BaseSettings):
    """Configuration for joint build record chain traversal."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="CHAIN_", extra="ignore"
    )

    max_depth: Optional[int] = Field(
        None, ge=1, description="Maximum number of hops followed before a chain is considered corrupt"
    )


class SequenceSettings(BaseSettings):
    """Configuration for strike and ticket number allocation."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="SEQUENCE_", extra="ignore"
    )

    max_attempts: int = Field(3, ge=1, description="Allocate+insert attempts before giving up")


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(False, description="Enable debug mode for development")
    log_level: str = Field("INFO", description="Logging level")

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chains: ChainSettings = Field(default_factory=ChainSettings)
    sequences: SequenceSettings = Field(default_factory=SequenceSettings)

    @property
    def log_level_value(self) -> int:
        """Return the numeric value of the log level."""
        return logging.getLevelName(self.log_level.upper())


@lru_cache
def get_settings() -> AppSettings:
    """
    Get application settings.
    If the TEST_MODE environment variable is set, it returns a mock configuration
    suitable for testing, otherwise loads the configuration from the .env file.
    """
    if os.getenv("TEST_MODE"):
        return AppSettings(
            debug=True,
            log_level="DEBUG",
            db=DatabaseSettings(path=":memory:"),
            chains=ChainSettings(),
            sequences=SequenceSettings(),
        )
    return AppSettings()
