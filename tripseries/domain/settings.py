"""Application settings with Pydantic validation.

Settings are stored as JSON and validated using Pydantic models.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class RecurrenceSettings(BaseModel):
    """Series generation and rolling extension configuration."""

    lookahead_days: int = Field(default=14, ge=1, le=366)
    max_iterations: int = Field(default=1000, ge=1, le=100_000)
    # Pause between child creates to stay under backend rate limits
    pacing_seconds: float = Field(default=0.1, ge=0.0, le=5.0)
    extend_on_startup: bool = True

    model_config = {"validate_assignment": True}


class StorageSettings(BaseModel):
    """Storage backend configuration."""

    backend: str = Field(default="sqlite", pattern="^(sqlite)$")
    db_path: Optional[Path] = None  # None = tripseries.db in working directory

    model_config = {"validate_assignment": True}


class RetrySettings(BaseModel):
    """Retry behavior for transient gateway failures."""

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay_seconds: float = Field(default=1.0, ge=0.0, le=10.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0, le=60.0)

    model_config = {"validate_assignment": True}


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    model_config = {"validate_assignment": True}


class AppSettings(BaseModel):
    """Application settings with validation.

    All settings are validated using Pydantic. Invalid values will raise
    validation errors when loading from JSON.

    Example:
        >>> settings = AppSettings()
        >>> settings.recurrence.lookahead_days = 30
        >>> settings.logging.level = "DEBUG"
    """

    recurrence: RecurrenceSettings = Field(default_factory=RecurrenceSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "validate_assignment": True,  # Validate on attribute assignment
        "extra": "forbid",  # Forbid extra fields
    }
