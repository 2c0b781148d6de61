"""
RedZone Configuration System
============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProcessingSettings(BaseModel):
    """Ingestion pipeline configuration."""
    max_concurrent_sources: int = Field(
        default=1, ge=1, le=20,
        description="Sources ingested in parallel within one batch (1 = sequential)"
    )
    untitled_placeholder: str = Field(
        default="Untitled", min_length=1, description="Title used when a feed item has none"
    )
    user_agent: str = Field(
        default="RedZone/1.0 (+https://github.com/fantasy-red-zone/redzone)",
        description="User-Agent sent with feed requests"
    )


class LimitsSettings(BaseModel):
    """Timeouts and bounded field sizes."""
    fetch_timeout: float = Field(default=10.0, gt=0, le=300, description="Feed fetch timeout in seconds")
    max_error_length: int = Field(default=1000, ge=50, le=10000, description="Max stored length of Source.last_error")


class SchedulerSettings(BaseModel):
    """Timer and gap-healing configuration."""
    ingest_interval_minutes: int = Field(default=60, ge=1, le=1440, description="Minutes between scheduled batches")
    gap_check_interval_hours: int = Field(default=24, ge=1, le=168, description="Hours between gap checks")
    gap_threshold_hours: float = Field(default=2.0, gt=0, le=168, description="Staleness threshold for last_ingested_at")
    gap_check_on_startup: bool = Field(default=True, description="Run a gap check when the service starts")
    empty_fetch_warning_threshold: int = Field(
        default=3, ge=1, le=100,
        description="Consecutive empty fetches before a source is reported as silently empty"
    )

    @field_validator('gap_threshold_hours')
    @classmethod
    def validate_threshold(cls, v):
        """Ensure threshold is positive."""
        if v <= 0:
            raise ValueError("gap_threshold_hours must be positive")
        return v


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/redzone.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/redzone.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class RedZoneSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="RedZone", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "REDZONE_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Invalid log file path: {e}")

        if self.scheduler.gap_threshold_hours * 60 < self.scheduler.ingest_interval_minutes:
            errors.append(
                "scheduler.gap_threshold_hours is shorter than the ingest interval; "
                "every gap check would find stale sources"
            )

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> RedZoneSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = RedZoneSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[RedZoneSettings] = None


def get_settings(reload: bool = False) -> RedZoneSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
