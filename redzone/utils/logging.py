"""
RedZone Logging
===============

Console and rotating JSON-file logging for the ingestion core.

Component loggers carry source context (``source_id``, ``source_name``,
``feed_url``) on every record. The JSON formatter writes that context out
as fields, and a RedZoneError attached to a record contributes its error
code and context.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..config.settings import LoggingSettings
from .exceptions import RedZoneError

ROOT_LOGGER = "redzone"

# Record attributes copied into JSON output when present
CONTEXT_FIELDS = (
    "component",
    "source_id",
    "source_name",
    "feed_url",
    "error_code",
    "duration_seconds",
    "counts",
)

NOISY_LIBRARIES = ("aiohttp", "asyncio", "feedparser")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        if record.exc_info:
            error = record.exc_info[1]
            if isinstance(error, RedZoneError):
                details = error.to_dict()
                entry.setdefault("error_code", details["error_code"])
                entry["error"] = details
            else:
                entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Terse human-readable lines, tagged with the source name when known."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        source_name = getattr(record, "source_name", None)
        return f"{line} [{source_name}]" if source_name else line


class SourceContextAdapter(logging.LoggerAdapter):
    """Adds bound context to every record; call-site ``extra`` wins on conflict."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "SourceContextAdapter":
        """Adapter on the same logger with additional context."""
        merged = dict(self.extra)
        merged.update({key: value for key, value in context.items() if value is not None})
        return SourceContextAdapter(self.logger, merged)


def get_logger_for_component(component: str, **context: Any) -> SourceContextAdapter:
    """Logger for a component, e.g. ``redzone.feed_fetcher``.

    Args:
        component: Component name, appended to the root logger name
        **context: Fields attached to every record (None values are dropped)
    """
    logger = logging.getLogger(f"{ROOT_LOGGER}.{component}")
    return SourceContextAdapter(logger, {"component": component}).bind(**context)


def configure_application_logging(
    settings: LoggingSettings, level: Optional[str] = None
) -> logging.Logger:
    """Install handlers on the ``redzone`` logger.

    The console gets JSON lines when ``structured_logging`` is on and plain
    lines otherwise. The log file, when configured, is always JSON.

    Args:
        settings: Logging section of the application settings
        level: Overrides ``settings.level`` (e.g. DEBUG from --debug)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel((level or settings.level.value).upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if settings.console_logging:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(JsonLineFormatter() if settings.structured_logging else ConsoleFormatter())
        logger.addHandler(console)

    if settings.file_path:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.max_file_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


class OperationTimer:
    """Times a block and logs how it ended.

    Counts gathered inside the block (items created, sources failed, ...)
    are logged with the duration.

    Usage:
        with OperationTimer(logger, "Ingestion batch") as timer:
            ...
            timer.counts["created"] = 3
    """

    def __init__(self, logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.counts: Dict[str, int] = {}
        self.duration: Optional[float] = None
        self._started = 0.0

    def __enter__(self) -> "OperationTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._started
        extra = {"duration_seconds": round(self.duration, 3), "counts": dict(self.counts)}

        if exc_type is None:
            summary = ", ".join(f"{key}={value}" for key, value in self.counts.items())
            suffix = f" ({summary})" if summary else ""
            self.logger.info(f"{self.operation} finished in {self.duration:.2f}s{suffix}", extra=extra)
        else:
            self.logger.warning(
                f"{self.operation} aborted after {self.duration:.2f}s: {exc_type.__name__}",
                extra=extra,
            )
        return False
