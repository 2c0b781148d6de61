"""
RedZone - Fantasy Football Content Ingestion
============================================

Periodically pulls RSS, YouTube and podcast feeds into a normalized,
deduplicated and tagged content store.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
- Ingestion: feed fetching, metadata extraction, tag matching
- Scheduler: single-flight batches, gap detection and timers
"""

__version__ = "1.0.0"
__author__ = "RedZone Development Team"
__description__ = "Fantasy football content ingestion core"

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import RedZoneError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "RedZoneError",
]
