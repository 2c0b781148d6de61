"""
Source Repository
=================

Repository pattern implementation for content sources and their
fetch-health bookkeeping.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from pydantic import ValidationError

from ..database.connection import DatabaseConnection
from ..database.models import Source, to_db_timestamp, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

EMPTY_FEED_ERROR = "No items found in feed"


class SourceRepository:
    """Repository for managing sources in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize source repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("source_repository")

    def create_source(self, source: Source) -> str:
        """Create a new source.

        Args:
            source: Source to create

        Returns:
            Source ID

        Raises:
            DatabaseError: If the feed URL is already registered or the insert fails
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO sources (
                        id, name, type, feed_url, website_url, logo_url, description,
                        is_active, last_fetched_at, last_ingested_at, last_error,
                        consecutive_empty_fetches, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        source.id,
                        source.name,
                        source.type.value,
                        source.feed_url,
                        source.website_url,
                        source.logo_url,
                        source.description,
                        source.is_active,
                        to_db_timestamp(source.last_fetched_at),
                        to_db_timestamp(source.last_ingested_at),
                        source.last_error,
                        source.consecutive_empty_fetches,
                        to_db_timestamp(source.created_at or utc_now()),
                    ),
                )

            self.logger.info(f"Created source {source.id}: {source.name} ({source.feed_url})")
            return source.id

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Source with feed URL {source.feed_url} already exists",
                error_code=ErrorCode.DUPLICATE_RESOURCE,
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create source: {e}")
            raise DatabaseError(
                f"Failed to create source: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_source(self, source_id: str) -> Optional[Source]:
        """Get source by ID, None if it does not exist."""
        row = self._fetch_one("SELECT * FROM sources WHERE id = ?", (source_id,))
        return Source.from_db_row(row) if row else None

    def get_source_by_feed_url(self, feed_url: str) -> Optional[Source]:
        row = self._fetch_one("SELECT * FROM sources WHERE feed_url = ?", (feed_url,))
        return Source.from_db_row(row) if row else None

    def list_sources(self, active_only: bool = False) -> List[Source]:
        """List sources ordered by name.

        Args:
            active_only: If True, only return active sources
        """
        query = "SELECT * FROM sources"
        params: tuple = ()
        if active_only:
            query += " WHERE is_active = ?"
            params = (True,)
        query += " ORDER BY name"

        return self._to_sources(self._fetch_all(query, params))

    def list_active_sources(self) -> List[Source]:
        """Active sources in alphabetical order of name."""
        return self.list_sources(active_only=True)

    def find_stale_sources(self, threshold_hours: float, now: Optional[datetime] = None) -> List[Source]:
        """Active sources never ingested or last ingested before the threshold.

        Args:
            threshold_hours: Staleness window
            now: Reference time (defaults to current UTC time)
        """
        cutoff = (now or utc_now()) - timedelta(hours=threshold_hours)
        rows = self._fetch_all(
            """
            SELECT * FROM sources
            WHERE is_active = ?
              AND (last_ingested_at IS NULL OR last_ingested_at < ?)
            ORDER BY name
        """,
            (True, to_db_timestamp(cutoff)),
        )
        return self._to_sources(rows)

    def find_silently_empty_sources(self, min_empty_fetches: int) -> List[Source]:
        """Active sources whose last fetches in a row all came back empty."""
        rows = self._fetch_all(
            """
            SELECT * FROM sources
            WHERE is_active = ? AND consecutive_empty_fetches >= ?
            ORDER BY name
        """,
            (True, min_empty_fetches),
        )
        return self._to_sources(rows)

    def record_fetch_failure(self, source_id: str, error_message: str, at: Optional[datetime] = None) -> None:
        """Stamp a failed fetch. last_ingested_at is left untouched."""
        self._update(
            "UPDATE sources SET last_fetched_at = ?, last_error = ? WHERE id = ?",
            (to_db_timestamp(at or utc_now()), error_message, source_id),
        )

    def record_empty_fetch(self, source_id: str, at: Optional[datetime] = None) -> None:
        """Stamp a fetch that returned no items and bump the empty counter."""
        stamp = to_db_timestamp(at or utc_now())
        self._update(
            """
            UPDATE sources
            SET last_fetched_at = ?, last_ingested_at = ?, last_error = ?,
                consecutive_empty_fetches = consecutive_empty_fetches + 1
            WHERE id = ?
        """,
            (stamp, stamp, EMPTY_FEED_ERROR, source_id),
        )

    def record_success(self, source_id: str, at: Optional[datetime] = None) -> None:
        """Stamp a successful ingestion and clear the error state."""
        stamp = to_db_timestamp(at or utc_now())
        self._update(
            """
            UPDATE sources
            SET last_fetched_at = ?, last_ingested_at = ?, last_error = NULL,
                consecutive_empty_fetches = 0
            WHERE id = ?
        """,
            (stamp, stamp, source_id),
        )

    def find_sources_with_errors(self) -> List[Source]:
        """Active sources whose last fetch failed, by name. Empty feeds do not count."""
        rows = self._fetch_all(
            """
            SELECT * FROM sources
            WHERE is_active = ? AND last_error IS NOT NULL AND last_error != ?
            ORDER BY name
        """,
            (True, EMPTY_FEED_ERROR),
        )
        return self._to_sources(rows)

    def set_active(self, source_id: str, is_active: bool) -> bool:
        """Toggle whether a source is polled. Returns False if it does not exist."""
        return self._update(
            "UPDATE sources SET is_active = ? WHERE id = ?", (is_active, source_id)
        ) > 0

    def _to_sources(self, rows: Iterable[sqlite3.Row]) -> List[Source]:
        """Build Source models, skipping rows that no longer validate."""
        sources = []
        for row in rows:
            try:
                sources.append(Source.from_db_row(row))
            except ValidationError as e:
                self.logger.warning(
                    f"Skipping unreadable source row {row['id']}: {e.error_count()} invalid field(s)",
                    extra={"source_id": row["id"]},
                )
        return sources

    def _fetch_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            return self.db.execute_one(query, params)
        except sqlite3.Error as e:
            self.logger.error(f"Source query failed: {e}")
            raise DatabaseError(
                f"Source query failed: {e}", query=query, error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def _fetch_all(self, query: str, params: tuple) -> List[sqlite3.Row]:
        try:
            return self.db.execute_query(query, params)
        except sqlite3.Error as e:
            self.logger.error(f"Source query failed: {e}")
            raise DatabaseError(
                f"Source query failed: {e}", query=query, error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def _update(self, query: str, params: tuple) -> int:
        try:
            return self.db.execute_update(query, params)
        except sqlite3.Error as e:
            self.logger.error(f"Source update failed: {e}")
            raise DatabaseError(
                f"Source update failed: {e}", query=query, error_code=ErrorCode.DATABASE_ERROR
            ) from e
