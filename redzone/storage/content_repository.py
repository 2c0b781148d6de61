"""
Content Repository
==================

Dedup and persistence gateway for ingested content.

The UNIQUE constraint on contents.canonical_url is the only deduplication
mechanism. A lookup short-circuits the common case; a concurrent insert of
the same URL is caught at the constraint and reported as a skip.
"""

import sqlite3
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Content, Source, to_db_timestamp, utc_now
from ..ingestion.metadata_extractor import NormalizedItem, content_type_for_source
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class PersistOutcome(str, Enum):
    """Result of persisting one normalized item."""
    CREATED = "CREATED"
    SKIPPED = "SKIPPED"


class ContentRepository:
    """Repository for content rows and their tag associations."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("content_repository")

    def find_by_canonical_url(self, canonical_url: str) -> Optional[Content]:
        """Look up content by its dedup key."""
        try:
            row = self.db.execute_one(
                "SELECT * FROM contents WHERE canonical_url = ?", (canonical_url,)
            )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Content lookup failed: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e
        return Content.from_db_row(dict(row)) if row else None

    def create_with_tags(self, content: Content, tag_ids: Iterable[str]) -> bool:
        """Insert a content row and its tag associations atomically.

        Args:
            content: Content to insert
            tag_ids: IDs of matched tags

        Returns:
            True if created, False if the canonical URL already exists

        Raises:
            DatabaseError: On any other database failure (nothing is written)
        """
        unique_tag_ids = list(dict.fromkeys(tag_ids))

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO contents (
                        id, title, description, canonical_url, thumbnail_url, type,
                        published_at, source_id, metadata, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        content.id,
                        content.title,
                        content.description,
                        content.canonical_url,
                        content.thumbnail_url,
                        content.type.value,
                        to_db_timestamp(content.published_at),
                        content.source_id,
                        content.metadata_json(),
                        to_db_timestamp(content.created_at or utc_now()),
                    ),
                )
                conn.executemany(
                    "INSERT INTO content_tags (content_id, tag_id) VALUES (?, ?)",
                    [(content.id, tag_id) for tag_id in unique_tag_ids],
                )

        except sqlite3.IntegrityError as e:
            if self._is_duplicate_url(e, content.canonical_url):
                self.logger.debug(f"Duplicate canonical URL, skipped: {content.canonical_url}")
                return False
            self.logger.error(f"Constraint violation storing {content.canonical_url}: {e}")
            raise DatabaseError(
                f"Constraint violation storing content: {e}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to store content {content.canonical_url}: {e}")
            raise DatabaseError(
                f"Failed to store content: {e}", error_code=ErrorCode.DATABASE_TRANSACTION
            ) from e

        return True

    def ingest_item(
        self, item: NormalizedItem, source: Source, tag_ids: List[str]
    ) -> PersistOutcome:
        """Persist a normalized item unless its canonical URL is already known."""
        if self.find_by_canonical_url(item.canonical_url) is not None:
            return PersistOutcome.SKIPPED

        content = Content(
            title=item.title,
            description=item.description,
            canonical_url=item.canonical_url,
            thumbnail_url=item.thumbnail_url,
            type=content_type_for_source(source.type),
            published_at=item.published_at,
            source_id=source.id,
            metadata=item.metadata,
        )

        if self.create_with_tags(content, tag_ids):
            return PersistOutcome.CREATED
        return PersistOutcome.SKIPPED

    def get_content(self, content_id: str) -> Optional[Content]:
        row = self.db.execute_one("SELECT * FROM contents WHERE id = ?", (content_id,))
        return Content.from_db_row(dict(row)) if row else None

    def get_tag_ids(self, content_id: str) -> List[str]:
        rows = self.db.execute_query(
            "SELECT tag_id FROM content_tags WHERE content_id = ? ORDER BY tag_id",
            (content_id,),
        )
        return [row["tag_id"] for row in rows]

    def count(self) -> int:
        row = self.db.execute_one("SELECT COUNT(*) AS n FROM contents")
        return row["n"]

    def count_by_source(self) -> Dict[str, int]:
        """Number of stored items per source ID."""
        rows = self.db.execute_query(
            "SELECT source_id, COUNT(*) AS n FROM contents GROUP BY source_id"
        )
        return {row["source_id"]: row["n"] for row in rows}

    def _is_duplicate_url(self, error: sqlite3.IntegrityError, canonical_url: str) -> bool:
        """Whether a failed insert lost to an existing row with the same URL.

        Runs after the rollback, so the row found is one committed by another
        writer. Python 3.11+ also reports which constraint fired.
        """
        if getattr(error, "sqlite_errorname", "SQLITE_CONSTRAINT_UNIQUE") != "SQLITE_CONSTRAINT_UNIQUE":
            return False
        row = self.db.execute_one(
            "SELECT 1 FROM contents WHERE canonical_url = ?", (canonical_url,)
        )
        return row is not None
