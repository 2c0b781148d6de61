"""
Tag Repository
==============

Storage for the tag dictionary used to classify ingested content.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Tag
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class TagRepository:
    """Repository for managing tags in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("tag_repository")

    def upsert_tag(self, tag: Tag) -> str:
        """Create a tag, or replace name, type and patterns of the tag with the same slug.

        Returns:
            ID of the stored tag
        """
        try:
            with self.db.transaction() as conn:
                existing = conn.execute(
                    "SELECT id FROM tags WHERE slug = ?", (tag.slug,)
                ).fetchone()

                if existing:
                    conn.execute(
                        "UPDATE tags SET name = ?, type = ?, patterns = ? WHERE id = ?",
                        (tag.name, tag.type.value, tag.patterns_json(), existing["id"]),
                    )
                    self.logger.debug(f"Updated tag {tag.slug}")
                    return existing["id"]

                conn.execute(
                    "INSERT INTO tags (id, slug, name, type, patterns) VALUES (?, ?, ?, ?, ?)",
                    (tag.id, tag.slug, tag.name, tag.type.value, tag.patterns_json()),
                )
                self.logger.info(f"Created tag {tag.slug} ({tag.type.value})")
                return tag.id

        except sqlite3.Error as e:
            self.logger.error(f"Failed to store tag {tag.slug}: {e}")
            raise DatabaseError(
                f"Failed to store tag {tag.slug}: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_tag_by_slug(self, slug: str) -> Optional[Tag]:
        row = self._query_one("SELECT * FROM tags WHERE slug = ?", (slug,))
        return Tag.from_db_row(dict(row)) if row else None

    def get_tag_rows(self) -> List[Dict[str, Any]]:
        """Every tag as a raw row, patterns left as stored text.

        Rows are ordered by slug so dictionary order is stable between loads.
        """
        try:
            rows = self.db.execute_query("SELECT id, slug, name, type, patterns FROM tags ORDER BY slug")
        except sqlite3.Error as e:
            self.logger.error(f"Failed to read tags: {e}")
            raise DatabaseError(
                f"Failed to read tags: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e
        return [dict(row) for row in rows]

    def get_all_tags(self) -> List[Tag]:
        """Every tag whose stored patterns parse; others are logged and left out."""
        tags = []
        for row in self.get_tag_rows():
            try:
                tags.append(Tag.from_db_row(row))
            except (ValueError, json.JSONDecodeError) as e:
                self.logger.warning(f"Skipping tag {row.get('slug')}: {e}")
        return tags

    def count(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS n FROM tags", ())
        return row["n"] if row else 0

    def _query_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            return self.db.execute_one(query, params)
        except sqlite3.Error as e:
            self.logger.error(f"Tag query failed: {e}")
            raise DatabaseError(
                f"Tag query failed: {e}", query=query, error_code=ErrorCode.DATABASE_ERROR
            ) from e
