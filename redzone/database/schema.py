"""
RedZone Database Schema
=======================

SQLite schema for the ingestion core:
- sources: configured feeds and their fetch bookkeeping
- contents: ingested items, unique by canonical URL
- tags: classification dictionary with regex patterns
- content_tags: association between contents and tags
"""

import sqlite3
import logging
from pathlib import Path

from ..utils.exceptions import DatabaseError, ErrorCode

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"sources", "contents", "tags", "content_tags"}


class DatabaseSchema:
    """Database schema manager for the RedZone SQLite database."""

    def __init__(self, db_path: str = "data/redzone.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables, run migrations, then build indexes.

        Raises:
            DatabaseError: If the database cannot be opened or altered
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("PRAGMA foreign_keys = ON")

                self._create_sources_table(conn)
                self._create_contents_table(conn)
                self._create_tags_table(conn)
                self._create_content_tags_table(conn)

                self._run_migrations(conn)
                self._create_indexes(conn)

                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Schema creation failed for {self.db_path}: {e}")
            raise DatabaseError(
                f"Schema creation failed: {e}", error_code=ErrorCode.DATABASE_SCHEMA
            ) from e

        logger.info("Database schema created successfully")

    def _create_sources_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL CHECK (type IN ('RSS', 'YOUTUBE', 'PODCAST')),
                feed_url TEXT UNIQUE NOT NULL,
                website_url TEXT,
                logo_url TEXT,
                description TEXT,
                is_active BOOLEAN DEFAULT TRUE,
                last_fetched_at TIMESTAMP,
                last_ingested_at TIMESTAMP,
                last_error TEXT,
                consecutive_empty_fetches INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_contents_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS contents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                canonical_url TEXT UNIQUE NOT NULL,
                thumbnail_url TEXT,
                type TEXT NOT NULL CHECK (type IN ('ARTICLE', 'VIDEO', 'PODCAST')),
                published_at TIMESTAMP NOT NULL,
                source_id TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',  -- JSON object: author, categories
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (source_id) REFERENCES sources(id) ON DELETE CASCADE
            )
        """
        )

    def _create_tags_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tags (
                id TEXT PRIMARY KEY,
                slug TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                type TEXT NOT NULL CHECK (type IN ('PLAYER', 'TEAM', 'POSITION', 'TOPIC', 'KEYWORD')),
                patterns TEXT NOT NULL DEFAULT '[]'  -- JSON array of regular expressions
            )
        """
        )

    def _create_content_tags_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS content_tags (
                content_id TEXT NOT NULL,
                tag_id TEXT NOT NULL,
                PRIMARY KEY (content_id, tag_id),
                FOREIGN KEY (content_id) REFERENCES contents(id) ON DELETE CASCADE,
                FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            # Sources
            "CREATE INDEX IF NOT EXISTS idx_sources_active_name ON sources(is_active, name)",
            "CREATE INDEX IF NOT EXISTS idx_sources_last_ingested ON sources(last_ingested_at)",
            # Contents
            "CREATE INDEX IF NOT EXISTS idx_contents_source ON contents(source_id)",
            "CREATE INDEX IF NOT EXISTS idx_contents_published ON contents(published_at)",
            # Tags
            "CREATE INDEX IF NOT EXISTS idx_tags_type ON tags(type)",
            "CREATE INDEX IF NOT EXISTS idx_content_tags_tag ON content_tags(tag_id)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Bring databases created by earlier versions up to date."""
        cursor = conn.execute("PRAGMA table_info(sources)")
        source_columns = [column[1] for column in cursor.fetchall()]

        # Migration 1: empty-fetch counter on sources
        if "consecutive_empty_fetches" not in source_columns:
            logger.info("Adding consecutive_empty_fetches column to sources table")
            conn.execute(
                "ALTER TABLE sources ADD COLUMN consecutive_empty_fetches INTEGER NOT NULL DEFAULT 0"
            )

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                missing = EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                conn.execute("PRAGMA foreign_key_check")

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False
