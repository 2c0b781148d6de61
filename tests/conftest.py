"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for RedZone tests.

- Session-scoped database schema, cleared between tests
- Repositories wired to the test database
- Sample feed documents live in sample_feeds.py
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "redzone_tests"
_TEST_DIR.mkdir(exist_ok=True)
os.environ["REDZONE_DATABASE__PATH"] = str(_TEST_DIR / "redzone_default.db")
os.environ["REDZONE_LOGGING__FILE_PATH"] = str(_TEST_DIR / "redzone_test.log")
os.environ["REDZONE_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["REDZONE_DEBUG"] = "true"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def session_test_db():
    """Session-scoped test database (schema created once for all tests)."""
    from redzone.database.schema import DatabaseSchema

    db_path = _TEST_DIR / "redzone_test.db"
    for suffix in ("", "-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)

    DatabaseSchema(str(db_path)).create_tables()

    yield str(db_path)

    for suffix in ("", "-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)


@pytest.fixture
def clean_db(session_test_db):
    """Clears all rows while keeping the schema."""
    from redzone.database.connection import DatabaseConnection

    conn = DatabaseConnection(session_test_db, pool_size=1)
    with conn.connection() as db:
        # Order matters for foreign keys
        db.execute("DELETE FROM content_tags")
        db.execute("DELETE FROM contents")
        db.execute("DELETE FROM tags")
        db.execute("DELETE FROM sources")
        db.commit()
    conn.close()

    yield session_test_db


@pytest.fixture
def db_connection(clean_db):
    """Database connection manager for testing."""
    from redzone.database.connection import DatabaseConnection

    connection = DatabaseConnection(clean_db, pool_size=2)
    yield connection
    connection.close()


@pytest.fixture
def source_repo(db_connection):
    from redzone.storage.source_repository import SourceRepository

    return SourceRepository(db_connection)


@pytest.fixture
def content_repo(db_connection):
    from redzone.storage.content_repository import ContentRepository

    return ContentRepository(db_connection)


@pytest.fixture
def tag_repo(db_connection):
    from redzone.storage.tag_repository import TagRepository

    return TagRepository(db_connection)


@pytest.fixture
def rss_source(source_repo):
    """A stored, active RSS source."""
    from redzone.database.models import Source, SourceType

    source = Source(name="Rotoworld", type=SourceType.RSS, feed_url="https://example.com/rss.xml")
    source_repo.create_source(source)
    return source


@pytest.fixture
def sample_tags(tag_repo):
    """A small stored tag dictionary; returns slug -> tag ID."""
    from redzone.database.models import Tag, TagType

    tags = [
        Tag(slug="patrick-mahomes", name="Patrick Mahomes", type=TagType.PLAYER,
            patterns=[r"\bmahomes\b", r"\bpatrick mahomes\b"]),
        Tag(slug="kansas-city-chiefs", name="Kansas City Chiefs", type=TagType.TEAM,
            patterns=[r"\bchiefs\b"]),
        Tag(slug="waiver-wire", name="Waiver Wire", type=TagType.TOPIC,
            patterns=[r"waiver(s)? wire", r"\bpickups?\b"]),
    ]
    return {tag.slug: tag_repo.upsert_tag(tag) for tag in tags}
