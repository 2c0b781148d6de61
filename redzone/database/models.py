"""
RedZone Data Models
===================

Pydantic data models for type safety and validation throughout the application.
These models correspond to the database schema and provide validation,
serialization, and type hints.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any
import json
import uuid

from pydantic import BaseModel, Field, ValidationInfo, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage.

    Naive values are taken to be UTC. Stored text sorts chronologically.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return str(uuid.uuid4())


class SourceType(str, Enum):
    """Kinds of content origin."""
    RSS = "RSS"
    YOUTUBE = "YOUTUBE"
    PODCAST = "PODCAST"


class ContentType(str, Enum):
    """Kinds of ingested content."""
    ARTICLE = "ARTICLE"
    VIDEO = "VIDEO"
    PODCAST = "PODCAST"


class TagType(str, Enum):
    """Tag classification families."""
    PLAYER = "PLAYER"
    TEAM = "TEAM"
    POSITION = "POSITION"
    TOPIC = "TOPIC"
    KEYWORD = "KEYWORD"


class Source(BaseModel):
    """Configured content origin polled by the ingestion core."""
    id: str = Field(default_factory=_new_id, description="Unique source ID")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    type: SourceType = Field(..., description="Kind of feed")
    feed_url: str = Field(..., min_length=1, description="Feed URL (unique)")
    website_url: Optional[str] = Field(default=None, description="Publisher website")
    logo_url: Optional[str] = Field(default=None, description="Publisher logo")
    description: Optional[str] = Field(default=None, description="Operator notes")
    is_active: bool = Field(default=True, description="Whether the source is polled")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last fetch attempt")
    last_ingested_at: Optional[datetime] = Field(default=None, description="Last successful ingestion")
    last_error: Optional[str] = Field(default=None, description="Last fetch-level error")
    consecutive_empty_fetches: int = Field(default=0, ge=0, description="Fetches in a row that returned no items")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('feed_url')
    @classmethod
    def validate_feed_url(cls, v, info: ValidationInfo):
        """Feed URLs must be http(s) when registered.

        Rows read back from the database are trusted as stored; a bad URL
        there surfaces as a fetch failure for that one source.
        """
        v = v.strip()
        if info.context and info.context.get("stored"):
            return v
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("feed_url must be an http(s) URL")
        return v

    @field_validator('is_active', mode='before')
    @classmethod
    def coerce_sqlite_bool(cls, v):
        """SQLite hands booleans back as integers."""
        if isinstance(v, int):
            return bool(v)
        return v

    def staleness_minutes(self, now: Optional[datetime] = None) -> Optional[int]:
        """Minutes since the last successful ingestion, None if never ingested."""
        if self.last_ingested_at is None:
            return None
        now = now or utc_now()
        last = self.last_ingested_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return round((now - last).total_seconds() / 60)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Source":
        """Create Source from a stored row, skipping write-time URL checks."""
        return cls.model_validate(dict(row), context={"stored": True})

    def __str__(self) -> str:
        return f"Source({self.name}:{self.type.value})"


class Content(BaseModel):
    """A single ingested item, keyed by canonical URL."""
    id: str = Field(default_factory=_new_id, description="Unique content ID")
    title: str = Field(..., min_length=1, description="Item title")
    description: Optional[str] = Field(default=None, description="Item description")
    canonical_url: str = Field(..., min_length=1, description="Deduplication key")
    thumbnail_url: Optional[str] = Field(default=None, description="Thumbnail image")
    type: ContentType = Field(..., description="Derived from the owning source's type")
    published_at: datetime = Field(..., description="Publish timestamp")
    source_id: str = Field(..., description="Owning source ID")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Author and categories")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    def metadata_json(self) -> str:
        """Get metadata as JSON string for database storage."""
        return json.dumps(self.metadata, ensure_ascii=False)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Content":
        """Create Content from database row with JSON parsing."""
        data = dict(row)
        if isinstance(data.get('metadata'), str):
            data['metadata'] = json.loads(data['metadata'] or '{}')
        return cls(**data)

    def __str__(self) -> str:
        return f"Content({self.title[:50]})"


class Tag(BaseModel):
    """Named classification with its matching patterns."""
    id: str = Field(default_factory=_new_id, description="Unique tag ID")
    slug: str = Field(..., min_length=1, max_length=200, description="URL-safe identifier")
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    type: TagType = Field(..., description="Tag family")
    patterns: List[str] = Field(default_factory=list, description="Regular expressions, matched case-insensitively")

    @field_validator('patterns')
    @classmethod
    def strip_patterns(cls, v):
        """Drop blank patterns."""
        return [p for p in v if isinstance(p, str) and p.strip()]

    def patterns_json(self) -> str:
        """Get patterns as JSON string for database storage."""
        return json.dumps(self.patterns, ensure_ascii=False)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Tag":
        """Create Tag from database row with JSON parsing.

        Raises:
            ValueError: If the stored pattern list is not a JSON array
        """
        data = dict(row)
        raw = data.get('patterns')
        if isinstance(raw, str):
            parsed = json.loads(raw) if raw.strip() else []
            if not isinstance(parsed, list):
                raise ValueError(f"Tag {data.get('slug')} patterns are not a JSON array")
            data['patterns'] = parsed
        elif raw is None:
            data['patterns'] = []
        return cls(**data)

    def __str__(self) -> str:
        return f"Tag({self.name}:{self.type.value})"
