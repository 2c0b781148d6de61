"""
Metadata Extractor
==================

Normalizes raw feed items into the shape persisted as Content: canonical
URL, title, publish time, description, thumbnail and metadata.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..database.models import ContentType, SourceType, utc_now
from ..utils.exceptions import ItemRejectedError
from .feed_fetcher import RawFeedItem

IMG_SRC_PATTERN = re.compile(r'<img[^>]+src="([^">]+)"')

UNTITLED = "Untitled"


@dataclass
class NormalizedItem:
    """A feed item ready for tagging and persistence."""

    canonical_url: str
    title: str
    published_at: datetime
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def content_type_for_source(source_type: SourceType) -> ContentType:
    """Content type implied by a source type."""
    if source_type == SourceType.YOUTUBE:
        return ContentType.VIDEO
    if source_type == SourceType.PODCAST:
        return ContentType.PODCAST
    return ContentType.ARTICLE


class MetadataExtractor:
    """Applies the normalization rules to one raw item at a time."""

    def __init__(self, untitled_placeholder: str = UNTITLED):
        self.untitled_placeholder = untitled_placeholder

    def extract(self, raw_item: RawFeedItem, source_type: SourceType) -> NormalizedItem:
        """Normalize a raw feed item.

        Args:
            raw_item: Item as produced by the feed fetcher
            source_type: Owning source's type

        Returns:
            Normalized item

        Raises:
            ItemRejectedError: If the item has neither link nor guid
        """
        canonical_url = self.canonical_url(raw_item)
        if not canonical_url:
            raise ItemRejectedError(
                f"Item has no link or guid (title: {raw_item.title or 'unknown'})",
                context={"source_type": source_type.value},
            )

        return NormalizedItem(
            canonical_url=canonical_url,
            title=(raw_item.title or "").strip() or self.untitled_placeholder,
            published_at=self.published_at(raw_item),
            description=self.description(raw_item),
            thumbnail_url=self.thumbnail_url(raw_item),
            metadata={
                "author": raw_item.author,
                "categories": list(raw_item.categories or []),
            },
        )

    @staticmethod
    def canonical_url(raw_item: RawFeedItem) -> Optional[str]:
        for candidate in (raw_item.link, raw_item.guid):
            if candidate and candidate.strip():
                return candidate.strip()
        return None

    @staticmethod
    def published_at(raw_item: RawFeedItem) -> datetime:
        """Publish time in UTC, falling back to now."""
        parsed = raw_item.published_parsed
        if parsed:
            try:
                # feedparser normalizes parsed dates to UTC
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                pass
        return utc_now()

    @staticmethod
    def description(raw_item: RawFeedItem) -> Optional[str]:
        for candidate in (raw_item.content_snippet, raw_item.content, raw_item.summary):
            if candidate and candidate.strip():
                return candidate
        return None

    @staticmethod
    def thumbnail_url(raw_item: RawFeedItem) -> Optional[str]:
        """First available thumbnail, in priority order."""
        if raw_item.media_group_thumbnail:
            return raw_item.media_group_thumbnail

        enclosure = raw_item.enclosure or {}
        if enclosure.get("url") and (enclosure.get("type") or "").startswith("image/"):
            return enclosure["url"]

        if raw_item.media_thumbnail:
            return raw_item.media_thumbnail

        if raw_item.itunes_image:
            return raw_item.itunes_image

        if raw_item.content:
            match = IMG_SRC_PATTERN.search(raw_item.content)
            if match:
                return match.group(1)

        return None
