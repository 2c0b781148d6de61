"""
Unit Tests for Metadata Extractor
=================================
"""

import time
from datetime import datetime, timedelta, timezone

import pytest

from redzone.database.models import ContentType, SourceType
from redzone.ingestion.feed_fetcher import RawFeedItem
from redzone.ingestion.metadata_extractor import MetadataExtractor, content_type_for_source
from redzone.utils.exceptions import ItemRejectedError


def raw(**kwargs):
    defaults = {"link": "https://example.com/a", "title": "A story"}
    defaults.update(kwargs)
    return RawFeedItem(**defaults)


class TestContentTypeForSource:

    @pytest.mark.parametrize("source_type,expected", [
        (SourceType.YOUTUBE, ContentType.VIDEO),
        (SourceType.PODCAST, ContentType.PODCAST),
        (SourceType.RSS, ContentType.ARTICLE),
    ])
    def test_mapping(self, source_type, expected):
        assert content_type_for_source(source_type) == expected


class TestMetadataExtractor:

    def setup_method(self):
        self.extractor = MetadataExtractor()

    def test_canonical_url_prefers_link(self):
        item = self.extractor.extract(raw(link="https://example.com/a", guid="guid-1"), SourceType.RSS)
        assert item.canonical_url == "https://example.com/a"

    def test_canonical_url_falls_back_to_guid(self):
        item = self.extractor.extract(raw(link=None, guid="  guid-1  "), SourceType.PODCAST)
        assert item.canonical_url == "guid-1"

    def test_missing_link_and_guid_rejected(self):
        with pytest.raises(ItemRejectedError):
            self.extractor.extract(raw(link=None, guid=None), SourceType.RSS)

    def test_blank_link_and_guid_rejected(self):
        with pytest.raises(ItemRejectedError):
            self.extractor.extract(raw(link="   ", guid=""), SourceType.RSS)

    def test_untitled_placeholder(self):
        assert self.extractor.extract(raw(title=None), SourceType.RSS).title == "Untitled"
        assert self.extractor.extract(raw(title="   "), SourceType.RSS).title == "Untitled"

    def test_custom_untitled_placeholder(self):
        extractor = MetadataExtractor(untitled_placeholder="(no title)")
        assert extractor.extract(raw(title=None), SourceType.RSS).title == "(no title)"

    def test_published_at_from_parsed_date(self):
        parsed = time.strptime("2024-09-05 12:30:15", "%Y-%m-%d %H:%M:%S")

        item = self.extractor.extract(raw(published_parsed=parsed), SourceType.RSS)

        assert item.published_at == datetime(2024, 9, 5, 12, 30, 15, tzinfo=timezone.utc)

    def test_published_at_defaults_to_now(self):
        before = datetime.now(timezone.utc)

        item = self.extractor.extract(raw(published_parsed=None), SourceType.RSS)

        assert item.published_at is not None
        assert before - timedelta(seconds=1) <= item.published_at <= datetime.now(timezone.utc)

    def test_description_order(self):
        full = raw(content_snippet="snippet", content="<p>body</p>", summary="summary")
        no_snippet = raw(content_snippet=None, content="<p>body</p>", summary="summary")
        only_summary = raw(content_snippet="", content=None, summary="summary")

        assert self.extractor.extract(full, SourceType.RSS).description == "snippet"
        assert self.extractor.extract(no_snippet, SourceType.RSS).description == "<p>body</p>"
        assert self.extractor.extract(only_summary, SourceType.RSS).description == "summary"
        assert self.extractor.extract(raw(), SourceType.RSS).description is None

    def test_metadata(self):
        item = self.extractor.extract(raw(author="Jane", categories=["NFL"]), SourceType.RSS)

        assert item.metadata == {"author": "Jane", "categories": ["NFL"]}


class TestThumbnailPriority:
    """Each candidate wins only when every higher-priority one is absent."""

    ALL_CANDIDATES = dict(
        media_group_thumbnail="https://img/group.jpg",
        enclosure={"url": "https://img/enclosure.png", "type": "image/png"},
        media_thumbnail="https://img/media.jpg",
        itunes_image="https://img/itunes.jpg",
        content='<p><img class="x" src="https://img/inline.jpg"></p>',
    )

    def thumbnail(self, **kwargs):
        return MetadataExtractor.thumbnail_url(raw(**kwargs))

    def test_media_group_first(self):
        assert self.thumbnail(**self.ALL_CANDIDATES) == "https://img/group.jpg"

    def test_image_enclosure_second(self):
        candidates = dict(self.ALL_CANDIDATES, media_group_thumbnail=None)
        assert self.thumbnail(**candidates) == "https://img/enclosure.png"

    def test_non_image_enclosure_ignored(self):
        candidates = dict(
            self.ALL_CANDIDATES,
            media_group_thumbnail=None,
            enclosure={"url": "https://pod/ep.mp3", "type": "audio/mpeg"},
        )
        assert self.thumbnail(**candidates) == "https://img/media.jpg"

    def test_itunes_image_fourth(self):
        candidates = dict(
            self.ALL_CANDIDATES, media_group_thumbnail=None, enclosure=None, media_thumbnail=None
        )
        assert self.thumbnail(**candidates) == "https://img/itunes.jpg"

    def test_inline_image_last(self):
        assert self.thumbnail(content=self.ALL_CANDIDATES["content"]) == "https://img/inline.jpg"

    def test_no_thumbnail(self):
        assert self.thumbnail(content="<p>text only</p>") is None
