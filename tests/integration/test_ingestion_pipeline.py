"""
End-to-End Ingestion Pipeline Tests
===================================

Real parsing, tagging, dedup and health bookkeeping against the test
database. Only the HTTP layer is replaced: FeedFetcher.get_session yields a
fake session serving canned documents by URL.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import patch

import pytest

from redzone.database.models import ContentType, Source, SourceType, utc_now
from redzone.ingestion.feed_fetcher import FeedFetcher
from redzone.scheduler.service import build_components
from sample_feeds import PODCAST_FEED, SAMPLE_RSS_FEED, YOUTUBE_FEED, rss_with_items


class FakeResponse:
    def __init__(self, status, body, reason="OK"):
        self.status = status
        self.reason = reason
        self.headers = {"content-type": "application/xml"}
        self._body = body.encode("utf-8") if isinstance(body, str) else body

    async def read(self):
        # Yield to the loop like a real socket read
        await asyncio.sleep(0)
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Serves documents by URL; unknown URLs answer 404."""

    def __init__(self, documents):
        self.documents = documents
        self.requested = []

    def get(self, url):
        self.requested.append(url)
        document = self.documents.get(url)
        if document is None:
            return FakeResponse(404, b"", reason="Not Found")
        if isinstance(document, tuple):
            return FakeResponse(*document)
        return FakeResponse(200, document)


@pytest.fixture
def documents():
    return {}


@pytest.fixture
def fake_http(documents):
    session = FakeSession(documents)

    @asynccontextmanager
    async def fake_get_session(self):
        yield session

    with patch.object(FeedFetcher, "get_session", fake_get_session):
        yield session


@pytest.fixture
def components(db_connection, sample_tags):
    return build_components(db=db_connection)


def add_source(components, name, feed_url, source_type=SourceType.RSS):
    source = Source(name=name, type=source_type, feed_url=feed_url)
    components.source_repository.create_source(source)
    return source


class TestIngestionPipeline:

    @pytest.mark.asyncio
    async def test_gap_heals_stale_source(self, components, documents, fake_http):
        feed_url = "https://example.com/rss.xml"
        source = add_source(components, "Rotoworld", feed_url)

        documents[feed_url] = rss_with_items(2)
        await components.scheduler.ingest_all_active_sources()
        components.source_repository.record_success(source.id, at=utc_now() - timedelta(hours=3))

        documents[feed_url] = rss_with_items(5)
        result = await components.gap_detector.check_and_heal_gaps()

        assert [s.name for s in result.stale_sources] == ["Rotoworld"]
        assert result.stale_sources[0].minutes_since_ingest == 180
        batch = result.batch_result
        assert (batch.succeeded, batch.failed, batch.items_ingested) == (1, 0, 3)
        assert batch.skipped == 2
        assert components.content_repository.count() == 5

        refreshed = components.source_repository.get_source(source.id)
        assert refreshed.staleness_minutes() < 1
        assert refreshed.last_error is None

    @pytest.mark.asyncio
    async def test_mixed_sources_batch(self, components, documents, fake_http, sample_tags):
        healthy = [
            add_source(components, "Articles", "https://example.com/rss.xml"),
            add_source(components, "Film Room", "https://youtube.example.com/feed", SourceType.YOUTUBE),
            add_source(components, "Pod Squad", "https://pod.example.com/feed", SourceType.PODCAST),
        ]
        broken = add_source(components, "Broken", "https://down.example.com/feed")

        documents["https://example.com/rss.xml"] = SAMPLE_RSS_FEED
        documents["https://youtube.example.com/feed"] = YOUTUBE_FEED
        documents["https://pod.example.com/feed"] = PODCAST_FEED
        documents["https://down.example.com/feed"] = (503, b"", "Service Unavailable")

        batch = await components.scheduler.ingest_all_active_sources()

        assert (batch.succeeded, batch.failed, batch.items_ingested) == (3, 1, 4)
        assert batch.failures[0]["source_name"] == "Broken"
        assert fake_http.requested[0] == "https://example.com/rss.xml"

        content_repo = components.content_repository
        article = content_repo.find_by_canonical_url("https://example.com/articles/mahomes-comeback")
        assert article.type == ContentType.ARTICLE
        assert article.thumbnail_url == "https://img.example.com/mahomes.jpg"
        assert article.metadata["author"] == "Jane Analyst"
        assert set(content_repo.get_tag_ids(article.id)) == {
            sample_tags["patrick-mahomes"], sample_tags["kansas-city-chiefs"]
        }

        waivers = content_repo.find_by_canonical_url("https://example.com/articles/week-3-waivers")
        assert waivers.thumbnail_url == "https://img.example.com/waivers.png"
        assert content_repo.get_tag_ids(waivers.id) == [sample_tags["waiver-wire"]]

        video = content_repo.find_by_canonical_url("https://www.youtube.com/watch?v=abc123")
        assert video.type == ContentType.VIDEO
        assert video.thumbnail_url == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"

        episode = content_repo.find_by_canonical_url("pod-episode-12")
        assert episode.type == ContentType.PODCAST
        assert episode.thumbnail_url == "https://pod.example.com/ep12.jpg"

        failed = components.source_repository.get_source(broken.id)
        assert failed.last_error == "HTTP 503: Service Unavailable"
        assert failed.last_ingested_at is None
        for source in healthy:
            stored = components.source_repository.get_source(source.id)
            assert stored.last_ingested_at is not None, source.name
            assert stored.last_error is None, source.name

    @pytest.mark.asyncio
    async def test_bad_feed_url_row_fails_alone(self, components, documents, fake_http):
        alpha = add_source(components, "Alpha", "https://example.com/rss.xml")
        components.source_repository.db.execute_update(
            "INSERT INTO sources (id, name, type, feed_url) VALUES (?, ?, ?, ?)",
            ("bad-1", "Beta", "RSS", "feed://example.com/b.xml"),
        )
        documents["https://example.com/rss.xml"] = rss_with_items(2)

        batch = await components.scheduler.ingest_all_active_sources()

        assert (batch.succeeded, batch.failed, batch.items_ingested) == (1, 1, 2)
        assert fake_http.requested == ["https://example.com/rss.xml"]
        assert components.source_repository.get_source(alpha.id).last_error is None
        bad = components.source_repository.get_source("bad-1")
        assert bad.last_error.startswith("Unsupported feed URL scheme")
        assert bad.last_ingested_at is None

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, components, documents, fake_http):
        add_source(components, "Rotoworld", "https://example.com/rss.xml")
        documents["https://example.com/rss.xml"] = SAMPLE_RSS_FEED

        first = await components.scheduler.ingest_all_active_sources()
        second = await components.scheduler.ingest_all_active_sources()

        assert first.items_ingested == 2
        assert second.items_ingested == 0
        assert second.skipped == 2
        assert components.content_repository.count() == 2

    @pytest.mark.asyncio
    async def test_same_url_from_two_sources_stored_once(self, components, documents, fake_http):
        first = add_source(components, "Alpha", "https://alpha.example.com/rss")
        add_source(components, "Beta", "https://beta.example.com/rss")
        documents["https://alpha.example.com/rss"] = rss_with_items(3)
        documents["https://beta.example.com/rss"] = rss_with_items(3)

        batch = await components.scheduler.ingest_all_active_sources()

        assert batch.items_ingested == 3
        assert components.content_repository.count_by_source() == {first.id: 3}

    @pytest.mark.asyncio
    async def test_overlapping_batches_single_flight(self, components, documents, fake_http):
        add_source(components, "Rotoworld", "https://example.com/rss.xml")
        documents["https://example.com/rss.xml"] = rss_with_items(4)

        results = await asyncio.gather(
            components.scheduler.ingest_all_active_sources(),
            components.scheduler.ingest_all_active_sources(),
        )

        assert results[1] is None
        assert results[0].items_ingested == 4
        assert components.content_repository.count() == 4
