"""
Unit Tests for Gap Detector
===========================
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from redzone.database.models import Source, SourceType, utc_now
from redzone.scheduler.batch_scheduler import BatchResult
from redzone.scheduler.gap_detector import GapDetector, StaleSource


@pytest.fixture
def scheduler():
    mock_scheduler = MagicMock()
    mock_scheduler.ingest_all_active_sources = AsyncMock(return_value=BatchResult(succeeded=1))
    return mock_scheduler


@pytest.fixture
def detector(source_repo, scheduler):
    return GapDetector(source_repo, scheduler, threshold_hours=2, empty_fetch_warning_threshold=3)


class TestStaleSource:

    def test_age_label(self):
        assert StaleSource("s1", "Never", None).age_label == "never"
        assert StaleSource("s2", "Old", 185).age_label == "185 min ago"


class TestCheckAndHealGaps:

    @pytest.mark.asyncio
    async def test_no_gaps_no_batch(self, detector, scheduler, source_repo, rss_source):
        source_repo.record_success(rss_source.id, at=utc_now() - timedelta(minutes=30))

        result = await detector.check_and_heal_gaps()

        assert not result.has_gaps
        assert not result.healing_triggered
        assert result.batch_result is None
        scheduler.ingest_all_active_sources.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_source_triggers_batch(self, detector, scheduler, source_repo, rss_source):
        now = utc_now()
        source_repo.record_success(rss_source.id, at=now - timedelta(hours=3))

        result = await detector.check_and_heal_gaps(now=now)

        assert result.healing_triggered
        assert result.stale_sources == [StaleSource(rss_source.id, "Rotoworld", 180)]
        assert result.batch_result.succeeded == 1
        scheduler.ingest_all_active_sources.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_never_ingested_source_is_stale(self, detector, scheduler, rss_source):
        result = await detector.check_and_heal_gaps()

        assert [s.age_label for s in result.stale_sources] == ["never"]
        scheduler.ingest_all_active_sources.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_inactive_sources_ignored(self, detector, scheduler, source_repo, rss_source):
        source_repo.set_active(rss_source.id, False)

        result = await detector.check_and_heal_gaps()

        assert not result.has_gaps
        scheduler.ingest_all_active_sources.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_batch_for_many_stale_sources(self, detector, scheduler, source_repo):
        for name in ("Alpha", "Beta", "Gamma"):
            source_repo.create_source(
                Source(name=name, type=SourceType.RSS, feed_url=f"https://example.com/{name}.xml")
            )

        result = await detector.check_and_heal_gaps()

        assert [s.name for s in result.stale_sources] == ["Alpha", "Beta", "Gamma"]
        scheduler.ingest_all_active_sources.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_already_running(self, detector, scheduler, rss_source):
        scheduler.ingest_all_active_sources.return_value = None

        result = await detector.check_and_heal_gaps()

        assert result.healing_triggered
        assert result.batch_result is None

    @pytest.mark.asyncio
    async def test_silently_empty_sources_reported(self, detector, source_repo, rss_source):
        for _ in range(3):
            source_repo.record_empty_fetch(rss_source.id)

        result = await detector.check_and_heal_gaps()

        assert result.silently_empty == ["Rotoworld"]
        assert not result.has_gaps
