"""
Scheduler Service
=================

Long-running timer loop: a gap check at startup, an ingestion batch every
ingest interval, and a gap check every gap-check interval.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from ..config.settings import RedZoneSettings, get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..ingestion.orchestrator import SourceIngestionOrchestrator
from ..ingestion.tag_matcher import TagMatcher
from ..storage.content_repository import ContentRepository
from ..storage.source_repository import SourceRepository
from ..storage.tag_repository import TagRepository
from ..utils.logging import get_logger_for_component
from .batch_scheduler import IngestionScheduler
from .gap_detector import GapDetector


@dataclass
class IngestionComponents:
    """Wired ingestion stack sharing one database manager."""

    db: DatabaseConnection
    source_repository: SourceRepository
    content_repository: ContentRepository
    tag_repository: TagRepository
    tag_matcher: TagMatcher
    orchestrator: SourceIngestionOrchestrator
    scheduler: IngestionScheduler
    gap_detector: GapDetector


def build_components(
    settings: Optional[RedZoneSettings] = None,
    db: Optional[DatabaseConnection] = None,
) -> IngestionComponents:
    """Wire repositories, matcher, orchestrator, scheduler and gap detector."""
    settings = settings or get_settings()
    db = db or get_db_manager(settings.database.path, settings.database.pool_size)

    source_repository = SourceRepository(db)
    content_repository = ContentRepository(db)
    tag_repository = TagRepository(db)
    tag_matcher = TagMatcher(tag_repository)
    orchestrator = SourceIngestionOrchestrator(source_repository, content_repository, tag_matcher)
    scheduler = IngestionScheduler(source_repository, orchestrator, tag_matcher)
    gap_detector = GapDetector(source_repository, scheduler)

    return IngestionComponents(
        db=db,
        source_repository=source_repository,
        content_repository=content_repository,
        tag_repository=tag_repository,
        tag_matcher=tag_matcher,
        orchestrator=orchestrator,
        scheduler=scheduler,
        gap_detector=gap_detector,
    )


class SchedulerService:
    """Timer loop driving batches and gap checks until stopped."""

    def __init__(
        self,
        scheduler: IngestionScheduler,
        gap_detector: GapDetector,
        settings: Optional[RedZoneSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler
        self.gap_detector = gap_detector
        self.logger = get_logger_for_component("scheduler_service")

        self.ingest_interval = self.settings.scheduler.ingest_interval_minutes * 60
        self.gap_check_interval = self.settings.scheduler.gap_check_interval_hours * 3600

        self._stop_event = asyncio.Event()
        self.running = False

    async def run_service(self) -> None:
        """Run until stop() is called."""
        self.running = True
        loop = asyncio.get_running_loop()

        self.logger.info(
            f"Starting scheduler service: batch every {self.settings.scheduler.ingest_interval_minutes} min, "
            f"gap check every {self.settings.scheduler.gap_check_interval_hours} h"
        )

        if self.settings.scheduler.gap_check_on_startup:
            await self.run_gap_check()

        next_batch = loop.time() + self.ingest_interval
        next_gap_check = loop.time() + self.gap_check_interval

        while not self._stop_event.is_set():
            delay = max(0.0, min(next_batch, next_gap_check) - loop.time())
            if await self._wait_for_stop(delay):
                break

            now = loop.time()
            if now >= next_gap_check:
                await self.run_gap_check()
                next_gap_check = now + self.gap_check_interval
            if now >= next_batch:
                await self.run_batch()
                next_batch = now + self.ingest_interval

        self.running = False
        self.logger.info("Scheduler service stopped")

    async def _wait_for_stop(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_batch(self) -> None:
        """One scheduled batch; errors are logged and never end the loop."""
        try:
            result = await self.scheduler.ingest_all_active_sources()
            if result is not None:
                self.logger.info(
                    f"Scheduled batch: {result.succeeded} succeeded, {result.failed} failed, "
                    f"{result.items_ingested} items"
                )
        except Exception as e:
            self.logger.error(f"Scheduled batch failed: {e}", exc_info=True)

    async def run_gap_check(self) -> None:
        """One gap check; errors are logged and never end the loop."""
        try:
            await self.gap_detector.check_and_heal_gaps()
        except Exception as e:
            self.logger.error(f"Gap check failed: {e}", exc_info=True)

    def stop(self) -> None:
        """Ask the loop to finish after the current tick."""
        self._stop_event.set()
