"""
Gap Detection
=============

Finds active sources whose last successful ingestion is missing or older
than the threshold and heals them by running a full batch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config.settings import get_settings
from ..database.models import utc_now
from ..storage.source_repository import SourceRepository
from ..utils.logging import get_logger_for_component
from .batch_scheduler import BatchResult, IngestionScheduler


@dataclass
class StaleSource:
    source_id: str
    name: str
    minutes_since_ingest: Optional[int]

    @property
    def age_label(self) -> str:
        if self.minutes_since_ingest is None:
            return "never"
        return f"{self.minutes_since_ingest} min ago"


@dataclass
class GapCheckResult:
    """What a gap check found and whether it triggered healing."""

    stale_sources: List[StaleSource] = field(default_factory=list)
    silently_empty: List[str] = field(default_factory=list)
    healing_triggered: bool = False
    batch_result: Optional[BatchResult] = None

    @property
    def has_gaps(self) -> bool:
        return bool(self.stale_sources)


class GapDetector:
    """Self-healing check for sources that fell behind."""

    def __init__(
        self,
        source_repository: SourceRepository,
        scheduler: IngestionScheduler,
        threshold_hours: Optional[float] = None,
        empty_fetch_warning_threshold: Optional[int] = None,
    ):
        settings = get_settings()
        self.source_repository = source_repository
        self.scheduler = scheduler
        self.threshold_hours = threshold_hours or settings.scheduler.gap_threshold_hours
        self.empty_fetch_warning_threshold = (
            empty_fetch_warning_threshold or settings.scheduler.empty_fetch_warning_threshold
        )
        self.logger = get_logger_for_component("gap_detector")

    async def check_and_heal_gaps(self, now: Optional[datetime] = None) -> GapCheckResult:
        """Log stale sources and run a batch if any are found.

        Args:
            now: Reference time (defaults to current UTC time)
        """
        now = now or utc_now()
        result = GapCheckResult()

        self.logger.info("Checking for data gaps...")
        self._report_silently_empty(result)

        stale = self.source_repository.find_stale_sources(self.threshold_hours, now=now)
        if not stale:
            self.logger.info("No gaps detected")
            return result

        result.stale_sources = [
            StaleSource(s.id, s.name, s.staleness_minutes(now)) for s in stale
        ]

        self.logger.warning(f"Found {len(stale)} stale source(s):")
        for entry in result.stale_sources:
            self.logger.warning(f"  - {entry.name}: {entry.age_label}")

        self.logger.info("Triggering self-healing ingestion...")
        result.healing_triggered = True
        result.batch_result = await self.scheduler.ingest_all_active_sources()
        self.logger.info("Self-healing complete")

        return result

    def _report_silently_empty(self, result: GapCheckResult) -> None:
        # Empty feeds count as ingested, so they never look stale
        sources = self.source_repository.find_silently_empty_sources(
            self.empty_fetch_warning_threshold
        )
        for source in sources:
            self.logger.warning(
                f"Source {source.name} returned no items {source.consecutive_empty_fetches} times in a row",
                extra={"source_id": source.id},
            )
        result.silently_empty = [source.name for source in sources]
