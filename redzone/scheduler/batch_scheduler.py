"""
Batch Ingestion Scheduler
=========================

Runs the orchestrator over every active source as one batch, with at most
one batch in flight per process.

A batch requested while another is running is skipped, not queued. One
source's failure never prevents the others; the tally of successes,
failures and new items is logged and returned.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..config.settings import get_settings
from ..database.models import Source
from ..ingestion.orchestrator import SourceIngestionOrchestrator, SourceIngestResult
from ..ingestion.tag_matcher import TagMatcher
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import TagDictionaryNotLoadedError, truncate_error_message
from ..utils.logging import OperationTimer, get_logger_for_component
from ..utils.single_flight import SingleFlightGuard

# Process-wide: every scheduler in this process shares one batch guard
BATCH_GUARD = SingleFlightGuard("ingestion-batch")


@dataclass
class BatchResult:
    """Tally of one batch run."""

    succeeded: int = 0
    failed: int = 0
    items_ingested: int = 0
    skipped: int = 0
    item_errors: int = 0
    duration_seconds: float = 0.0
    source_results: List[SourceIngestResult] = field(default_factory=list)
    failures: List[Dict[str, str]] = field(default_factory=list)

    @property
    def source_count(self) -> int:
        return self.succeeded + self.failed

    def record_success(self, result: SourceIngestResult) -> None:
        self.succeeded += 1
        self.items_ingested += result.created
        self.skipped += result.skipped
        self.item_errors += result.errors
        self.source_results.append(result)

    def record_failure(self, source: Source, error: BaseException) -> None:
        self.failed += 1
        self.failures.append({
            "source_id": source.id,
            "source_name": source.name,
            "error": truncate_error_message(error, 200),
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "items_ingested": self.items_ingested,
            "skipped": self.skipped,
            "item_errors": self.item_errors,
            "duration_seconds": round(self.duration_seconds, 2),
            "sources": [r.to_dict() for r in self.source_results],
            "failures": list(self.failures),
        }


class IngestionScheduler:
    """Single-flight batch runner over all active sources."""

    def __init__(
        self,
        source_repository: SourceRepository,
        orchestrator: SourceIngestionOrchestrator,
        tag_matcher: TagMatcher,
        max_concurrent_sources: Optional[int] = None,
        guard: Optional[SingleFlightGuard] = None,
    ):
        """Initialize the batch scheduler.

        Args:
            source_repository: Source listing
            orchestrator: Per-source ingestion
            tag_matcher: Loaded lazily before the first batch
            max_concurrent_sources: Sources ingested at once (default from config, 1 = sequential)
            guard: Single-flight guard (defaults to the process-wide one)
        """
        settings = get_settings()
        self.source_repository = source_repository
        self.orchestrator = orchestrator
        self.tag_matcher = tag_matcher
        self.max_concurrent_sources = (
            max_concurrent_sources or settings.processing.max_concurrent_sources
        )
        self.guard = guard or BATCH_GUARD
        self.logger = get_logger_for_component("scheduler")
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self.guard.is_running

    async def ingest_all_active_sources(self) -> Optional[BatchResult]:
        """Ingest every active source once.

        Returns:
            Batch tally, or None if a batch was already running
        """
        async with self.guard.hold() as acquired:
            if not acquired:
                self.logger.info("Batch skipped: already running")
                return None

            result = BatchResult()
            with OperationTimer(self.logger, "Ingestion batch") as timer:
                if not self.tag_matcher.is_loaded():
                    self.tag_matcher.load_dictionary()

                sources = self.source_repository.list_active_sources()
                self.logger.info(f"Starting batch for {len(sources)} active source(s)")

                if self.max_concurrent_sources > 1:
                    await self._run_concurrently(sources, result)
                else:
                    for source in sources:
                        await self._run_source(source, result)

                timer.counts.update(
                    succeeded=result.succeeded,
                    failed=result.failed,
                    items_ingested=result.items_ingested,
                )

            result.duration_seconds = timer.duration
            return result

    async def _run_source(self, source: Source, result: BatchResult) -> None:
        try:
            source_result = await self.orchestrator.ingest_source(source.id)
        except TagDictionaryNotLoadedError:
            raise
        except Exception as e:
            self.logger.error(
                f"Failed for source {source.id} ({source.name}): {e}",
                extra={"source_id": source.id},
            )
            result.record_failure(source, e)
        else:
            result.record_success(source_result)

    async def _run_concurrently(self, sources: List[Source], result: BatchResult) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrent_sources)

        async def run_with_semaphore(source: Source):
            async with semaphore:
                try:
                    return await self.orchestrator.ingest_source(source.id)
                except TagDictionaryNotLoadedError:
                    raise
                except Exception as e:
                    return e

        outcomes = await asyncio.gather(*(run_with_semaphore(s) for s in sources))

        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, Exception):
                self.logger.error(
                    f"Failed for source {source.id} ({source.name}): {outcome}",
                    extra={"source_id": source.id},
                )
                result.record_failure(source, outcome)
            else:
                result.record_success(outcome)

    def trigger_in_background(self) -> asyncio.Task:
        """Start a batch without waiting for it. Must be called from a running loop."""
        task = asyncio.create_task(self.ingest_all_active_sources())
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            self.logger.warning("Background batch was cancelled")
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                f"Background batch failed: {error}", exc_info=(type(error), error, error.__traceback__)
            )
