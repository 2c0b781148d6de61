"""
Source Ingestion Orchestrator
=============================

Runs one source end to end: fetch, normalize, tag and persist each item,
then write the source's health fields.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import aiohttp

from ..config.settings import get_settings
from ..storage.content_repository import ContentRepository, PersistOutcome
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import (
    ItemRejectedError,
    RedZoneError,
    SourceNotFoundError,
    TagDictionaryNotLoadedError,
    truncate_error_message,
)
from ..utils.logging import OperationTimer, get_logger_for_component
from .feed_fetcher import FeedFetcher
from .metadata_extractor import MetadataExtractor
from .tag_matcher import TagMatcher


@dataclass
class SourceIngestResult:
    """Outcome of ingesting one source."""

    source_id: str
    source_name: str
    created: int = 0
    skipped: int = 0
    errors: int = 0
    item_count: int = 0
    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SourceIngestionOrchestrator:
    """Per-source ingestion with failure isolation between items."""

    def __init__(
        self,
        source_repository: SourceRepository,
        content_repository: ContentRepository,
        tag_matcher: TagMatcher,
        feed_fetcher: Optional[FeedFetcher] = None,
        extractor: Optional[MetadataExtractor] = None,
    ):
        settings = get_settings()
        self.source_repository = source_repository
        self.content_repository = content_repository
        self.tag_matcher = tag_matcher
        self.feed_fetcher = feed_fetcher or FeedFetcher()
        self.extractor = extractor or MetadataExtractor(settings.processing.untitled_placeholder)
        self.max_error_length = settings.limits.max_error_length
        self.logger = get_logger_for_component("ingestion")

    async def ingest_source(
        self, source_id: str, session: Optional[aiohttp.ClientSession] = None
    ) -> SourceIngestResult:
        """Ingest every item currently published by a source.

        Args:
            source_id: Source to ingest
            session: Shared HTTP session for the batch

        Returns:
            Counts of created, skipped and failed items

        Raises:
            SourceNotFoundError: If no source has this ID
            FeedFetchError: If the feed could not be fetched (recorded on the source first)
            TagDictionaryNotLoadedError: If the tag matcher was never loaded
        """
        source = self.source_repository.get_source(source_id)
        if source is None:
            self.logger.error(f"Source {source_id} not found", extra={"source_id": source_id})
            raise SourceNotFoundError(source_id)

        logger = self.logger.bind(
            source_id=source.id, source_name=source.name, feed_url=source.feed_url
        )
        result = SourceIngestResult(source_id=source.id, source_name=source.name)

        logger.info(f"Starting: {source.name} ({source.type.value}) - {source.feed_url}")

        with OperationTimer(logger, f"Ingestion of {source.name}") as timer:
            try:
                items = await self.feed_fetcher.fetch(source.feed_url, session)
            except Exception as e:
                message = truncate_error_message(e, self.max_error_length)
                self.source_repository.record_fetch_failure(source.id, message)
                error_code = e.error_code.value if isinstance(e, RedZoneError) and e.error_code else None
                logger.error(f"{source.name}: {message}", extra={"error_code": error_code})
                raise

            if not items:
                logger.warning(f"No items found in feed: {source.name}")
                self.source_repository.record_empty_fetch(source.id)
                return result

            result.item_count = len(items)

            for raw_item in items:
                try:
                    item = self.extractor.extract(raw_item, source.type)
                    tag_ids = self.tag_matcher.match_tags(item.title, item.description)
                    outcome = self.content_repository.ingest_item(item, source, tag_ids)
                except TagDictionaryNotLoadedError:
                    raise
                except ItemRejectedError as e:
                    result.errors += 1
                    logger.warning(f"Item rejected in {source.name}: {e.message}")
                    continue
                except Exception as e:
                    result.errors += 1
                    logger.error(f"Error processing item from {source.name}: {e}")
                    continue

                if outcome == PersistOutcome.CREATED:
                    result.created += 1
                else:
                    result.skipped += 1

            self.source_repository.record_success(source.id)
            timer.counts.update(created=result.created, skipped=result.skipped, errors=result.errors)

        result.duration_seconds = timer.duration
        return result
