"""
RedZone Storage Layer
=====================

Repository pattern implementations for data access abstraction.

This module provides:
- Source repository with fetch-health bookkeeping
- Content repository, the canonical URL dedup gateway
- Tag repository for the tag dictionary
"""

from .content_repository import ContentRepository, PersistOutcome
from .source_repository import SourceRepository
from .tag_repository import TagRepository

__all__ = [
    "ContentRepository",
    "PersistOutcome",
    "SourceRepository",
    "TagRepository",
]
