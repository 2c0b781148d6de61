"""
Tag Matcher
===========

In-memory tag dictionary of compiled regular expressions, matched against
an item's title and description.
"""

import json
import re
from typing import List, Optional, Pattern, Tuple

from ..storage.tag_repository import TagRepository
from ..utils.exceptions import ErrorCode, TagDictionaryNotLoadedError
from ..utils.logging import get_logger_for_component

INVALID_PATTERN = {"error_code": ErrorCode.TAG_PATTERN_INVALID.value}


class TagMatcher:
    """Case-insensitive regex tagger.

    The dictionary is loaded explicitly and stays fixed until the next
    load_dictionary() call.
    """

    def __init__(self, tag_repository: TagRepository):
        self.tag_repository = tag_repository
        self.logger = get_logger_for_component("tag_matcher")
        self._dictionary: Optional[List[Tuple[str, List[Pattern]]]] = None

    def load_dictionary(self) -> int:
        """Read and compile every tag.

        Returns:
            Number of tags in the loaded dictionary
        """
        dictionary: List[Tuple[str, List[Pattern]]] = []

        for row in self.tag_repository.get_tag_rows():
            slug = row.get("slug")
            raw_patterns = self._parse_patterns(row.get("patterns"), slug)
            if not raw_patterns:
                continue

            compiled = []
            for pattern in raw_patterns:
                try:
                    compiled.append(re.compile(pattern, re.IGNORECASE))
                except (re.error, TypeError) as e:
                    self.logger.warning(f"Skipping invalid pattern {pattern!r} for tag {slug}: {e}", extra=INVALID_PATTERN)

            if compiled:
                dictionary.append((row["id"], compiled))

        self._dictionary = dictionary
        self.logger.info(f"Loaded tag dictionary with {len(dictionary)} tags")
        return len(dictionary)

    def _parse_patterns(self, raw: Optional[str], slug: Optional[str]) -> List[str]:
        if not raw:
            return []
        try:
            patterns = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.warning(f"Skipping tag {slug}: patterns are not valid JSON", extra=INVALID_PATTERN)
            return []
        if not isinstance(patterns, list):
            self.logger.warning(f"Skipping tag {slug}: patterns are not a list", extra=INVALID_PATTERN)
            return []
        return [p for p in patterns if isinstance(p, str) and p]

    def is_loaded(self) -> bool:
        return self._dictionary is not None

    @property
    def tag_count(self) -> int:
        return len(self._dictionary) if self._dictionary is not None else 0

    def match_tags(self, title: str, description: Optional[str] = None) -> List[str]:
        """IDs of tags with at least one pattern matching the text.

        Each tag appears at most once, in dictionary order.

        Raises:
            TagDictionaryNotLoadedError: If called before load_dictionary()
        """
        if self._dictionary is None:
            raise TagDictionaryNotLoadedError()

        text = f"{title or ''} {description or ''}"
        return [
            tag_id
            for tag_id, patterns in self._dictionary
            if any(pattern.search(text) for pattern in patterns)
        ]
