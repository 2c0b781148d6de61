"""
Unit Tests for Tag Matcher
==========================

Dictionary loading from the tags table and case-insensitive matching.
"""

import logging

import pytest

from redzone.database.models import Tag, TagType
from redzone.ingestion.tag_matcher import TagMatcher
from redzone.utils.exceptions import ErrorCode, TagDictionaryNotLoadedError


def insert_raw_tag(db, tag_id, slug, patterns_text):
    db.execute_update(
        "INSERT INTO tags (id, slug, name, type, patterns) VALUES (?, ?, ?, ?, ?)",
        (tag_id, slug, slug.title(), "KEYWORD", patterns_text),
    )


class TestTagMatcher:

    def test_match_before_load_raises(self, tag_repo):
        matcher = TagMatcher(tag_repo)

        assert not matcher.is_loaded()
        with pytest.raises(TagDictionaryNotLoadedError):
            matcher.match_tags("Mahomes throws four touchdowns")

    def test_load_counts_usable_tags(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)

        assert matcher.load_dictionary() == 3
        assert matcher.is_loaded()
        assert matcher.tag_count == 3

    def test_matches_title_and_description(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)
        matcher.load_dictionary()

        tag_ids = matcher.match_tags("Week 3 waiver wire", "Chiefs backup running back")

        assert set(tag_ids) == {sample_tags["waiver-wire"], sample_tags["kansas-city-chiefs"]}

    def test_case_insensitive(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)
        matcher.load_dictionary()

        assert matcher.match_tags("PATRICK MAHOMES") == [sample_tags["patrick-mahomes"]]

    def test_tag_counted_once_when_several_patterns_match(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)
        matcher.load_dictionary()

        tag_ids = matcher.match_tags("Patrick Mahomes", "Mahomes again, and Mahomes once more")

        assert tag_ids.count(sample_tags["patrick-mahomes"]) == 1

    def test_no_match(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)
        matcher.load_dictionary()

        assert matcher.match_tags("Dynasty rookie rankings", None) == []

    def test_unusable_pattern_lists_skipped(self, tag_repo, db_connection):
        insert_raw_tag(db_connection, "t-bad-json", "bad-json", "{not json")
        insert_raw_tag(db_connection, "t-not-list", "not-list", '{"pattern": "x"}')
        insert_raw_tag(db_connection, "t-empty", "empty", "[]")
        insert_raw_tag(db_connection, "t-good", "good", '["touchdown"]')
        matcher = TagMatcher(tag_repo)

        assert matcher.load_dictionary() == 1
        assert matcher.match_tags("Touchdown!") == ["t-good"]

    def test_invalid_regex_skipped_other_patterns_kept(self, tag_repo, db_connection, caplog):
        insert_raw_tag(db_connection, "t-mixed", "mixed", '["([unclosed", "red ?zone"]')
        insert_raw_tag(db_connection, "t-broken", "broken", '["*oops"]')
        matcher = TagMatcher(tag_repo)

        assert matcher.load_dictionary() == 1
        assert matcher.match_tags("Red zone targets") == ["t-mixed"]

        warnings = [r for r in caplog.records if r.name == "redzone.tag_matcher" and r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert {r.error_code for r in warnings} == {ErrorCode.TAG_PATTERN_INVALID.value}

    def test_reload_replaces_dictionary(self, tag_repo, sample_tags):
        matcher = TagMatcher(tag_repo)
        matcher.load_dictionary()
        assert matcher.match_tags("Sleeper picks") == []

        tag_repo.upsert_tag(Tag(slug="sleepers", name="Sleepers", type=TagType.TOPIC,
                                patterns=[r"\bsleepers?\b"]))
        assert matcher.match_tags("Sleeper picks") == []

        matcher.load_dictionary()
        assert matcher.match_tags("Sleeper picks") == [tag_repo.get_tag_by_slug("sleepers").id]
