"""
tests/test_paths_query.py — Path handling and where-filter operators
=====================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from commonplace.store.paths import (
    InvalidPathError,
    collection_path,
    parse_timestamp,
    split_document_path,
    timestamp,
)
from commonplace.store.query import OPERATORS, build_filter


class TestPaths:

    def test_collection_path_normalises_slashes(self):
        assert collection_path("/howtos/") == "howtos"
        assert collection_path("research/abc/updates") == "research/abc/updates"

    def test_collection_path_rejects_document_path(self):
        with pytest.raises(InvalidPathError, match="document path"):
            collection_path("howtos/abc")

    def test_split_document_path(self):
        assert split_document_path("howtos/abc") == ("howtos", "abc")
        assert split_document_path("research/r1/updates/u1") == ("research/r1/updates", "u1")

    def test_split_rejects_collection_path(self):
        with pytest.raises(InvalidPathError, match="collection path"):
            split_document_path("howtos")

    @pytest.mark.parametrize("path", ["", "/", "howtos//abc", "a//b"])
    def test_empty_segments_rejected(self, path):
        with pytest.raises(InvalidPathError):
            collection_path(path)

    def test_invalid_path_is_value_error(self):
        assert issubclass(InvalidPathError, ValueError)


class TestTimestamps:

    def test_always_has_microseconds(self):
        stamp = timestamp(datetime(2024, 1, 1, tzinfo=UTC))
        assert stamp == "2024-01-01T00:00:00.000000+00:00"

    def test_lexical_order_matches_time_order(self):
        earlier = timestamp(datetime(2024, 1, 1, 9, 0, 0, tzinfo=UTC))
        later = timestamp(datetime(2024, 1, 1, 9, 0, 0, 1, tzinfo=UTC))
        assert earlier < later

    def test_parse_round_trips(self):
        value = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=UTC)
        assert parse_timestamp(timestamp(value)) == value


class TestFilters:

    RECORD = {"_id": "a", "moderation": "accepted", "votes": 3, "tags": ["pp", "shredder"]}

    @pytest.mark.parametrize(
        "field, op, value, expected",
        [
            ("moderation", "==", "accepted", True),
            ("moderation", "!=", "accepted", False),
            ("votes", "<", 4, True),
            ("votes", "<=", 3, True),
            ("votes", ">", 3, False),
            ("votes", ">=", 3, True),
            ("moderation", "in", ["draft", "accepted"], True),
            ("moderation", "not-in", ["draft", "accepted"], False),
            ("tags", "array-contains", "pp", True),
            ("tags", "array-contains-any", ["x", "shredder"], True),
            ("tags", "array-contains", "x", False),
        ],
    )
    def test_operators(self, field, op, value, expected):
        assert build_filter(field, op, value)(self.RECORD) is expected

    def test_missing_field_never_matches(self):
        assert build_filter("title", "!=", "x")(self.RECORD) is False

    def test_incomparable_types_do_not_match(self):
        assert build_filter("moderation", "<", 3)(self.RECORD) is False

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError, match="Invalid query operator"):
            build_filter("votes", "~=", 3)

    def test_list_operator_requires_list(self):
        with pytest.raises(ValueError, match="requires a list"):
            build_filter("moderation", "in", "accepted")

    def test_operator_table_is_complete(self):
        assert set(OPERATORS) == {
            "==", "!=", "<", "<=", ">", ">=",
            "in", "not-in", "array-contains", "array-contains-any",
        }
