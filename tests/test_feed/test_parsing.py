"""Tests for source-name parsing."""

import pytest

from reddit_feed.feed.parsing import dedupe_source_names, normalize_source_name, parse_source_names


class TestNormalizeSourceName:
    """Tests for normalize_source_name."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("pics", "pics"),
            ("r/pics", "pics"),
            ("/r/Pics/", "Pics"),
            ("R/aww", "aww"),
            ("  earth porn ", "earthporn"),
            ("ask-science", "askscience"),
            ("", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        """Should strip prefixes, slashes and invalid characters."""
        assert normalize_source_name(raw) == expected


class TestParseSourceNames:
    """Tests for parse_source_names."""

    def test_separators(self):
        """Should split on commas, semicolons and newlines."""
        assert parse_source_names("pics, aww;EarthPorn\nfoodporn") == [
            "pics",
            "aww",
            "EarthPorn",
            "foodporn",
        ]

    def test_dedupes_case_insensitively(self):
        """Should keep the first spelling of duplicate names."""
        assert parse_source_names("r/Pics, pics, /r/PICS/") == ["Pics"]

    def test_blank(self):
        """Should return nothing for blank input."""
        assert parse_source_names("") == []
        assert parse_source_names(" ,;\n ") == []


class TestDedupeSourceNames:
    """Tests for dedupe_source_names."""

    def test_drops_empty(self):
        """Should drop empty names."""
        assert dedupe_source_names(["", "a", "A", "b"]) == ["a", "b"]
