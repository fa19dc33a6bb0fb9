"""
Tests for subject line parsing.
"""

import pytest

from domain.subject_router import parse_subject


class TestParseSubject:
    """Test the '<keyword> - <target>' convention."""

    def test_keyword_and_target(self):
        assert parse_subject("紧急 - 客服部门") == ("紧急", "客服部门")

    def test_no_delimiter(self):
        assert parse_subject("no-delimiter-here") == ("", "")

    def test_plain_subject(self):
        assert parse_subject("Weekly report") == ("", "")

    def test_empty_subject(self):
        assert parse_subject("") == ("", "")
        assert parse_subject(None) == ("", "")

    def test_splits_on_first_separator(self):
        """Keyword is the shortest left segment; the rest is the target."""
        assert parse_subject("投诉 - 客服 - 华东区") == ("投诉", "客服 - 华东区")

    def test_whitespace_is_trimmed(self):
        assert parse_subject("   重要   -    技术支持   ") == ("重要", "技术支持")

    @pytest.mark.parametrize("subject", ["紧急 -客服部门", "紧急- 客服部门"])
    def test_one_sided_whitespace(self, subject):
        assert parse_subject(subject) == ("紧急", "客服部门")

    def test_hyphenated_words_kept_in_target(self):
        assert parse_subject("bug - tech-support") == ("bug", "tech-support")

    @pytest.mark.parametrize("subject", [" - 客服部门", "紧急 - ", "-"])
    def test_missing_segment(self, subject):
        assert parse_subject(subject) == ("", "")
