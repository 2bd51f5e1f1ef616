"""
Tests for text normalization and similarity helpers.
"""

import pytest

from localdirectory.matching.normalize import (
    comment_similarity,
    normalize_business_name,
    normalize_phone,
    normalize_text,
    same_author,
    string_similarity,
)


class TestNormalizeBusinessName:
    """Tests for business name normalization."""

    def test_strips_punctuation_and_legal_suffix(self):
        """Apostrophes, commas and LLC are removed."""
        assert normalize_business_name("Joe's Plumbing, LLC") == "joes plumbing"

    def test_collapses_whitespace(self):
        assert normalize_business_name("  Acme   Roofing  Inc ") == "acme roofing"

    def test_suffix_only_inside_word_is_kept(self):
        """Suffixes are matched on word boundaries."""
        assert normalize_business_name("Incline Cooling") == "incline cooling"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_input(self, value):
        assert normalize_business_name(value) == ""


class TestNormalizeOther:
    """Tests for text and phone normalization."""

    def test_phone_keeps_digits_only(self):
        assert normalize_phone("(555) 123-4567") == normalize_phone("555.123.4567") == "5551234567"

    def test_text_replaces_punctuation_with_spaces(self):
        assert normalize_text("123 Main St., Suite#4") == "123 main st suite 4"


class TestSimilarity:
    """Tests for string and comment similarity."""

    def test_identical_strings(self):
        assert string_similarity("plumbing", "plumbing") == 1.0

    def test_both_empty_is_identical(self):
        assert string_similarity("", "") == 1.0

    def test_one_empty_is_dissimilar(self):
        assert string_similarity("abc", "") == 0.0

    def test_single_edit(self):
        """One substitution in ten characters is 0.9 similar."""
        assert string_similarity("abcdefghij", "abcdefghiX") == pytest.approx(0.9)

    def test_comment_similarity_ignores_case_and_outer_space(self):
        assert comment_similarity("  Great Service ", "great service") == 1.0

    def test_same_author_is_case_insensitive(self):
        assert same_author("Alice Smith", "alice smith ")

    def test_blank_authors_never_match(self):
        assert not same_author("", "")
        assert not same_author(None, "Alice")
