"""
Tests for the fuzzy string similarity functions.
"""

import pytest

from nl_step_engine.engine.fuzzy_matcher import (
    FuzzyMatcher,
    compare,
    find_best_match,
    fuzzy_contains,
    jaro_winkler,
    lcs_length,
    levenshtein_distance,
    ngram_overlap,
    normalized_levenshtein,
    token_match,
)


class TestJaroWinkler:
    """Test jaro_winkler."""

    def test_identical(self):
        """Identical strings score 1."""
        assert jaro_winkler("submit", "submit") == 1.0

    def test_empty(self):
        """An empty side scores 0."""
        assert jaro_winkler("", "submit") == 0.0
        assert jaro_winkler("submit", "") == 0.0

    def test_classic_transposition(self):
        """The textbook MARTHA/MARHTA pair."""
        assert jaro_winkler("martha", "marhta") == pytest.approx(0.9611, abs=1e-3)

    def test_no_common_characters(self):
        """Disjoint strings score 0."""
        assert jaro_winkler("abc", "xyz") == 0.0

    def test_prefix_bonus_only_above_threshold(self):
        """Weak matches get no prefix bonus even when they share a prefix."""
        plain = jaro_winkler("ab", "azzzzzzz")
        assert plain <= 0.7

    def test_symmetric(self):
        """Score does not depend on argument order."""
        assert jaro_winkler("login", "logon") == pytest.approx(jaro_winkler("logon", "login"))


class TestNgramOverlap:
    """Test ngram_overlap."""

    def test_substring_is_full_overlap(self):
        """All bigrams of the shorter string present gives 1."""
        assert ngram_overlap("save", "save changes") == 1.0

    def test_short_strings_use_character_overlap(self):
        """Strings under n characters compare character sets."""
        assert ngram_overlap("a", "a") == 1.0
        assert ngram_overlap("a", "b") == 0.0


class TestTokenMatch:
    """Test token_match."""

    def test_reordered_words(self):
        """Word order does not matter."""
        assert token_match("first name", "name first") == pytest.approx(1.0)

    def test_partial(self):
        """Unmatched words count against the longer side."""
        assert token_match("save", "save draft") == pytest.approx(0.5)

    def test_empty(self):
        """No tokens scores 0."""
        assert token_match("", "save") == 0.0


class TestEditDistance:
    """Test levenshtein and LCS helpers."""

    def test_levenshtein(self):
        """kitten -> sitting is 3 edits."""
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_normalized_levenshtein(self):
        """Normalized by the longer string."""
        assert normalized_levenshtein("kitten", "sitting") == pytest.approx(1 - 3 / 7)
        assert normalized_levenshtein("same", "same") == 1.0
        assert normalized_levenshtein("", "x") == 0.0

    def test_lcs_length(self):
        """Longest common subsequence."""
        assert lcs_length("ABCBDAB", "BDCABA") == 4
        assert lcs_length("", "abc") == 0


class TestCompare:
    """Test the composite compare()."""

    def test_case_insensitive_equality(self):
        """Case and surrounding space are ignored."""
        result = compare("  Submit ", "submit")
        assert result.score == 1.0
        assert result.is_strong_match is True

    def test_empty_input(self):
        """Empty strings never match."""
        result = compare("", "submit")
        assert result.score == 0.0
        assert result.is_strong_match is False

    def test_breakdown_keys(self):
        """All component scores are reported."""
        result = compare("sign in", "sign-in button")
        assert set(result.breakdown) == {"jaro_winkler", "ngram_overlap", "token_match", "levenshtein"}

    def test_similar_labels_are_strong(self):
        """Near-identical labels clear the default threshold."""
        assert compare("Username", "User name").is_strong_match is True

    def test_unrelated_labels_are_weak(self):
        """Unrelated labels do not."""
        assert compare("Username", "Checkout").is_strong_match is False

    def test_short_strings_use_edit_distance(self):
        """Under 5 characters the edit-distance score can win."""
        result = compare("ok", "oK!")
        assert result.score >= result.breakdown["levenshtein"]

    def test_score_bounds(self):
        """Scores stay in [0, 1]."""
        for a, b in [("a", "b"), ("save", "save"), ("long label text", "x")]:
            assert 0.0 <= compare(a, b).score <= 1.0


class TestFindBestMatch:
    """Test find_best_match."""

    def test_picks_highest(self):
        """The closest candidate wins."""
        best = find_best_match("Log in", ["Register", "Login", "Help"])
        assert best is not None
        assert best.candidate == "Login"
        assert best.index == 1

    def test_none_below_threshold(self):
        """Nothing close enough returns None."""
        assert find_best_match("Log in", ["Register", "Help"], threshold=0.9) is None


class TestFuzzyContains:
    """Test fuzzy_contains."""

    def test_substring(self):
        """Plain containment."""
        assert fuzzy_contains("Welcome back, admin", "welcome back") is True

    def test_word_level(self):
        """Every needle word has a close haystack word."""
        assert fuzzy_contains("Order confirmed today", "ordr confirmd") is True

    def test_missing_word(self):
        """A word with no close match fails."""
        assert fuzzy_contains("Order confirmed", "payment failed") is False


class TestFuzzyMatcher:
    """Test the facade."""

    def test_threshold_is_per_instance(self):
        """Each instance keeps its own strong-match threshold."""
        strict = FuzzyMatcher(strong_match_threshold=0.99)
        loose = FuzzyMatcher(strong_match_threshold=0.5)
        assert strict.compare("Username", "User name").is_strong_match is False
        assert loose.compare("Username", "User name").is_strong_match is True

    def test_static_helpers(self):
        """Primitives are reachable from the facade."""
        assert FuzzyMatcher.jaro_winkler("a", "a") == 1.0
        assert FuzzyMatcher().lcs_length("abc", "abc") == 3
