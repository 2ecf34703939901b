"""Tests for the exact-token term matcher."""

from visibility_scoring.analysis.tokenizer import (
    find_all_positions,
    find_positions,
    find_term_positions,
    normalize_word,
    tokenize,
)


class TestTokenize:
    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("Acme Pro is great, unlike BadCo Lite.") == [
            "acme",
            "pro",
            "is",
            "great",
            "unlike",
            "badco",
            "lite",
        ]

    def test_empty_text(self):
        assert tokenize("") == []
        assert tokenize("   ...  ") == []

    def test_possessive_is_stripped(self):
        assert tokenize("Acme's support and Acme’s pricing") == ["acme", "support", "and", "acme", "pricing"]

    def test_inner_apostrophe_kept(self):
        assert tokenize("don't") == ["don't"]

    def test_unicode_letters(self):
        assert tokenize("Сбер: лучший банк") == ["сбер", "лучший", "банк"]

    def test_underscore_separates_tokens(self):
        assert tokenize("foo_bar") == ["foo", "bar"]

    def test_normalize_word(self):
        assert normalize_word("'Quoted'") == "quoted"
        assert normalize_word("BRAND'S") == "brand"


class TestFindPositions:
    def test_single_word(self):
        assert find_positions("Acme is better than Acme", "acme") == [1, 5]

    def test_multi_word_term(self):
        assert find_positions("We like Acme Pro a lot", "Acme Pro") == [3]

    def test_no_partial_token_match(self):
        assert find_positions("Acmeville is a town", "Acme") == []

    def test_possessive_matches(self):
        assert find_positions("I love Acme's products", "Acme") == [3]

    def test_empty_term(self):
        assert find_positions("Acme", "") == []
        assert find_positions("Acme", "!!!") == []

    def test_term_longer_than_text(self):
        assert find_positions("Acme", "Acme Pro Max") == []

    def test_overlapping_terms_are_independent(self):
        text = "Acme Pro is great"
        assert find_positions(text, "Acme") == [1]
        assert find_positions(text, "Acme Pro") == [1]

    def test_repeated_word_term(self):
        assert find_positions("go go go", "go go") == [1, 2]

    def test_strictly_increasing_and_deterministic(self):
        text = "Acme, acme; ACME! Acme's acme-acme"
        first = find_positions(text, "Acme")
        second = find_positions(text, "Acme")
        assert first == second
        assert first == sorted(set(first))
        assert all(p >= 1 for p in first)
        assert first == [1, 2, 3, 4, 5, 6]

    def test_find_term_positions_on_tokens(self):
        assert find_term_positions(["a", "b", "a", "b"], ["a", "b"]) == [1, 3]
        assert find_term_positions([], ["a"]) == []

    def test_find_all_positions(self):
        result = find_all_positions("Acme beats BadCo", ["Acme", "BadCo", "Other"])
        assert result == {"Acme": [1], "BadCo": [3], "Other": []}
