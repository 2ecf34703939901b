"""Exact-token term matcher.

Text is split into runs of Unicode letters, digits and apostrophes. Every token
is lower-cased, stripped of surrounding apostrophes and of a trailing
possessive ``'s``. A multi-word term matches at word position *i* (1-indexed)
when its normalized tokens equal the text tokens starting at *i*.

No stemming, no fuzzy matching and no overlap suppression: "Acme" and
"Acme Pro" both match at the start of "Acme Pro is great".
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_TOKEN_RE = re.compile(r"(?:[^\W_]|['’])+")
_APOSTROPHES = "'’"
_POSSESSIVE_SUFFIXES = ("'s", "’s")


def normalize_word(word: str) -> str:
    """Lower-case, strip surrounding apostrophes and a trailing possessive."""
    normalized = word.lower().strip(_APOSTROPHES)
    for suffix in _POSSESSIVE_SUFFIXES:
        if normalized.endswith(suffix):
            normalized = normalized[: -len(suffix)]
            break
    return normalized


def tokenize(text: str) -> list[str]:
    """Split text into normalized word tokens. Apostrophe-only runs are dropped."""
    if not text:
        return []
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        token = normalize_word(match.group(0))
        if token:
            tokens.append(token)
    return tokens


def normalize_term(term: str) -> list[str]:
    """Normalize a (possibly multi-word) term exactly like answer text."""
    return tokenize(term)


def find_term_positions(tokens: list[str], term_tokens: list[str]) -> list[int]:
    """1-indexed start positions where ``term_tokens`` occur in ``tokens``."""
    size = len(term_tokens)
    if size == 0 or size > len(tokens):
        return []
    first = term_tokens[0]
    positions = []
    for i in range(len(tokens) - size + 1):
        if tokens[i] == first and tokens[i : i + size] == term_tokens:
            positions.append(i + 1)
    return positions


def find_positions(text: str, term: str) -> list[int]:
    """Sorted, duplicate-free 1-indexed positions where ``term`` starts in ``text``."""
    return find_term_positions(tokenize(text), normalize_term(term))


def find_all_positions(text: str, terms: Iterable[str]) -> dict[str, list[int]]:
    """Positions for several terms, tokenizing the text only once."""
    tokens = tokenize(text)
    return {term: find_term_positions(tokens, normalize_term(term)) for term in terms}
