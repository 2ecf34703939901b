"""Visibility scoring.

Computes:
  - Visibility index (prominence + density, weighted 60/40):
      VI = 0.6 × 1 / log10(first_position + 9) + 0.4 × occurrences / total_words

  - Share of answers:
      SoA = 100 × primary / (primary + secondary)
      For a competitor, secondary = brand mentions + all other competitors' mentions.

  - Sentiment label from a 1–100 score:
      < 55 → NEGATIVE, 55–65 → NEUTRAL, > 65 → POSITIVE
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from visibility_scoring.analysis.types import NEGATIVE_BELOW, POSITIVE_ABOVE, sentiment_label

__all__ = [
    "NEGATIVE_BELOW",
    "POSITIVE_ABOVE",
    "clamp_sentiment_score",
    "normalize_sentiment_score",
    "sentiment_label",
    "share_of_answers",
    "visibility_index",
]

PROMINENCE_WEIGHT = 0.6
DENSITY_WEIGHT = 0.4

DEFAULT_SENTIMENT_SCORE = 60
MIN_SENTIMENT_SCORE = 1
MAX_SENTIMENT_SCORE = 100


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _round2(value: float) -> float:
    """Round to 2 decimals, halves away from zero for the non-negative values used here."""
    return math.floor(value * 100 + 0.5) / 100


def visibility_index(occurrences: int, positions: Sequence[int], total_words: int) -> float | None:
    """Prominence-weighted visibility of one entity in one answer.

    Returns None for an empty answer and 0.0 when the entity is absent.
    """
    if total_words <= 0:
        return None
    if occurrences <= 0 or not positions:
        return 0.0

    first_position = min(positions)
    prominence = 1 / math.log10(first_position + 9)
    density = occurrences / total_words
    return _round2(PROMINENCE_WEIGHT * prominence + DENSITY_WEIGHT * density)


def share_of_answers(primary: int, secondary: int) -> float | None:
    """Percentage of all entity mentions attributable to ``primary``; None if nobody is mentioned."""
    total = primary + secondary
    if total <= 0:
        return None
    return _round2(100 * primary / total)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def clamp_sentiment_score(value: object) -> int:
    """Round and clamp an already 1–100 score. Missing or non-numeric → neutral 60."""
    if not _is_number(value):
        return DEFAULT_SENTIMENT_SCORE
    return max(MIN_SENTIMENT_SCORE, min(MAX_SENTIMENT_SCORE, _round_half_up(value)))


def normalize_sentiment_score(value: object) -> int:
    """Coerce a backend-reported sentiment score into the 1–100 range.

    Non-zero values within [-1, 1] are treated as a polarity and rescaled;
    anything else is rounded and clamped. Missing or non-numeric → neutral 60.
    """
    if _is_number(value) and -1 <= value <= 1 and value != 0:
        return _round_half_up(((value + 1) / 2) * 99) + 1
    return clamp_sentiment_score(value)
