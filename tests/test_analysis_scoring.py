"""Tests for the visibility scorer."""

import math

import pytest

from visibility_scoring.analysis.scoring import (
    clamp_sentiment_score,
    normalize_sentiment_score,
    sentiment_label,
    share_of_answers,
    visibility_index,
)
from visibility_scoring.analysis.types import SentimentLabel, SentimentScore


class TestVisibilityIndex:
    """VI = 0.6 / log10(first + 9) + 0.4 × occurrences / total_words."""

    def test_absent_entity(self):
        for total in (1, 7, 1000):
            assert visibility_index(0, [], total) == 0.0

    def test_empty_answer(self):
        assert visibility_index(3, [1, 2, 3], 0) is None
        assert visibility_index(0, [], 0) is None

    def test_first_word(self):
        # 0.6 × 1/log10(10) + 0.4 × 1/7
        assert visibility_index(1, [1, 2], 7) == 0.66

    def test_later_position(self):
        expected = round(0.6 / math.log10(12) + 0.4 * 2 / 100, 2)
        assert visibility_index(2, [3, 10], 100) == expected

    def test_earlier_mention_scores_higher(self):
        assert visibility_index(1, [1], 50) > visibility_index(1, [20], 50)

    def test_denser_mentions_score_higher(self):
        assert visibility_index(5, [4], 20) > visibility_index(1, [4], 20)

    def test_uses_smallest_position(self):
        assert visibility_index(2, [9, 2], 30) == visibility_index(2, [2, 9], 30)


class TestShareOfAnswers:
    def test_nobody_mentioned(self):
        assert share_of_answers(0, 0) is None

    def test_only_primary(self):
        assert share_of_answers(3, 0) == 100.0

    def test_only_others(self):
        assert share_of_answers(0, 4) == 0.0

    def test_split(self):
        assert share_of_answers(1, 1) == 50.0
        assert share_of_answers(1, 2) == 33.33

    def test_halves_round_up(self):
        # 100 × 1/32 = 3.125
        assert share_of_answers(1, 31) == 3.13
        assert share_of_answers(3, 5) == 37.5


class TestSentimentLabel:
    @pytest.mark.parametrize(
        "score,label",
        [
            (1, SentimentLabel.NEGATIVE),
            (54, SentimentLabel.NEGATIVE),
            (55, SentimentLabel.NEUTRAL),
            (60, SentimentLabel.NEUTRAL),
            (65, SentimentLabel.NEUTRAL),
            (66, SentimentLabel.POSITIVE),
            (100, SentimentLabel.POSITIVE),
        ],
    )
    def test_thresholds(self, score, label):
        assert sentiment_label(score) == label

    def test_score_object_derives_label(self):
        assert SentimentScore(80).label == SentimentLabel.POSITIVE
        assert SentimentScore(30).label == SentimentLabel.NEGATIVE


class TestNormalizeSentimentScore:
    def test_in_range_integers_pass_through(self):
        assert normalize_sentiment_score(72) == 72
        assert normalize_sentiment_score(100) == 100

    def test_rounds_half_up(self):
        assert normalize_sentiment_score(72.5) == 73
        assert normalize_sentiment_score(64.4) == 64

    def test_clamped(self):
        assert normalize_sentiment_score(150) == 100
        assert normalize_sentiment_score(-5) == 1
        assert normalize_sentiment_score(0) == 1

    def test_polarity_rescaled(self):
        assert normalize_sentiment_score(1) == 100
        assert normalize_sentiment_score(-1) == 1
        assert normalize_sentiment_score(0.5) == 75

    def test_invalid_defaults_to_neutral(self):
        for value in (None, "great", True, float("nan"), [70]):
            assert normalize_sentiment_score(value) == 60


class TestClampSentimentScore:
    def test_no_polarity_rescale(self):
        assert clamp_sentiment_score(1) == 1
        assert clamp_sentiment_score(-1) == 1
        assert clamp_sentiment_score(0.5) == 1
        assert clamp_sentiment_score(100) == 100

    def test_rounded_and_clamped(self):
        assert clamp_sentiment_score(54.5) == 55
        assert clamp_sentiment_score(250) == 100
        assert clamp_sentiment_score(None) == 60
