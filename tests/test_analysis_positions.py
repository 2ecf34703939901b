"""Tests for position extraction."""

from visibility_scoring.analysis.positions import compute_positions
from visibility_scoring.analysis.types import CompetitorContext


def _badco(*products):
    return CompetitorContext(name="BadCo", products=list(products))


class TestComputePositions:
    def test_brand_and_competitor_with_products(self):
        payload = compute_positions(
            "Acme Pro is great, unlike BadCo Lite.",
            "Acme",
            ["Acme Pro"],
            [_badco("BadCo Lite")],
        )
        brand = payload.brand
        rival = payload.competitors[0]

        assert payload.total_words == 7
        assert brand.positions == [1, 2]
        assert rival.positions == [6, 7]
        assert brand.mention_count == rival.mention_count == 1
        assert brand.product_mention_count == 1
        assert rival.product_mention_count == 1
        assert brand.first_position == 1
        assert rival.first_position == 6
        assert brand.visibility_index == 0.66
        assert rival.visibility_index == 0.57
        assert brand.visibility_index > rival.visibility_index
        assert brand.share_of_answers == 50.0
        assert rival.share_of_answers == 50.0

    def test_no_mentions(self):
        payload = compute_positions("Nothing relevant here", "Acme", ["Acme Pro"], [_badco()])
        assert payload.brand.positions == []
        assert payload.brand.mention_count == 0
        assert payload.brand.has_presence is False
        assert payload.brand.first_position is None
        assert payload.brand.visibility_index == 0.0
        assert payload.brand.share_of_answers is None
        assert payload.competitors[0].share_of_answers is None

    def test_empty_answer(self):
        payload = compute_positions("", "Acme", [], [_badco()])
        assert payload.total_words == 0
        assert payload.brand.visibility_index is None
        assert payload.competitors[0].visibility_index is None

    def test_share_against_everyone_else(self):
        payload = compute_positions(
            "Acme and BadCo and Rival and BadCo",
            "Acme",
            [],
            [_badco(), CompetitorContext(name="Rival")],
        )
        badco, rival = payload.competitors
        assert payload.brand.share_of_answers == 25.0
        assert badco.mention_count == 2
        assert badco.share_of_answers == 50.0
        assert rival.share_of_answers == 25.0

    def test_repeated_mentions_counted(self):
        payload = compute_positions("Acme, then Acme again, and Acme", "Acme", [], [])
        assert payload.brand.positions == [1, 3, 6]
        assert payload.brand.mention_count == 3
        assert payload.brand.has_presence is True

    def test_product_equal_to_name_is_not_a_product(self):
        payload = compute_positions("Acme rocks", "Acme", ["acme"], [])
        assert payload.brand.mention_count == 1
        assert payload.brand.product_mention_count == 0

    def test_overlapping_names_are_not_suppressed(self):
        # A competitor product containing the brand name counts for both entities
        payload = compute_positions("Acme Connector by BadCo", "Acme", [], [_badco("Acme Connector")])
        assert payload.brand.positions == [1]
        rival = payload.competitors[0]
        assert rival.positions == [1, 2, 4]
        assert rival.mention_count == 2
        assert rival.product_mention_count == 1

    def test_deterministic(self):
        args = ("Acme Pro and BadCo, Acme again", "Acme", ["Acme Pro"], [_badco("BadCo Lite")])
        assert compute_positions(*args) == compute_positions(*args)
