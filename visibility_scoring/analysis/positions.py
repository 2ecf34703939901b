"""Position extraction: brand and competitor mention metrics for one answer.

An entity is matched through its name plus its product names. Its positions
are the word indices covered by any of those matches; its mention count is the
number of distinct positions at which a match starts. Products are also
counted on their own (product_mention_count).
"""

from __future__ import annotations

from collections.abc import Sequence

from visibility_scoring.analysis.scoring import share_of_answers, visibility_index
from visibility_scoring.analysis.tokenizer import find_term_positions, normalize_term, tokenize
from visibility_scoring.analysis.types import CompetitorContext, EntityPositions, PositionPayload


def _unique_terms(terms: Sequence[str]) -> list[list[str]]:
    seen: set[tuple[str, ...]] = set()
    result = []
    for term in terms:
        normalized = normalize_term(term)
        key = tuple(normalized)
        if normalized and key not in seen:
            seen.add(key)
            result.append(normalized)
    return result


def _match_entity(tokens: list[str], name: str, products: Sequence[str]) -> EntityPositions:
    covered: set[int] = set()
    starts: set[int] = set()
    product_starts: set[int] = set()

    name_terms = _unique_terms([name])
    product_terms = [t for t in _unique_terms(products) if t not in name_terms]

    for term_tokens in name_terms + product_terms:
        is_product = term_tokens in product_terms
        for start in find_term_positions(tokens, term_tokens):
            starts.add(start)
            covered.update(range(start, start + len(term_tokens)))
            if is_product:
                product_starts.add(start)

    return EntityPositions(
        name=name,
        positions=sorted(covered),
        mention_count=len(starts),
        product_mention_count=len(product_starts),
    )


def compute_positions(
    text: str,
    brand_name: str,
    brand_products: Sequence[str],
    competitors: Sequence[CompetitorContext],
) -> PositionPayload:
    """Compute visibility index and share of answers for the brand and every competitor.

    Absence of any mention is a valid outcome: metrics are still returned with
    zero counts.
    """
    tokens = tokenize(text)
    total_words = len(tokens)

    brand = _match_entity(tokens, brand_name, brand_products)
    rivals = [_match_entity(tokens, c.name, c.products) for c in competitors]

    competitor_total = sum(r.mention_count for r in rivals)
    brand.visibility_index = visibility_index(brand.mention_count, brand.positions, total_words)
    brand.share_of_answers = share_of_answers(brand.mention_count, competitor_total)

    for rival in rivals:
        others = brand.mention_count + competitor_total - rival.mention_count
        rival.visibility_index = visibility_index(rival.mention_count, rival.positions, total_words)
        rival.share_of_answers = share_of_answers(rival.mention_count, others)

    return PositionPayload(brand=brand, competitors=rivals, total_words=total_words)
