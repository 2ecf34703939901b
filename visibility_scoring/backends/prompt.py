"""Prompt for the consolidated analysis call (products + sentiment + citations)."""

from __future__ import annotations

import json

from visibility_scoring.analysis.types import AnalysisRequest, CitationCategory

SYSTEM_PROMPT = (
    "You analyze answers produced by AI assistants for a brand-intelligence product. "
    "Respond with a single JSON object and nothing else."
)

_CATEGORIES = ", ".join(c.value for c in CitationCategory)


def build_analysis_prompt(request: AnalysisRequest, max_chars: int = 50_000) -> tuple[str, str]:
    """Return (system, user) messages for one answer. The answer is truncated to ``max_chars``."""
    text = request.raw_text
    if len(text) > max_chars:
        text = text[:max_chars] + "\n[... truncated]"

    competitors = [c.name for c in request.competitors]
    schema = {
        "products": {"brand": ["product name"], "competitors": {name: ["product name"] for name in competitors}},
        "citations": {url: {"category": "one of: " + _CATEGORIES, "pageName": "short page title"}
                      for url in request.citation_urls},
        "sentiment": {
            "brand": {"score": "1-100"},
            "competitors": {name: {"score": "1-100"} for name in competitors},
        },
        "keywords": ["key phrase"],
        "quotes": ["verbatim sentence mentioning the brand"],
        "narrative": "one-sentence summary of how the brand is portrayed",
    }

    parts = [
        f"Brand: {request.brand_name}",
        f"Known brand products: {', '.join(request.brand_products) or 'none'}",
        f"Competitors: {', '.join(competitors) or 'none'}",
        "",
        "Tasks:",
        "1. List products of the brand and of each competitor that the answer mentions verbatim.",
        "2. Score sentiment toward the brand and each competitor from 1 (very negative) to 100 "
        "(very positive); 60 means neutral.",
    ]
    if request.citation_urls:
        parts.append(f"3. Categorize every cited URL as one of: {_CATEGORIES}.")
    parts += [
        "",
        "Return JSON shaped exactly like:",
        json.dumps(schema, ensure_ascii=False, indent=2),
        "",
        "Answer to analyze:",
        text,
    ]
    return SYSTEM_PROMPT, "\n".join(parts)
