"""Ingress validation for backend analysis payloads.

Every backend returns (somewhere inside its own envelope) a JSON object:

    {
      "products":  {"brand": [...], "competitors": {"BadCo": [...]}},
      "citations": {"https://...": {"category": "Editorial", "pageName": "..."}},
      "sentiment": {"brand": {"score": 72}, "competitors": {"BadCo": {"score": 40}}},
      "keywords": [...], "quotes": [...], "narrative": "..."
    }

The payload is validated and coerced here, once, before any downstream code
sees it. Missing blocks fall back to empty defaults; malformed entries are
dropped rather than trusted.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from visibility_scoring.analysis.scoring import clamp_sentiment_score, normalize_sentiment_score
from visibility_scoring.analysis.types import AnalysisResult, CitationCategory, CitationInfo, SentimentScore
from visibility_scoring.core.errors import BackendResponseError

logger = logging.getLogger(__name__)

MAX_BRAND_PRODUCTS = 12
MAX_COMPETITOR_PRODUCTS = 8
MAX_PRODUCT_NAME_LENGTH = 100

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")

_CATEGORY_LOOKUP = {c.value.lower(): c for c in CitationCategory}


def _clean_products(value: Any, limit: int) -> list[str]:
    """Keep non-empty strings, trimmed, de-duplicated case-insensitively, capped at ``limit``."""
    if not isinstance(value, list):
        return []
    seen: set[str] = set()
    cleaned = []
    for item in value:
        if not isinstance(item, str):
            continue
        name = _WHITESPACE_RE.sub(" ", item).strip().strip("\"'")
        if not name or len(name) > MAX_PRODUCT_NAME_LENGTH or name.lower() in seen:
            continue
        seen.add(name.lower())
        cleaned.append(name)
        if len(cleaned) >= limit:
            break
    return cleaned


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class RawSentiment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: int

    @field_validator("score", mode="before")
    @classmethod
    def _normalize(cls, value: Any, info: ValidationInfo) -> int:
        # Stored payloads already hold 1-100 scores; only backend output may be a polarity
        if info.context and info.context.get("stored"):
            return clamp_sentiment_score(value)
        return normalize_sentiment_score(value)


def _as_sentiment_dict(value: Any) -> dict | None:
    # A bare number is accepted as {"score": number}
    if isinstance(value, dict):
        return {"score": value.get("score")}
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return {"score": value}
    return None


class RawProducts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brand: list[str] = Field(default_factory=list)
    competitors: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("brand", mode="before")
    @classmethod
    def _brand(cls, value: Any) -> list[str]:
        return _clean_products(value, MAX_BRAND_PRODUCTS)

    @field_validator("competitors", mode="before")
    @classmethod
    def _competitors(cls, value: Any) -> dict[str, list[str]]:
        if not isinstance(value, dict):
            return {}
        return {
            str(name).strip(): _clean_products(products, MAX_COMPETITOR_PRODUCTS)
            for name, products in value.items()
            if str(name).strip()
        }


class RawSentimentBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brand: RawSentiment | None = None
    competitors: dict[str, RawSentiment] = Field(default_factory=dict)

    @field_validator("brand", mode="before")
    @classmethod
    def _brand(cls, value: Any) -> dict | None:
        return _as_sentiment_dict(value)

    @field_validator("competitors", mode="before")
    @classmethod
    def _competitors(cls, value: Any) -> dict[str, dict]:
        if not isinstance(value, dict):
            return {}
        result = {}
        for name, entry in value.items():
            coerced = _as_sentiment_dict(entry)
            if coerced is not None and str(name).strip():
                result[str(name).strip()] = coerced
        return result


class RawCitation(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: CitationCategory
    page_name: str | None = Field(default=None, validation_alias=AliasChoices("pageName", "page_name"))

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> CitationCategory | None:
        if isinstance(value, str):
            return _CATEGORY_LOOKUP.get(value.strip().lower())
        return None

    @field_validator("page_name", mode="before")
    @classmethod
    def _page_name(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()[:500]
        return None


class AnalysisPayload(BaseModel):
    """Top-level analysis object shared by every backend."""

    model_config = ConfigDict(extra="ignore")

    products: RawProducts = Field(default_factory=RawProducts)
    citations: dict[str, RawCitation] = Field(default_factory=dict)
    sentiment: RawSentimentBlock | None = None
    keywords: list[str] = Field(default_factory=list)
    quotes: list[str] = Field(default_factory=list)
    narrative: str | None = None

    @field_validator("products", mode="before")
    @classmethod
    def _products(cls, value: Any) -> dict:
        return value if isinstance(value, dict) else {}

    @field_validator("citations", mode="before")
    @classmethod
    def _citations(cls, value: Any) -> dict[str, RawCitation]:
        if not isinstance(value, dict):
            return {}
        result = {}
        for url, entry in value.items():
            if isinstance(entry, str):
                entry = {"category": entry}
            if not isinstance(url, str) or not url.strip() or not isinstance(entry, dict):
                continue
            try:
                raw = RawCitation.model_validate(entry)
            except ValidationError:
                logger.debug("Dropping citation with unknown category: %s -> %r", url, entry)
                continue
            result[url.strip()] = raw
        return result

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> dict | None:
        return value if isinstance(value, dict) else None

    @field_validator("keywords", "quotes", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]

    @field_validator("narrative", mode="before")
    @classmethod
    def _narrative(cls, value: Any) -> str | None:
        return value.strip() if isinstance(value, str) and value.strip() else None

    def to_result(self, backend: str) -> AnalysisResult:
        sentiment = self.sentiment or RawSentimentBlock()
        return AnalysisResult(
            brand_products=tuple(self.products.brand),
            competitor_products={name: tuple(p) for name, p in self.products.competitors.items()},
            citations={
                url: CitationInfo(category=c.category, page_name=c.page_name) for url, c in self.citations.items()
            },
            brand_sentiment=SentimentScore(sentiment.brand.score) if sentiment.brand else None,
            competitor_sentiment={name: SentimentScore(s.score) for name, s in sentiment.competitors.items()},
            keywords=tuple(self.keywords),
            quotes=tuple(self.quotes),
            narrative=self.narrative,
            backend=backend,
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_json_object(content: str) -> dict:
    """Pull the JSON object out of a model reply (tolerates fences and chatter)."""
    if not content or not content.strip():
        raise BackendResponseError("Empty response content")

    stripped = content.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        stripped = match.group(1).strip()

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        found = _OBJECT_RE.search(stripped)
        if not found:
            raise BackendResponseError("No JSON object found in response") from None
        try:
            data = json.loads(found.group(0))
        except json.JSONDecodeError as exc:
            raise BackendResponseError(f"Invalid JSON in response: {exc}") from exc

    if not isinstance(data, dict):
        raise BackendResponseError("Top-level JSON must be an object")
    return data


def parse_analysis_payload(content: str, backend: str = "") -> AnalysisResult:
    """Validate a backend reply and convert it into an AnalysisResult."""
    data = extract_json_object(content)
    try:
        payload = AnalysisPayload.model_validate(data)
    except ValidationError as exc:
        raise BackendResponseError(f"Analysis payload failed validation: {exc.error_count()} errors") from exc
    return payload.to_result(backend)
