"""The three per-item phases of the scoring pipeline.

  Phase 1 (analyze):   analysis cache, else backend call; citations written
  Phase 2 (positions): tokenizer + visibility scorer → MetricFact and metric rows
  Phase 3 (sentiment): brand/competitor sentiment rows keyed to the MetricFact

Phases raise on failure; the processor records the failure on the item.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace

from visibility_scoring.analysis.cache import AnalysisCache, CitationCategoryCache
from visibility_scoring.analysis.positions import compute_positions
from visibility_scoring.analysis.types import (
    AnalysisRequest,
    AnalysisResult,
    BacklogRecord,
    BrandRecord,
    CompetitorContext,
    CompetitorRecord,
    ProcessingSummary,
)
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.core.errors import PermanentItemError, is_backend_semantic, is_transient
from visibility_scoring.core.retry import calculate_backoff
from visibility_scoring.store.base import ResultStore

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything shared by the items of one processing run."""

    brand: BrandRecord | None
    competitors: list[CompetitorRecord]
    backend: AnalysisBackend
    analysis_cache: AnalysisCache
    citation_cache: CitationCategoryCache
    summary: ProcessingSummary = field(default_factory=ProcessingSummary)

    def __post_init__(self):
        self._by_name = {c.name.lower(): c for c in self.competitors}

    def competitor(self, name: str) -> CompetitorRecord | None:
        return self._by_name.get(name.strip().lower())


def _lookup(mapping: dict, name: str):
    if name in mapping:
        return mapping[name]
    lowered = name.lower()
    for key, value in mapping.items():
        if key.lower() == lowered:
            return value
    return None


class ItemPipeline:
    def __init__(
        self,
        store: ResultStore,
        *,
        semantic_retries: int = 2,
        backend_attempts: int = 3,
        backend_retry_delay: float = 2.0,
        max_answer_chars: int = 50_000,
    ):
        self._store = store
        self.semantic_retries = semantic_retries
        self.backend_attempts = backend_attempts
        self.backend_retry_delay = backend_retry_delay
        self.max_answer_chars = max_answer_chars

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _competitor_names(item: BacklogRecord, ctx: RunContext) -> list[str]:
        """Competitors declared on the item, else every competitor of the brand."""
        names = item.competitors or [c.name for c in ctx.competitors]
        brand_name = ctx.brand.name.lower() if ctx.brand else ""
        return list(dict.fromkeys(n for n in names if n and n.lower() != brand_name))

    async def _call_backend(self, backend: AnalysisBackend, request: AnalysisRequest) -> AnalysisResult:
        """Backend call with semantic retries and transient backoff."""
        semantic_failures = 0
        transient_failures = 0
        while True:
            try:
                return await backend.analyze(request)
            except Exception as e:
                if is_backend_semantic(e) and semantic_failures < self.semantic_retries:
                    semantic_failures += 1
                    logger.warning(
                        "Backend %s returned unusable output (retry %d): %s",
                        backend.name,
                        semantic_failures,
                        e,
                        extra={"backend": backend.name},
                    )
                    continue
                if is_transient(e) and transient_failures + 1 < self.backend_attempts:
                    delay = calculate_backoff(transient_failures, self.backend_retry_delay)
                    transient_failures += 1
                    logger.warning(
                        "Backend %s transient failure, retrying in %.1fs: %s",
                        backend.name,
                        delay,
                        e,
                        extra={"backend": backend.name},
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

    # ------------------------------------------------------------------
    # Phase 1: analyze
    # ------------------------------------------------------------------

    async def analyze(self, item: BacklogRecord, ctx: RunContext) -> AnalysisResult:
        if ctx.brand is None:
            raise PermanentItemError(f"Brand {item.brand_id} not found")
        if not item.raw_answer or not item.raw_answer.strip():
            raise PermanentItemError("Backlog item has no raw answer")

        urls = item.citation_urls
        cached = await ctx.analysis_cache.get(item.id)
        if cached is not None:
            ctx.summary.analysis_cache_hits += 1
            result = cached
            if urls and not cached.citations:
                # Persistent entries carry no citations; rebuild them from the domain cache
                known = await ctx.citation_cache.lookup(urls)
                result = replace(cached, citations=known)
                ctx.summary.total_citations += len(urls)
                ctx.summary.cached_citations += len(known)
        else:
            known = await ctx.citation_cache.lookup(urls)
            uncached = [u for u in urls if u not in known]
            ctx.summary.total_citations += len(urls)
            ctx.summary.cached_citations += len(known)

            competitors = []
            for name in self._competitor_names(item, ctx):
                record = ctx.competitor(name)
                competitors.append(CompetitorContext(name=name, products=record.products if record else []))

            request = AnalysisRequest(
                brand_name=ctx.brand.name,
                brand_products=ctx.brand.products,
                competitors=competitors,
                raw_text=item.raw_answer[: self.max_answer_chars],
                citation_urls=uncached,
            )
            fresh = await self._call_backend(ctx.backend, request)

            wanted = set(uncached)
            categorized = {url: info for url, info in fresh.citations.items() if url in wanted}
            await ctx.citation_cache.remember(categorized)
            result = replace(fresh, citations={**known, **categorized})
            await ctx.analysis_cache.put(item.id, result)

        if result.citations:
            ctx.summary.citations_written += await self._store.save_citations(item.id, result.citations)
        return result

    # ------------------------------------------------------------------
    # Phase 2: positions
    # ------------------------------------------------------------------

    async def extract_positions(self, item: BacklogRecord, ctx: RunContext, result: AnalysisResult) -> int:
        """Compute and persist brand/competitor metrics. Returns the MetricFact id."""
        if ctx.brand is None:
            raise PermanentItemError(f"Brand {item.brand_id} not found")

        competitors = []
        competitor_ids = {}
        for name in self._competitor_names(item, ctx):
            record = ctx.competitor(name)
            products = _lookup(result.competitor_products, name) or (record.products if record else [])
            competitors.append(CompetitorContext(name=name, products=list(products)))
            if record is not None:
                competitor_ids[name] = record.id

        brand_products = list(result.brand_products) or ctx.brand.products
        payload = compute_positions(item.raw_answer or "", ctx.brand.name, brand_products, competitors)
        return await self._store.save_positions(item, payload, competitor_ids)

    # ------------------------------------------------------------------
    # Phase 3: sentiment
    # ------------------------------------------------------------------

    async def store_sentiment(
        self,
        item: BacklogRecord,
        ctx: RunContext,
        result: AnalysisResult,
        metric_fact_id: int | None,
    ) -> int | None:
        """Write sentiment rows. Returns rows written, or None when there was nothing to write."""
        if not result.has_sentiment:
            return None

        if metric_fact_id is None:
            metric_fact_id = await self._store.get_metric_fact_id(item.id)
        if metric_fact_id is None:
            raise PermanentItemError(f"No MetricFact for item {item.id}; cannot store sentiment")

        competitor_scores = {}
        for name, score in result.competitor_sentiment.items():
            record = ctx.competitor(name)
            if record is None:
                logger.debug("Item %s: sentiment for unknown competitor %r skipped", item.id, name)
                continue
            competitor_scores[record.id] = score

        return await self._store.save_sentiment(metric_fact_id, result.brand_sentiment, competitor_scores)
