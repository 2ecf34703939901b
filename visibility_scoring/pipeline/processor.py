"""Processing strategy selector: batch vs serialized execution of the three phases.

Batch mode (backend safe under concurrency):
  claim all candidates → Phase 1 for all (bounded concurrency)
  → Phase 2 for all analyzed → Phase 3 for all positioned → mark each item

Serialized mode (backend that must not be called concurrently):
  claim one → Phase 1 → Phase 2 → Phase 3 → mark → next
  After N consecutive backend failures the backend is disabled for the brand
  and later runs use the batch-safe backend.

Per-item failures are recorded on the item and in the run summary; only
configuration faults escape process_backlog().
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from visibility_scoring.analysis.cache import AnalysisCache, CitationCategoryCache
from visibility_scoring.analysis.types import (
    CLAIMABLE_STATUSES,
    AnalysisResult,
    BacklogRecord,
    ProcessingMode,
    ProcessingSummary,
)
from visibility_scoring.backends.registry import BackendSet
from visibility_scoring.core.config import Settings, settings as default_settings
from visibility_scoring.core.errors import PermanentItemError, ScoringError
from visibility_scoring.core.metrics import BREAKER_TRIPS, ITEMS_SCORED, PHASE_FAILURES
from visibility_scoring.pipeline.breaker import SerialFailureBreaker
from visibility_scoring.pipeline.claims import JobClaimCoordinator
from visibility_scoring.pipeline.phases import ItemPipeline, RunContext
from visibility_scoring.store.base import ResultStore

logger = logging.getLogger(__name__)

PHASE_ANALYSIS = "analysis"
PHASE_POSITIONS = "positions"
PHASE_SENTIMENT = "sentiment"


@dataclass
class PipelineConfig:
    default_limit: int = 50
    batch_concurrency: int = 5
    max_failed_claims: int = 10
    serial_failure_threshold: int = 5
    backend_semantic_retries: int = 2
    backend_attempts: int = 3
    backend_retry_delay: float = 2.0
    max_answer_chars: int = 50_000
    stuck_timeout: timedelta = timedelta(hours=2)
    stuck_error: timedelta = timedelta(hours=8)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PipelineConfig":
        config = config or default_settings
        return cls(
            default_limit=config.scoring_default_limit,
            batch_concurrency=config.scoring_batch_concurrency,
            max_failed_claims=config.scoring_max_failed_claims,
            serial_failure_threshold=config.scoring_serial_failure_threshold,
            backend_semantic_retries=config.scoring_backend_semantic_retries,
            backend_attempts=config.scoring_backend_attempts,
            backend_retry_delay=config.scoring_backend_retry_delay,
            max_answer_chars=config.scoring_max_answer_chars,
            stuck_timeout=timedelta(hours=config.stuck_timeout_hours),
            stuck_error=timedelta(hours=config.stuck_error_hours),
        )


@dataclass
class _ItemState:
    """Progress of one claimed item through the phases."""

    item: BacklogRecord
    result: AnalysisResult | None = None
    metric_fact_id: int | None = None
    failed_phase: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.failed_phase is None

    @property
    def message(self) -> str:
        return f"{self.failed_phase} failed: {self.error}"

    @property
    def is_backend_failure(self) -> bool:
        return self.failed_phase == PHASE_ANALYSIS and not isinstance(self.error, PermanentItemError)


class BacklogProcessor:
    """Entry point of the scoring pipeline: ``await processor.process_backlog(brand_id, customer_id)``."""

    def __init__(
        self,
        store: ResultStore,
        backends: BackendSet,
        *,
        config: PipelineConfig | None = None,
        coordinator: JobClaimCoordinator | None = None,
        cache_factory: Callable[[ResultStore], AnalysisCache] | None = None,
    ):
        self.store = store
        self.backends = backends
        self.config = config or PipelineConfig.from_settings()
        self.coordinator = coordinator or JobClaimCoordinator(
            store,
            stuck_timeout=self.config.stuck_timeout,
            stuck_error=self.config.stuck_error,
        )
        self._cache_factory = cache_factory or AnalysisCache
        self.pipeline = ItemPipeline(
            store,
            semantic_retries=self.config.backend_semantic_retries,
            backend_attempts=self.config.backend_attempts,
            backend_retry_delay=self.config.backend_retry_delay,
            max_answer_chars=self.config.max_answer_chars,
        )

    async def process_backlog(
        self,
        brand_id: uuid.UUID,
        customer_id: uuid.UUID,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> ProcessingSummary:
        """Score up to ``limit`` claimable backlog items of one brand.

        Raises ConfigurationError when no backend can be used; every per-item
        failure is reported in the returned summary instead.
        """
        limit = limit or self.config.default_limit

        try:
            await self.coordinator.reap_stuck_items(brand_id)
        except Exception as e:
            logger.warning("Stuck-item sweep failed for brand %s: %s", brand_id, e)

        brand = await self.store.get_brand(brand_id)
        if brand is None:
            logger.warning("Brand %s not found; claimed items will be failed", brand_id)
        backend = self.backends.select(brand)
        competitors = await self.store.get_competitors(brand_id) if brand is not None else []

        ctx = RunContext(
            brand=brand,
            competitors=competitors,
            backend=backend,
            analysis_cache=self._cache_factory(self.store),
            citation_cache=CitationCategoryCache(self.store),
        )
        summary = ctx.summary
        summary.mode = ProcessingMode.BATCH if backend.concurrency_safe else ProcessingMode.SERIAL

        logger.info(
            "Scoring backlog for brand %s (mode=%s, backend=%s, limit=%d)",
            brand_id,
            summary.mode.value,
            backend.name,
            limit,
        )
        try:
            if summary.mode == ProcessingMode.BATCH:
                await self._run_batch(ctx, brand_id, customer_id, since, limit)
            else:
                await self._run_serial(ctx, brand_id, customer_id, since, limit)
        finally:
            ctx.analysis_cache.clear()

        logger.info(
            "Scoring complete for brand %s: processed=%d positions=%d sentiments=%d citations=%d "
            "errors=%d cache_hits=%d cached_citations=%d/%d",
            brand_id,
            summary.processed,
            summary.positions_written,
            summary.sentiments_written,
            summary.citations_written,
            len(summary.errors),
            summary.analysis_cache_hits,
            summary.cached_citations,
            summary.total_citations,
        )
        return summary

    # ------------------------------------------------------------------
    # Phase runners
    # ------------------------------------------------------------------

    async def _run_phase(self, state: _ItemState, phase: str, operation) -> tuple[bool, object]:
        """Run one phase for one item; a failure is recorded on the state, never raised."""
        try:
            return True, await operation()
        except Exception as e:
            state.failed_phase = phase
            state.error = e
            PHASE_FAILURES.labels(phase=phase).inc()
            logger.warning(
                "Item %s: %s failed: %s",
                state.item.id,
                phase,
                e,
                exc_info=not isinstance(e, ScoringError),
                extra={"item_id": state.item.id, "brand_id": state.item.brand_id},
            )
            return False, None

    async def _phase_analysis(self, state: _ItemState, ctx: RunContext) -> bool:
        ok, result = await self._run_phase(state, PHASE_ANALYSIS, lambda: self.pipeline.analyze(state.item, ctx))
        if ok:
            state.result = result
        return ok

    async def _phase_positions(self, state: _ItemState, ctx: RunContext) -> bool:
        ok, fact_id = await self._run_phase(
            state, PHASE_POSITIONS, lambda: self.pipeline.extract_positions(state.item, ctx, state.result)
        )
        if ok:
            state.metric_fact_id = fact_id
            ctx.summary.positions_written += 1
        return ok

    async def _phase_sentiment(self, state: _ItemState, ctx: RunContext) -> bool:
        ok, rows = await self._run_phase(
            state,
            PHASE_SENTIMENT,
            lambda: self.pipeline.store_sentiment(state.item, ctx, state.result, state.metric_fact_id),
        )
        if ok and rows:
            ctx.summary.sentiments_written += 1
        return ok

    async def _finalize(self, state: _ItemState, ctx: RunContext) -> None:
        summary = ctx.summary
        try:
            if state.ok:
                if await self.coordinator.complete(state.item.id):
                    summary.processed += 1
                else:
                    summary.add_error(state.item.id, "item was no longer processing when completed")
            else:
                summary.add_error(state.item.id, state.message)
                await self.coordinator.fail(state.item.id, state.message)
        except Exception as e:
            logger.error(
                "Item %s: could not record final status: %s",
                state.item.id,
                e,
                extra={"item_id": state.item.id, "brand_id": state.item.brand_id},
            )
            if state.ok:
                summary.add_error(state.item.id, f"status update failed: {e}")
        ITEMS_SCORED.labels(mode=summary.mode.value, outcome="success" if state.ok else "failure").inc()

    # ------------------------------------------------------------------
    # Batch mode
    # ------------------------------------------------------------------

    async def _claim_all(self, ctx: RunContext, candidates: list[BacklogRecord]) -> list[_ItemState]:
        claimed = []
        lost_in_a_row = 0
        for item in candidates:
            if await self.coordinator.claim(item):
                claimed.append(_ItemState(item=item))
                lost_in_a_row = 0
                continue
            ctx.summary.claims_lost += 1
            lost_in_a_row += 1
            if lost_in_a_row >= self.config.max_failed_claims:
                logger.info("Giving up after %d consecutive lost claims", lost_in_a_row)
                break
        return claimed

    async def _run_batch(self, ctx, brand_id, customer_id, since, limit) -> None:
        candidates = await self.store.fetch_candidates(
            brand_id, customer_id, statuses=CLAIMABLE_STATUSES, since=since, limit=limit
        )
        states = await self._claim_all(ctx, candidates)
        if not states:
            logger.info("No claimable items for brand %s", brand_id)
            return

        semaphore = asyncio.Semaphore(max(1, self.config.batch_concurrency))

        async def analyze(state: _ItemState) -> None:
            async with semaphore:
                await self._phase_analysis(state, ctx)

        await asyncio.gather(*(analyze(s) for s in states))

        for state in states:
            if state.ok:
                await self._phase_positions(state, ctx)
        for state in states:
            if state.ok:
                await self._phase_sentiment(state, ctx)
        for state in states:
            await self._finalize(state, ctx)

    # ------------------------------------------------------------------
    # Serialized mode
    # ------------------------------------------------------------------

    async def _run_serial(self, ctx, brand_id, customer_id, since, limit) -> None:
        breaker = SerialFailureBreaker(self.config.serial_failure_threshold)
        attempted: set[int] = set()
        lost_in_a_row = 0
        handled = 0

        while handled < limit:
            candidates = await self.store.fetch_candidates(
                brand_id, customer_id, statuses=CLAIMABLE_STATUSES, since=since, limit=1, exclude_ids=attempted
            )
            if not candidates:
                break
            item = candidates[0]
            attempted.add(item.id)

            if not await self.coordinator.claim(item):
                ctx.summary.claims_lost += 1
                lost_in_a_row += 1
                if lost_in_a_row >= self.config.max_failed_claims:
                    logger.info("Giving up after %d consecutive lost claims", lost_in_a_row)
                    break
                continue
            lost_in_a_row = 0
            handled += 1

            state = _ItemState(item=item)
            if await self._phase_analysis(state, ctx):
                if await self._phase_positions(state, ctx):
                    await self._phase_sentiment(state, ctx)
            await self._finalize(state, ctx)

            if state.is_backend_failure:
                if breaker.record_failure():
                    await self._disable_serial_backend(ctx, brand_id, breaker)
                    break
            elif state.failed_phase is None:
                breaker.record_success()

    async def _disable_serial_backend(self, ctx: RunContext, brand_id: uuid.UUID, breaker: SerialFailureBreaker) -> None:
        reason = f"{breaker.consecutive_failures} consecutive failures"
        logger.warning(
            "Backend %s disabled for brand %s after %s; later runs use the batch backend",
            ctx.backend.name,
            brand_id,
            reason,
            extra={"brand_id": brand_id, "backend": ctx.backend.name},
        )
        BREAKER_TRIPS.labels(backend=ctx.backend.name).inc()
        ctx.summary.backend_disabled = True
        try:
            await self.store.disable_local_backend(brand_id, reason)
        except Exception as e:
            logger.error("Could not persist backend disable for brand %s: %s", brand_id, e)
