"""Celery tasks for backlog scoring.

  - score_brand:        process one brand's backlog (one BacklogProcessor run)
  - dispatch_scoring:   beat task, enqueues score_brand for brands with claimable items
  - reap_stuck_scoring: beat task, global stuck-item sweep
"""

import asyncio
import logging
from datetime import datetime
from uuid import UUID

from visibility_scoring.analysis.types import CLAIMABLE_STATUSES
from visibility_scoring.backends.registry import build_backends
from visibility_scoring.pipeline.claims import JobClaimCoordinator
from visibility_scoring.pipeline.processor import BacklogProcessor, PipelineConfig
from visibility_scoring.store.sql import SqlResultStore
from visibility_scoring.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time; engines are created inside the
    coroutine so nothing is bound to a previous loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session_factory():
    """Create a fresh async engine + session factory for the worker's event loop."""
    from visibility_scoring.db.postgres import make_engine, make_session_factory

    engine = make_engine(pool_size=5, max_overflow=5)
    return make_session_factory(engine), engine


async def _score_brand_async(
    brand_id: str,
    customer_id: str,
    since: str | None = None,
    limit: int | None = None,
) -> dict:
    session_factory, engine = _make_session_factory()
    try:
        store = SqlResultStore(session_factory)
        processor = BacklogProcessor(store, build_backends(), config=PipelineConfig.from_settings())
        summary = await processor.process_backlog(
            UUID(brand_id),
            UUID(customer_id),
            since=datetime.fromisoformat(since) if since else None,
            limit=limit,
        )
        return summary.to_dict()
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="score_brand", max_retries=0)
def score_brand_task(self, brand_id: str, customer_id: str, since: str | None = None, limit: int | None = None):
    logger.info("score_brand started: brand=%s customer=%s", brand_id, customer_id)
    return _run_async(_score_brand_async(brand_id, customer_id, since, limit))


async def _find_brands_with_backlog() -> list[tuple[str, str]]:
    session_factory, engine = _make_session_factory()
    try:
        store = SqlResultStore(session_factory)
        pairs = await store.list_brands_with_backlog(CLAIMABLE_STATUSES)
        return [(str(brand_id), str(customer_id)) for brand_id, customer_id in pairs]
    finally:
        await engine.dispose()


@celery_app.task(name="dispatch_scoring")
def dispatch_scoring_task():
    pairs = _run_async(_find_brands_with_backlog())
    for brand_id, customer_id in pairs:
        score_brand_task.delay(brand_id, customer_id)
    if pairs:
        logger.info("Dispatched scoring for %d brands", len(pairs))
    return len(pairs)


async def _reap_stuck_async() -> dict:
    session_factory, engine = _make_session_factory()
    try:
        config = PipelineConfig.from_settings()
        coordinator = JobClaimCoordinator(
            SqlResultStore(session_factory),
            stuck_timeout=config.stuck_timeout,
            stuck_error=config.stuck_error,
        )
        result = await coordinator.reap_stuck_items()
        return {"timed_out": result.timed_out, "errored": result.errored}
    finally:
        await engine.dispose()


@celery_app.task(name="reap_stuck_scoring")
def reap_stuck_scoring_task():
    return _run_async(_reap_stuck_async())
