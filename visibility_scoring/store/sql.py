"""SQLAlchemy implementation of ResultStore.

Every public method opens its own session, commits, and is retried on
transient errors only. Upserts use INSERT ... ON CONFLICT on the natural keys:

  - metric_facts:          collector_result_id
  - brand_metrics:         metric_fact_id
  - competitor_metrics:    (metric_fact_id, competitor_id)
  - brand_sentiment:       metric_fact_id
  - competitor_sentiment:  (metric_fact_id, competitor_id)
  - citations:             (collector_result_id, url)
  - analysis cache:        collector_result_id
  - citation_categories:   domain

Status changes are conditional UPDATEs; the affected row count tells the
caller whether its compare-and-set won.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import false, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visibility_scoring.analysis.cache import normalize_domain
from visibility_scoring.analysis.schema import AnalysisPayload
from visibility_scoring.analysis.types import (
    AnalysisResult,
    BacklogRecord,
    BrandRecord,
    CitationCategory,
    CitationInfo,
    CompetitorRecord,
    PositionPayload,
    ScoringStatus,
    SentimentScore,
)
from visibility_scoring.core.config import settings
from visibility_scoring.core.errors import ConfigurationError
from visibility_scoring.core.retry import transient_retry
from visibility_scoring.models import (
    AnalysisCacheEntry,
    BacklogItem,
    Brand,
    BrandCompetitor,
    BrandMetric,
    BrandSentiment,
    Citation,
    CitationCategory as CitationCategoryRow,
    CompetitorMetric,
    CompetitorSentiment,
    MetricFact,
)
from visibility_scoring.store.base import KEEP, ResultStore

logger = logging.getLogger(__name__)


def _status_filter(statuses: Iterable[ScoringStatus | None]):
    statuses = list(statuses)
    clauses = []
    if any(s is None for s in statuses):
        clauses.append(BacklogItem.scoring_status.is_(None))
    values = [ScoringStatus(s).value for s in statuses if s is not None]
    if values:
        clauses.append(BacklogItem.scoring_status.in_(values))
    return or_(*clauses) if clauses else false()


def _url_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    urls = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("url")
        if isinstance(entry, str) and entry.strip():
            urls.append(entry.strip())
    return list(dict.fromkeys(urls))


def _to_record(row: BacklogItem) -> BacklogRecord:
    return BacklogRecord(
        id=row.id,
        brand_id=row.brand_id,
        customer_id=row.customer_id,
        raw_answer=row.raw_answer,
        competitors=[c.strip() for c in (row.competitors or []) if isinstance(c, str) and c.strip()],
        citation_urls=_url_list(row.citations),
        scoring_status=ScoringStatus(row.scoring_status) if row.scoring_status else None,
        created_at=row.created_at,
        query_id=row.query_id,
        collector_type=row.collector_type,
        topic=row.topic,
    )


def _sentiment_json(score: SentimentScore | None) -> dict | None:
    return {"score": score.score} if score is not None else None


class SqlResultStore(ResultStore):
    """ResultStore over an async SQLAlchemy session factory (PostgreSQL or SQLite)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retry_attempts: int | None = None,
        retry_base_delay: float | None = None,
    ):
        self._session_factory = session_factory
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.store_retry_attempts
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else settings.store_retry_base_delay

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _insert(db: AsyncSession, model):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise ConfigurationError(f"Upserts are not supported on dialect {dialect!r}")

    async def _upsert(self, db: AsyncSession, model, rows: list[dict], keys: list[str]) -> int:
        if not rows:
            return 0
        stmt = self._insert(db, model).values(rows)
        updates = {name: stmt.excluded[name] for name in rows[0] if name not in keys}
        if updates:
            stmt = stmt.on_conflict_do_update(index_elements=keys, set_=updates)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=keys)
        await db.execute(stmt)
        return len(rows)

    # ------------------------------------------------------------------
    # Backlog
    # ------------------------------------------------------------------

    @transient_retry
    async def fetch_candidates(
        self,
        brand_id: uuid.UUID,
        customer_id: uuid.UUID,
        *,
        statuses: Iterable[ScoringStatus | None],
        since: datetime | None = None,
        limit: int = 50,
        exclude_ids: Iterable[int] = (),
    ) -> list[BacklogRecord]:
        stmt = select(BacklogItem).where(
            BacklogItem.brand_id == brand_id,
            BacklogItem.customer_id == customer_id,
            BacklogItem.raw_answer.is_not(None),
            BacklogItem.raw_answer != "",
            _status_filter(statuses),
        )
        if since is not None:
            stmt = stmt.where(BacklogItem.created_at >= since)
        excluded = list(exclude_ids)
        if excluded:
            stmt = stmt.where(BacklogItem.id.not_in(excluded))
        stmt = stmt.order_by(BacklogItem.created_at.desc(), BacklogItem.id.desc()).limit(limit)

        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]

    @transient_retry
    async def compare_and_set_status(
        self,
        item_id: int,
        expected: Iterable[ScoringStatus | None],
        status: ScoringStatus,
        *,
        started_at=KEEP,
        completed_at=KEEP,
        error=KEEP,
    ) -> bool:
        values = {"scoring_status": status.value}
        if started_at is not KEEP:
            values["scoring_started_at"] = started_at
        if completed_at is not KEEP:
            values["scoring_completed_at"] = completed_at
        if error is not KEEP:
            values["scoring_error"] = error

        stmt = (
            update(BacklogItem)
            .where(BacklogItem.id == item_id, _status_filter(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

    @transient_retry
    async def reap_processing(
        self,
        started_before: datetime,
        status: ScoringStatus,
        error: str,
        *,
        brand_id: uuid.UUID | None = None,
    ) -> int:
        stmt = update(BacklogItem).where(
            BacklogItem.scoring_status == ScoringStatus.PROCESSING.value,
            or_(BacklogItem.scoring_started_at < started_before, BacklogItem.scoring_started_at.is_(None)),
        )
        if brand_id is not None:
            stmt = stmt.where(BacklogItem.brand_id == brand_id)
        stmt = stmt.values(scoring_status=status.value, scoring_error=error).execution_options(
            synchronize_session=False
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount

    @transient_retry
    async def list_brands_with_backlog(
        self, statuses: Iterable[ScoringStatus | None]
    ) -> list[tuple[uuid.UUID, uuid.UUID]]:
        stmt = (
            select(BacklogItem.brand_id, BacklogItem.customer_id)
            .where(BacklogItem.raw_answer.is_not(None), _status_filter(statuses))
            .distinct()
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [(row.brand_id, row.customer_id) for row in result.all()]

    # ------------------------------------------------------------------
    # Brands
    # ------------------------------------------------------------------

    @transient_retry
    async def get_brand(self, brand_id: uuid.UUID) -> BrandRecord | None:
        async with self._session_factory() as db:
            brand = await db.get(Brand, brand_id)
            if brand is None:
                return None
            return BrandRecord(
                id=brand.id,
                customer_id=brand.customer_id,
                name=brand.name,
                metadata=dict(brand.metadata_ or {}),
                local_llm=dict(brand.local_llm or {}),
            )

    @transient_retry
    async def get_competitors(self, brand_id: uuid.UUID) -> list[CompetitorRecord]:
        stmt = select(BrandCompetitor).where(BrandCompetitor.brand_id == brand_id).order_by(BrandCompetitor.name)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [
                CompetitorRecord(id=row.id, name=row.name, metadata=dict(row.metadata_ or {}))
                for row in result.scalars().all()
            ]

    @transient_retry
    async def disable_local_backend(self, brand_id: uuid.UUID, reason: str) -> None:
        async with self._session_factory() as db:
            brand = await db.get(Brand, brand_id)
            if brand is None:
                logger.warning("Cannot disable local backend: brand %s not found", brand_id)
                return
            config = dict(brand.local_llm or {})
            config.update(
                use_local=False,
                disabled_at=datetime.now(timezone.utc).isoformat(),
                disabled_reason=reason,
            )
            brand.local_llm = config
            await db.commit()

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    @transient_retry
    async def save_positions(
        self,
        item: BacklogRecord,
        payload: PositionPayload,
        competitor_ids: dict[str, uuid.UUID],
    ) -> int:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as db:
            await self._upsert(
                db,
                MetricFact,
                [
                    {
                        "collector_result_id": item.id,
                        "brand_id": item.brand_id,
                        "customer_id": item.customer_id,
                        "query_id": item.query_id,
                        "collector_type": item.collector_type,
                        "topic": item.topic,
                        "processed_at": now,
                    }
                ],
                ["collector_result_id"],
            )
            fact_id = (
                await db.execute(select(MetricFact.id).where(MetricFact.collector_result_id == item.id))
            ).scalar_one()

            brand = payload.brand
            await self._upsert(
                db,
                BrandMetric,
                [
                    {
                        "metric_fact_id": fact_id,
                        "visibility_index": brand.visibility_index,
                        "share_of_answers": brand.share_of_answers,
                        "positions": brand.positions,
                        "first_position": brand.first_position,
                        "mention_count": brand.mention_count,
                        "product_mention_count": brand.product_mention_count,
                        "total_word_count": payload.total_words,
                        "has_presence": brand.has_presence,
                    }
                ],
                ["metric_fact_id"],
            )

            rows = []
            for competitor in payload.competitors:
                competitor_id = competitor_ids.get(competitor.name)
                if competitor_id is None:
                    logger.debug("No competitor record for %r, skipping metric row", competitor.name)
                    continue
                rows.append(
                    {
                        "metric_fact_id": fact_id,
                        "competitor_id": competitor_id,
                        "visibility_index": competitor.visibility_index,
                        "share_of_answers": competitor.share_of_answers,
                        "positions": competitor.positions,
                        "first_position": competitor.first_position,
                        "mention_count": competitor.mention_count,
                        "product_mention_count": competitor.product_mention_count,
                    }
                )
            await self._upsert(db, CompetitorMetric, rows, ["metric_fact_id", "competitor_id"])
            await db.commit()
            return fact_id

    @transient_retry
    async def get_metric_fact_id(self, item_id: int) -> int | None:
        async with self._session_factory() as db:
            result = await db.execute(select(MetricFact.id).where(MetricFact.collector_result_id == item_id))
            return result.scalar_one_or_none()

    @transient_retry
    async def save_sentiment(
        self,
        metric_fact_id: int,
        brand: SentimentScore | None,
        competitors: dict[uuid.UUID, SentimentScore],
    ) -> int:
        written = 0
        async with self._session_factory() as db:
            if brand is not None:
                written += await self._upsert(
                    db,
                    BrandSentiment,
                    [
                        {
                            "metric_fact_id": metric_fact_id,
                            "sentiment_label": brand.label.value,
                            "sentiment_score": brand.score,
                        }
                    ],
                    ["metric_fact_id"],
                )
            rows = [
                {
                    "metric_fact_id": metric_fact_id,
                    "competitor_id": competitor_id,
                    "sentiment_label": score.label.value,
                    "sentiment_score": score.score,
                }
                for competitor_id, score in competitors.items()
            ]
            written += await self._upsert(db, CompetitorSentiment, rows, ["metric_fact_id", "competitor_id"])
            await db.commit()
        return written

    @transient_retry
    async def save_citations(self, item_id: int, citations: dict[str, CitationInfo]) -> int:
        rows = [
            {
                "collector_result_id": item_id,
                "url": url,
                "domain": normalize_domain(url) or url[:255],
                "page_name": info.page_name,
                "category": info.category.value,
            }
            for url, info in citations.items()
        ]
        async with self._session_factory() as db:
            written = await self._upsert(db, Citation, rows, ["collector_result_id", "url"])
            await db.commit()
        return written

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------

    @transient_retry
    async def load_cached_analysis(self, item_id: int) -> AnalysisResult | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(AnalysisCacheEntry).where(AnalysisCacheEntry.collector_result_id == item_id)
            )
            entry = result.scalar_one_or_none()
            if entry is None:
                return None
            payload = AnalysisPayload.model_validate(
                {"products": entry.products, "sentiment": entry.sentiment, **(entry.extras or {})},
                context={"stored": True},
            )
            return payload.to_result(entry.backend or "")

    @transient_retry
    async def save_cached_analysis(self, item_id: int, result: AnalysisResult) -> None:
        row = {
            "collector_result_id": item_id,
            "products": {
                "brand": list(result.brand_products),
                "competitors": {name: list(p) for name, p in result.competitor_products.items()},
            },
            "sentiment": {
                "brand": _sentiment_json(result.brand_sentiment),
                "competitors": {name: _sentiment_json(s) for name, s in result.competitor_sentiment.items()},
            },
            "extras": {
                "keywords": list(result.keywords),
                "quotes": list(result.quotes),
                "narrative": result.narrative,
            },
            "backend": result.backend or None,
            "updated_at": datetime.now(timezone.utc),
        }
        async with self._session_factory() as db:
            await self._upsert(db, AnalysisCacheEntry, [row], ["collector_result_id"])
            await db.commit()

    @transient_retry
    async def load_citation_categories(self, domains: Iterable[str]) -> dict[str, CitationInfo]:
        domains = [d for d in domains if d]
        if not domains:
            return {}
        async with self._session_factory() as db:
            result = await db.execute(select(CitationCategoryRow).where(CitationCategoryRow.domain.in_(domains)))
            found = {}
            for row in result.scalars().all():
                try:
                    category = CitationCategory(row.category)
                except ValueError:
                    logger.warning("Ignoring cached category %r for %s", row.category, row.domain)
                    continue
                found[row.domain] = CitationInfo(category=category, page_name=row.page_name)
            return found

    @transient_retry
    async def save_citation_categories(self, entries: dict[str, tuple[CitationInfo, str]]) -> None:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "domain": domain,
                "category": info.category.value,
                "page_name": info.page_name,
                "sample_url": url,
                "updated_at": now,
            }
            for domain, (info, url) in entries.items()
        ]
        async with self._session_factory() as db:
            await self._upsert(db, CitationCategoryRow, rows, ["domain"])
            await db.commit()
