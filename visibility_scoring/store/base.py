"""ResultStore: persistence boundary of the scoring pipeline."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from visibility_scoring.analysis.types import (
    AnalysisResult,
    BacklogRecord,
    BrandRecord,
    CitationInfo,
    CompetitorRecord,
    PositionPayload,
    ScoringStatus,
    SentimentScore,
)


# Marker for "leave this column unchanged" in compare_and_set_status()
KEEP = object()


class ResultStore(ABC):
    """Reads backlog items and writes metrics, sentiment, citations and caches.

    Status mutations are exposed only as compare-and-set primitives; the rules
    for which transitions are legal live in JobClaimCoordinator.
    """

    # --- Backlog ---

    @abstractmethod
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
        """Items with raw text in one of ``statuses``, newest first."""

    @abstractmethod
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
        """Conditionally move one item to ``status``. True iff exactly one row changed.

        Columns passed as KEEP are not touched; None clears them.
        """

    @abstractmethod
    async def reap_processing(
        self,
        started_before: datetime,
        status: ScoringStatus,
        error: str,
        *,
        brand_id: uuid.UUID | None = None,
    ) -> int:
        """Move items stuck in processing since before ``started_before``. Returns affected rows."""

    @abstractmethod
    async def list_brands_with_backlog(
        self, statuses: Iterable[ScoringStatus | None]
    ) -> list[tuple[uuid.UUID, uuid.UUID]]:
        """(brand_id, customer_id) pairs that have claimable items."""

    # --- Brands ---

    @abstractmethod
    async def get_brand(self, brand_id: uuid.UUID) -> BrandRecord | None: ...

    @abstractmethod
    async def get_competitors(self, brand_id: uuid.UUID) -> list[CompetitorRecord]: ...

    @abstractmethod
    async def disable_local_backend(self, brand_id: uuid.UUID, reason: str) -> None:
        """Record that the serial backend must no longer be used for this brand."""

    # --- Metrics ---

    @abstractmethod
    async def save_positions(
        self,
        item: BacklogRecord,
        payload: PositionPayload,
        competitor_ids: dict[str, uuid.UUID],
    ) -> int:
        """Upsert MetricFact + BrandMetric + CompetitorMetrics. Returns the MetricFact id."""

    @abstractmethod
    async def get_metric_fact_id(self, item_id: int) -> int | None: ...

    @abstractmethod
    async def save_sentiment(
        self,
        metric_fact_id: int,
        brand: SentimentScore | None,
        competitors: dict[uuid.UUID, SentimentScore],
    ) -> int:
        """Upsert brand and competitor sentiment rows. Returns rows written."""

    @abstractmethod
    async def save_citations(self, item_id: int, citations: dict[str, CitationInfo]) -> int:
        """Upsert one citation row per URL. Returns rows written."""

    # --- Caches ---

    @abstractmethod
    async def load_cached_analysis(self, item_id: int) -> AnalysisResult | None: ...

    @abstractmethod
    async def save_cached_analysis(self, item_id: int, result: AnalysisResult) -> None: ...

    @abstractmethod
    async def load_citation_categories(self, domains: Iterable[str]) -> dict[str, CitationInfo]: ...

    @abstractmethod
    async def save_citation_categories(self, entries: dict[str, tuple[CitationInfo, str]]) -> None:
        """Upsert domain -> (category, sample URL)."""
