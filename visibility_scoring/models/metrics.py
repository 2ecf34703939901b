import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_scoring.db.base import Base, BigIntPK, JsonType


class MetricFact(Base):
    """Canonical per-item record; at most one per backlog item."""

    __tablename__ = "metric_facts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    collector_result_id: Mapped[int] = mapped_column(
        ForeignKey("collector_results.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    query_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    collector_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class BrandMetric(Base):
    __tablename__ = "brand_metrics"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metric_fact_id: Mapped[int] = mapped_column(
        ForeignKey("metric_facts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    visibility_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    share_of_answers: Mapped[float | None] = mapped_column(Float, nullable=True)
    positions: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)  # sorted, 1-indexed
    first_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mention_count: Mapped[int] = mapped_column(Integer, default=0)
    product_mention_count: Mapped[int] = mapped_column(Integer, default=0)
    total_word_count: Mapped[int] = mapped_column(Integer, default=0)
    has_presence: Mapped[bool] = mapped_column(Boolean, default=False)


class CompetitorMetric(Base):
    __tablename__ = "competitor_metrics"
    __table_args__ = (UniqueConstraint("metric_fact_id", "competitor_id", name="uq_competitor_metric"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metric_fact_id: Mapped[int] = mapped_column(ForeignKey("metric_facts.id", ondelete="CASCADE"), nullable=False)
    competitor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("brand_competitors.id", ondelete="CASCADE"), nullable=False
    )
    visibility_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    share_of_answers: Mapped[float | None] = mapped_column(Float, nullable=True)
    positions: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    first_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mention_count: Mapped[int] = mapped_column(Integer, default=0)
    product_mention_count: Mapped[int] = mapped_column(Integer, default=0)


class BrandSentiment(Base):
    __tablename__ = "brand_sentiment"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metric_fact_id: Mapped[int] = mapped_column(
        ForeignKey("metric_facts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    sentiment_label: Mapped[str] = mapped_column(String(10), nullable=False)  # POSITIVE | NEUTRAL | NEGATIVE
    sentiment_score: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-100


class CompetitorSentiment(Base):
    __tablename__ = "competitor_sentiment"
    __table_args__ = (UniqueConstraint("metric_fact_id", "competitor_id", name="uq_competitor_sentiment"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metric_fact_id: Mapped[int] = mapped_column(ForeignKey("metric_facts.id", ondelete="CASCADE"), nullable=False)
    competitor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("brand_competitors.id", ondelete="CASCADE"), nullable=False
    )
    sentiment_label: Mapped[str] = mapped_column(String(10), nullable=False)
    sentiment_score: Mapped[int] = mapped_column(Integer, nullable=False)
