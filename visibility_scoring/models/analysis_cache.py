from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from visibility_scoring.db.base import Base, BigIntPK, JsonType


class AnalysisCacheEntry(Base):
    """Persisted analysis result for one backlog item (citations are cached per domain instead)."""

    __tablename__ = "consolidated_analysis_cache"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    collector_result_id: Mapped[int] = mapped_column(
        ForeignKey("collector_results.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    products: Mapped[dict] = mapped_column(JsonType, nullable=False)  # {"brand": [...], "competitors": {...}}
    sentiment: Mapped[dict] = mapped_column(JsonType, nullable=False)  # {"brand": {...}, "competitors": {...}}
    extras: Mapped[dict | None] = mapped_column(JsonType, nullable=True)  # keywords, quotes, narrative
    backend: Mapped[str | None] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
