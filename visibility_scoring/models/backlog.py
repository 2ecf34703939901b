import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility_scoring.db.base import Base, BigIntPK, JsonType


class BacklogItem(Base):
    """One raw assistant answer written by upstream collection and awaiting scoring.

    ``scoring_status`` is only ever changed through JobClaimCoordinator.
    """

    __tablename__ = "collector_results"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    brand_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    query_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    collector_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # chatgpt | perplexity | ...
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)

    raw_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitors: Mapped[list | None] = mapped_column(JsonType, nullable=True)  # ["BadCo", ...]
    citations: Mapped[list | None] = mapped_column(JsonType, nullable=True)  # ["https://...", ...]

    scoring_status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, index=True
    )  # NULL | pending | processing | completed | error | timeout
    scoring_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scoring_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scoring_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
