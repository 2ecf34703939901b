from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from visibility_scoring.db.base import Base, BigIntPK


class Citation(Base):
    """A URL cited by one backlog item, with its source category."""

    __tablename__ = "citations"
    __table_args__ = (UniqueConstraint("collector_result_id", "url", name="uq_citation_item_url"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    collector_result_id: Mapped[int] = mapped_column(
        ForeignKey("collector_results.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    page_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class CitationCategory(Base):
    """Domain-level categorization shared by every brand and customer."""

    __tablename__ = "citation_categories"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    page_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sample_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
