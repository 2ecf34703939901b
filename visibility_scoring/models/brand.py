import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility_scoring.db.base import Base, JsonType


class Brand(Base):
    """A tracked brand. ``local_llm`` holds the serial-backend opt-in and its disable record."""

    __tablename__ = "brands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JsonType, nullable=True)  # {"products": [...]}
    local_llm: Mapped[dict | None] = mapped_column(
        JsonType, nullable=True
    )  # {"use_local": true, "disabled_at": "...", "disabled_reason": "..."}
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    competitors: Mapped[list["BrandCompetitor"]] = relationship(
        "BrandCompetitor", back_populates="brand", cascade="all, delete-orphan"
    )


class BrandCompetitor(Base):
    __tablename__ = "brand_competitors"
    __table_args__ = (UniqueConstraint("brand_id", "name", name="uq_brand_competitor_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    brand_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JsonType, nullable=True)

    brand: Mapped["Brand"] = relationship("Brand", back_populates="competitors")
