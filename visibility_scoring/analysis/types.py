"""Core types and DTOs for the scoring pipeline."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ScoringStatus(str, Enum):
    """Lifecycle of a backlog item. An unset status is stored as NULL."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    TIMEOUT = "timeout"


# Statuses from which an item may be claimed (None = never scored)
CLAIMABLE_STATUSES: frozenset[ScoringStatus | None] = frozenset(
    {None, ScoringStatus.PENDING, ScoringStatus.ERROR, ScoringStatus.TIMEOUT}
)


class SentimentLabel(str, Enum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


NEGATIVE_BELOW = 55
POSITIVE_ABOVE = 65


def sentiment_label(score: int) -> SentimentLabel:
    if score < NEGATIVE_BELOW:
        return SentimentLabel.NEGATIVE
    if score > POSITIVE_ABOVE:
        return SentimentLabel.POSITIVE
    return SentimentLabel.NEUTRAL


class CitationCategory(str, Enum):
    """Source type of a cited page."""

    EDITORIAL = "Editorial"  # News, reviews, blogs
    CORPORATE = "Corporate"  # Brand / vendor sites
    REFERENCE = "Reference"  # Wikipedia, docs, dictionaries
    UGC = "UGC"  # Forums, Q&A, reviews by users
    SOCIAL = "Social"  # Social networks, video platforms
    INSTITUTIONAL = "Institutional"  # Government, education, NGOs


class ProcessingMode(str, Enum):
    BATCH = "batch"
    SERIAL = "serial"


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SentimentScore:
    """A 1-100 sentiment score. The label is always derived from the score."""

    score: int

    @property
    def label(self) -> SentimentLabel:
        return sentiment_label(self.score)


@dataclass(frozen=True)
class CitationInfo:
    category: CitationCategory
    page_name: str | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Output of one backend invocation for one backlog item. Never mutated."""

    brand_products: tuple[str, ...] = ()
    competitor_products: dict[str, tuple[str, ...]] = field(default_factory=dict)
    citations: dict[str, CitationInfo] = field(default_factory=dict)  # url -> category
    brand_sentiment: SentimentScore | None = None
    competitor_sentiment: dict[str, SentimentScore] = field(default_factory=dict)
    keywords: tuple[str, ...] = ()
    quotes: tuple[str, ...] = ()
    narrative: str | None = None
    backend: str = ""

    @property
    def has_sentiment(self) -> bool:
        return self.brand_sentiment is not None or bool(self.competitor_sentiment)


# ---------------------------------------------------------------------------
# Store records
# ---------------------------------------------------------------------------


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


@dataclass
class BrandRecord:
    id: uuid.UUID
    customer_id: uuid.UUID
    name: str
    metadata: dict = field(default_factory=dict)
    local_llm: dict = field(default_factory=dict)

    @property
    def products(self) -> list[str]:
        return _string_list(self.metadata.get("products"))

    @property
    def wants_local_backend(self) -> bool:
        """Brand opted into the local backend and it has not been disabled since."""
        return bool(self.local_llm.get("use_local")) and not self.local_llm.get("disabled_at")

    @property
    def local_backend_disabled(self) -> bool:
        return bool(self.local_llm.get("disabled_at"))


@dataclass
class CompetitorRecord:
    id: uuid.UUID
    name: str
    metadata: dict = field(default_factory=dict)

    @property
    def products(self) -> list[str]:
        return _string_list(self.metadata.get("products"))


@dataclass
class BacklogRecord:
    """Read-only snapshot of a backlog row as seen when candidates were fetched."""

    id: int
    brand_id: uuid.UUID
    customer_id: uuid.UUID
    raw_answer: str | None
    competitors: list[str] = field(default_factory=list)
    citation_urls: list[str] = field(default_factory=list)
    scoring_status: ScoringStatus | None = None
    created_at: datetime | None = None
    query_id: int | None = None
    collector_type: str | None = None
    topic: str | None = None


@dataclass
class CompetitorContext:
    name: str
    products: list[str] = field(default_factory=list)


@dataclass
class AnalysisRequest:
    """Everything a backend needs to analyze one answer."""

    brand_name: str
    brand_products: list[str]
    competitors: list[CompetitorContext]
    raw_text: str
    citation_urls: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Position metrics
# ---------------------------------------------------------------------------


@dataclass
class EntityPositions:
    """Mention metrics of one entity (brand or competitor) in one answer."""

    name: str
    positions: list[int] = field(default_factory=list)  # sorted, 1-indexed, unique
    mention_count: int = 0
    product_mention_count: int = 0
    visibility_index: float | None = None
    share_of_answers: float | None = None

    @property
    def first_position(self) -> int | None:
        return self.positions[0] if self.positions else None

    @property
    def has_presence(self) -> bool:
        return self.mention_count > 0


@dataclass
class PositionPayload:
    brand: EntityPositions
    competitors: list[EntityPositions] = field(default_factory=list)
    total_words: int = 0


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------


@dataclass
class ItemError:
    item_id: int
    message: str


@dataclass
class ReapResult:
    timed_out: int = 0
    errored: int = 0

    @property
    def total(self) -> int:
        return self.timed_out + self.errored


@dataclass
class ProcessingSummary:
    """Caller-facing result of one process_backlog() run."""

    processed: int = 0
    positions_written: int = 0
    sentiments_written: int = 0
    citations_written: int = 0
    errors: list[ItemError] = field(default_factory=list)
    mode: ProcessingMode | None = None
    claims_lost: int = 0
    analysis_cache_hits: int = 0
    total_citations: int = 0
    cached_citations: int = 0
    backend_disabled: bool = False

    def add_error(self, item_id: int, message: str) -> None:
        self.errors.append(ItemError(item_id=item_id, message=message))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value if self.mode else None
        return data
