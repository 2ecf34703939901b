"""Shared fixtures: a file-backed SQLite store, seeded brands and a scripted backend."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from visibility_scoring.analysis.types import (
    AnalysisRequest,
    AnalysisResult,
    CitationCategory,
    CitationInfo,
    SentimentScore,
)
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.db.base import Base
from visibility_scoring.models import BacklogItem, Brand, BrandCompetitor
from visibility_scoring.store.sql import SqlResultStore

ANSWER = "Acme Pro is great, unlike BadCo Lite."


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    # File database + NullPool: every session gets its own connection, like separate workers
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scoring.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return SqlResultStore(session_factory, retry_attempts=3, retry_base_delay=0)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


async def seed_brand(session_factory, *, name="Acme", products=("Acme Pro",), competitors=None, local_llm=None):
    """Insert a brand with competitors ({name: [products]}). Returns plain ids."""
    competitors = {"BadCo": ["BadCo Lite"]} if competitors is None else competitors
    brand = Brand(
        id=uuid.uuid4(),
        customer_id=uuid.uuid4(),
        name=name,
        metadata_={"products": list(products)},
        local_llm=local_llm or {},
    )
    rows = [BrandCompetitor(id=uuid.uuid4(), name=c, metadata_={"products": list(p)}) for c, p in competitors.items()]
    brand.competitors = rows
    async with session_factory() as db:
        db.add(brand)
        await db.commit()
    return SimpleNamespace(
        id=brand.id,
        customer_id=brand.customer_id,
        name=name,
        competitor_ids={row.name: row.id for row in rows},
    )


async def seed_item(
    session_factory,
    brand,
    *,
    raw_answer=ANSWER,
    status=None,
    competitors=("BadCo",),
    citations=(),
    created_at=None,
    started_at=None,
):
    item = BacklogItem(
        brand_id=brand.id,
        customer_id=brand.customer_id,
        raw_answer=raw_answer,
        competitors=list(competitors),
        citations=list(citations),
        scoring_status=status,
        scoring_started_at=started_at,
        created_at=created_at or datetime.now(timezone.utc),
        collector_type="chatgpt",
    )
    async with session_factory() as db:
        db.add(item)
        await db.commit()
    return item.id


async def seed_items(session_factory, brand, count, **kwargs):
    """Seed ``count`` items with distinct created_at values, oldest first."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return [
        await seed_item(session_factory, brand, created_at=base + timedelta(minutes=i), **kwargs) for i in range(count)
    ]


async def load_item(session_factory, item_id):
    async with session_factory() as db:
        return await db.get(BacklogItem, item_id)


@pytest.fixture
async def brand(session_factory):
    return await seed_brand(session_factory)


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


def default_result(request: AnalysisRequest) -> AnalysisResult:
    return AnalysisResult(
        brand_products=("Acme Pro",),
        competitor_products={"BadCo": ("BadCo Lite",)},
        citations={url: CitationInfo(CitationCategory.EDITORIAL, "Review") for url in request.citation_urls},
        brand_sentiment=SentimentScore(80),
        competitor_sentiment={"BadCo": SentimentScore(40)},
        backend="fake",
    )


class FakeBackend(AnalysisBackend):
    """Scripted backend: raises queued errors first, then returns ``result(request)``."""

    def __init__(self, name="fake", *, concurrency_safe=True, result=default_result, errors=(), delay=0.0):
        self.name = name
        self.concurrency_safe = concurrency_safe
        self.result = result
        self.errors = list(errors)
        self.delay = delay
        self.calls: list[AnalysisRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _analyze(self, request):
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.errors:
                error = self.errors.pop(0)
                if error is not None:
                    raise error
            return self.result(request)
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_backend():
    return FakeBackend()
