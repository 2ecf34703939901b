"""Tests for the analysis and citation category caches."""

from unittest.mock import AsyncMock

import pytest

from visibility_scoring.analysis.cache import AnalysisCache, CitationCategoryCache, normalize_domain
from visibility_scoring.analysis.types import AnalysisResult, CitationCategory, CitationInfo, SentimentScore

RESULT = AnalysisResult(brand_products=("Acme Pro",), brand_sentiment=SentimentScore(70), backend="fake")
EDITORIAL = CitationInfo(CitationCategory.EDITORIAL, "News")


def _store():
    store = AsyncMock()
    store.load_cached_analysis.return_value = None
    store.load_citation_categories.return_value = {}
    return store


class TestNormalizeDomain:
    @pytest.mark.parametrize(
        "url,domain",
        [
            ("https://www.Example.com/path?q=1", "example.com"),
            ("http://news.example.com:8080/a", "news.example.com"),
            ("example.org/page", "example.org"),
            ("", ""),
            ("https://", ""),
        ],
    )
    def test_normalize(self, url, domain):
        assert normalize_domain(url) == domain


class TestAnalysisCache:
    async def test_memory_hit_skips_store(self):
        store = _store()
        cache = AnalysisCache(store)
        cache.seed(1, RESULT)

        assert await cache.get(1) is RESULT
        store.load_cached_analysis.assert_not_called()
        assert cache.stats["memory_hits"] == 1

    async def test_store_hit_is_remembered(self):
        store = _store()
        store.load_cached_analysis.return_value = RESULT
        cache = AnalysisCache(store)

        assert await cache.get(1) == RESULT
        assert await cache.get(1) == RESULT
        store.load_cached_analysis.assert_awaited_once_with(1)
        assert cache.stats == {"memory_hits": 1, "store_hits": 1, "misses": 0, "write_errors": 0}

    async def test_miss(self):
        cache = AnalysisCache(_store())
        assert await cache.get(7) is None
        assert cache.stats["misses"] == 1

    async def test_read_failure_is_a_miss(self):
        store = _store()
        store.load_cached_analysis.side_effect = RuntimeError("db down")
        cache = AnalysisCache(store)
        assert await cache.get(1) is None

    async def test_put_writes_both_tiers(self):
        store = _store()
        cache = AnalysisCache(store)
        assert await cache.put(3, RESULT) is True
        assert 3 in cache
        store.save_cached_analysis.assert_awaited_once_with(3, RESULT)

    async def test_put_swallows_write_failure(self):
        store = _store()
        store.save_cached_analysis.side_effect = RuntimeError("disk full")
        cache = AnalysisCache(store)

        assert await cache.put(3, RESULT) is False
        assert cache.stats["write_errors"] == 1
        # Still served from memory for the rest of the run
        assert await cache.get(3) is RESULT

    async def test_clear(self):
        cache = AnalysisCache()
        cache.seed(1, RESULT)
        cache.clear()
        assert len(cache) == 0
        assert await cache.get(1) is None


class TestCitationCategoryCache:
    async def test_lookup_by_domain(self):
        store = _store()
        store.load_citation_categories.return_value = {"example.com": EDITORIAL}
        cache = CitationCategoryCache(store)

        hits = await cache.lookup(["https://www.example.com/a", "https://example.com/b", "https://other.org"])

        assert hits == {"https://www.example.com/a": EDITORIAL, "https://example.com/b": EDITORIAL}
        store.load_citation_categories.assert_awaited_once_with(["example.com", "other.org"])
        assert cache.stats["hits"] == 2
        assert cache.stats["misses"] == 1

    async def test_known_domains_not_reloaded(self):
        store = _store()
        store.load_citation_categories.return_value = {"example.com": EDITORIAL}
        cache = CitationCategoryCache(store)

        await cache.lookup(["https://example.com/a"])
        await cache.lookup(["https://example.com/b"])
        assert store.load_citation_categories.await_count == 1

    async def test_remember_upserts_one_entry_per_domain(self):
        store = _store()
        cache = CitationCategoryCache(store)

        ok = await cache.remember({"https://example.com/a": EDITORIAL, "https://www.example.com/b": EDITORIAL})

        assert ok is True
        store.save_citation_categories.assert_awaited_once_with({"example.com": (EDITORIAL, "https://example.com/a")})
        assert await cache.lookup(["https://example.com/z"]) == {"https://example.com/z": EDITORIAL}

    async def test_remember_swallows_write_failure(self):
        store = _store()
        store.save_citation_categories.side_effect = RuntimeError("db down")
        cache = CitationCategoryCache(store)

        assert await cache.remember({"https://example.com/a": EDITORIAL}) is False
        assert cache.stats["write_errors"] == 1

    async def test_read_failure_means_no_hits(self):
        store = _store()
        store.load_citation_categories.side_effect = RuntimeError("db down")
        cache = CitationCategoryCache(store)
        assert await cache.lookup(["https://example.com"]) == {}
