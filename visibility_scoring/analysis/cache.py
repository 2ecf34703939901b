"""Analysis caches.

AnalysisCache (keyed by backlog item id), checked in order:
  1. Per-run map: lives as long as one processing run
  2. Persistent store: full AnalysisResult minus citations, reused whatever
     backend produced it

CitationCategoryCache (keyed by normalized domain) is shared across brands.
Only URLs whose domain is not cached are sent to a backend.

Caching is an optimization: read and write failures are logged and treated
as misses, never propagated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlparse

from visibility_scoring.analysis.types import AnalysisResult, CitationInfo
from visibility_scoring.core.metrics import CACHE_LOOKUPS
from visibility_scoring.store.base import ResultStore

logger = logging.getLogger(__name__)


def normalize_domain(url: str) -> str:
    """Host of a URL, lower-cased, without scheme or ``www.`` prefix. Empty if unparsable."""
    if not url:
        return ""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = "//" + candidate
    try:
        domain = urlparse(candidate).hostname or ""
    except ValueError:
        return ""
    domain = domain.lower()
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


class AnalysisCache:
    """Two-tier cache of AnalysisResults, created once per processing run."""

    def __init__(self, store: ResultStore | None = None):
        self._store = store
        self._entries: dict[int, AnalysisResult] = {}
        self.stats = {"memory_hits": 0, "store_hits": 0, "misses": 0, "write_errors": 0}

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def seed(self, item_id: int, result: AnalysisResult) -> None:
        """Pre-populate the per-run map without touching the store."""
        self._entries[item_id] = result

    def clear(self) -> None:
        self._entries.clear()

    async def get(self, item_id: int) -> AnalysisResult | None:
        """Cached result for an item. Results loaded from the store carry no citations."""
        result = self._entries.get(item_id)
        if result is not None:
            self.stats["memory_hits"] += 1
            CACHE_LOOKUPS.labels(cache="analysis_memory", result="hit").inc()
            return result

        if self._store is not None:
            try:
                result = await self._store.load_cached_analysis(item_id)
            except Exception as e:
                logger.warning("Analysis cache read failed for item %s: %s", item_id, e)
                result = None
            if result is not None:
                self.stats["store_hits"] += 1
                CACHE_LOOKUPS.labels(cache="analysis_store", result="hit").inc()
                self._entries[item_id] = result
                return result

        self.stats["misses"] += 1
        CACHE_LOOKUPS.labels(cache="analysis", result="miss").inc()
        return None

    async def put(self, item_id: int, result: AnalysisResult) -> bool:
        """Remember a result in both tiers. Returns False if the store write failed."""
        self._entries[item_id] = result
        if self._store is None:
            return True
        try:
            await self._store.save_cached_analysis(item_id, result)
        except Exception as e:
            self.stats["write_errors"] += 1
            logger.warning("Analysis cache write failed for item %s: %s", item_id, e)
            return False
        return True


class CitationCategoryCache:
    """Domain -> citation category, backed by the shared citation_categories table."""

    def __init__(self, store: ResultStore | None = None):
        self._store = store
        self._domains: dict[str, CitationInfo] = {}
        self.stats = {"hits": 0, "misses": 0, "write_errors": 0}

    async def lookup(self, urls: Iterable[str]) -> dict[str, CitationInfo]:
        """Cached categories for the given URLs (URL -> info); unknown domains are omitted."""
        urls = list(dict.fromkeys(urls))
        by_url = {url: normalize_domain(url) for url in urls}
        missing = {d for d in by_url.values() if d and d not in self._domains}

        if missing and self._store is not None:
            try:
                loaded = await self._store.load_citation_categories(sorted(missing))
            except Exception as e:
                logger.warning("Citation category cache read failed: %s", e)
                loaded = {}
            self._domains.update(loaded)

        hits = {}
        for url, domain in by_url.items():
            info = self._domains.get(domain) if domain else None
            if info is not None:
                hits[url] = info
        self.stats["hits"] += len(hits)
        self.stats["misses"] += len(urls) - len(hits)
        CACHE_LOOKUPS.labels(cache="citation", result="hit").inc(len(hits))
        CACHE_LOOKUPS.labels(cache="citation", result="miss").inc(len(urls) - len(hits))
        return hits

    async def remember(self, citations: dict[str, CitationInfo]) -> bool:
        """Store newly categorized URLs by domain. Returns False if the store write failed."""
        entries: dict[str, tuple[CitationInfo, str]] = {}
        for url, info in citations.items():
            domain = normalize_domain(url)
            if domain and domain not in entries:
                entries[domain] = (info, url)
                self._domains[domain] = info

        if not entries or self._store is None:
            return True
        try:
            await self._store.save_citation_categories(entries)
        except Exception as e:
            self.stats["write_errors"] += 1
            logger.warning("Citation category cache write failed (%d domains): %s", len(entries), e)
            return False
        return True
