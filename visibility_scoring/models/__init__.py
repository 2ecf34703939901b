from visibility_scoring.models.analysis_cache import AnalysisCacheEntry
from visibility_scoring.models.backlog import BacklogItem
from visibility_scoring.models.brand import Brand, BrandCompetitor
from visibility_scoring.models.citation import Citation, CitationCategory
from visibility_scoring.models.metrics import (
    BrandMetric,
    BrandSentiment,
    CompetitorMetric,
    CompetitorSentiment,
    MetricFact,
)

__all__ = [
    "AnalysisCacheEntry",
    "BacklogItem",
    "Brand",
    "BrandCompetitor",
    "BrandMetric",
    "BrandSentiment",
    "Citation",
    "CitationCategory",
    "CompetitorMetric",
    "CompetitorSentiment",
    "MetricFact",
]
