"""Prometheus metrics for the scoring pipeline."""

from prometheus_client import Counter, Histogram

ITEMS_SCORED = Counter(
    "scoring_items_total",
    "Backlog items that finished a scoring attempt",
    ["mode", "outcome"],
)

PHASE_FAILURES = Counter(
    "scoring_phase_failures_total",
    "Per-item phase failures",
    ["phase"],
)

CACHE_LOOKUPS = Counter(
    "scoring_cache_lookups_total",
    "Analysis and citation cache lookups",
    ["cache", "result"],  # result: hit | miss
)

BACKEND_CALLS = Counter(
    "scoring_backend_calls_total",
    "Analysis backend invocations",
    ["backend", "outcome"],
)

BACKEND_LATENCY = Histogram(
    "scoring_backend_call_seconds",
    "Analysis backend call duration in seconds",
    ["backend"],
    buckets=[0.5, 1, 2.5, 5, 10, 30, 60, 120, 300],
)

BREAKER_TRIPS = Counter(
    "scoring_backend_disabled_total",
    "Serial backends disabled for a brand after repeated failures",
    ["backend"],
)

ITEMS_REAPED = Counter(
    "scoring_items_reaped_total",
    "Stuck processing items moved to a terminal status",
    ["status"],
)
