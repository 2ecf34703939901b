"""Ordered fallback chain: try each backend in turn, first success wins."""

from __future__ import annotations

import logging

from visibility_scoring.analysis.types import AnalysisRequest, AnalysisResult
from visibility_scoring.backends.base import AnalysisBackend
from visibility_scoring.core.errors import BackendChainError

logger = logging.getLogger(__name__)


class FallbackBackend(AnalysisBackend):
    """Evaluates backends in order; raises BackendChainError with every failure if none succeeds."""

    def __init__(self, backends: list[AnalysisBackend]):
        if not backends:
            raise ValueError("FallbackBackend needs at least one backend")
        self.backends = list(backends)
        self.name = "+".join(b.name for b in self.backends)
        self.concurrency_safe = all(b.concurrency_safe for b in self.backends)

    async def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        failures: list[tuple[str, Exception]] = []
        for backend in self.backends:
            try:
                return await backend.analyze(request)
            except Exception as e:
                logger.warning("Backend %s failed, trying next: %s", backend.name, e)
                failures.append((backend.name, e))
        raise BackendChainError(failures)
