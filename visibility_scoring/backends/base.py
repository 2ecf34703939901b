"""Base class for analysis backends."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from visibility_scoring.analysis.types import AnalysisRequest, AnalysisResult
from visibility_scoring.core.metrics import BACKEND_CALLS, BACKEND_LATENCY

logger = logging.getLogger(__name__)


class AnalysisBackend(ABC):
    """Extracts products, scores sentiment and categorizes citations for one answer.

    ``concurrency_safe`` tells the pipeline whether the backend may receive
    concurrent calls (batch mode) or must be driven one item at a time.
    """

    name: str = "backend"
    concurrency_safe: bool = True

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Analyze one answer, recording call metrics."""
        start = time.monotonic()
        try:
            result = await self._analyze(request)
        except Exception:
            BACKEND_CALLS.labels(backend=self.name, outcome="failure").inc()
            raise
        finally:
            BACKEND_LATENCY.labels(backend=self.name).observe(time.monotonic() - start)
        BACKEND_CALLS.labels(backend=self.name, outcome="success").inc()
        return result

    @abstractmethod
    async def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Transport-specific implementation."""
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
