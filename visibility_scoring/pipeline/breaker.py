"""Circuit breaker for serialize-only backends.

Counts consecutive item failures caused by the backend while a brand is
processed in serialized mode. Reaching the threshold trips the breaker once;
the processor then disables the backend for that brand so subsequent runs
fall back to the batch-safe backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 5  # Consecutive failures before the backend is disabled


@dataclass
class _BreakerStats:
    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    tripped: bool = False


class SerialFailureBreaker:
    def __init__(self, threshold: int = FAILURE_THRESHOLD):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self._stats = _BreakerStats()

    @property
    def tripped(self) -> bool:
        return self._stats.tripped

    @property
    def consecutive_failures(self) -> int:
        return self._stats.consecutive_failures

    def record_success(self) -> None:
        self._stats.consecutive_failures = 0
        self._stats.total_successes += 1

    def record_failure(self) -> bool:
        """Count a failure. Returns True exactly when this failure trips the breaker."""
        self._stats.consecutive_failures += 1
        self._stats.total_failures += 1
        if not self._stats.tripped and self._stats.consecutive_failures >= self.threshold:
            self._stats.tripped = True
            return True
        return False

    def get_stats(self) -> dict:
        return {
            "consecutive_failures": self._stats.consecutive_failures,
            "total_failures": self._stats.total_failures,
            "total_successes": self._stats.total_successes,
            "tripped": self._stats.tripped,
        }
