"""JobClaimCoordinator: the only writer of backlog scoring status.

State machine per backlog item:

    unset / pending / error / timeout ──claim──▶ processing
    processing ──complete──▶ completed
    processing ──fail──────▶ error | timeout   (timeout iff the message speaks of timeouts/aborts)
    processing ──reap──────▶ timeout (stuck > short threshold) | error (stuck > long threshold)

Every transition is a compare-and-set on the backlog row, so there is no
external lock manager: a claim that changes zero rows was lost to another
worker and the caller moves on to the next candidate.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from visibility_scoring.analysis.types import CLAIMABLE_STATUSES, BacklogRecord, ReapResult, ScoringStatus
from visibility_scoring.core.errors import is_timeout_message
from visibility_scoring.core.metrics import ITEMS_REAPED
from visibility_scoring.store.base import ResultStore

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobClaimCoordinator:
    """Claims, completes, fails and reaps backlog items through conditional updates."""

    def __init__(
        self,
        store: ResultStore,
        *,
        stuck_timeout: timedelta = timedelta(hours=2),
        stuck_error: timedelta = timedelta(hours=8),
        clock: Callable[[], datetime] = _utcnow,
    ):
        if stuck_error <= stuck_timeout:
            raise ValueError("stuck_error threshold must be longer than stuck_timeout")
        self._store = store
        self._stuck_timeout = stuck_timeout
        self._stuck_error = stuck_error
        self._clock = clock

    @staticmethod
    def is_claimable(status: ScoringStatus | None) -> bool:
        return status in CLAIMABLE_STATUSES

    async def claim(self, item: BacklogRecord) -> bool:
        """Move ``item`` to processing if nobody touched it since it was read.

        Returns False when the item is not claimable or another worker won.
        """
        if not self.is_claimable(item.scoring_status):
            return False
        won = await self._store.compare_and_set_status(
            item.id,
            {item.scoring_status},
            ScoringStatus.PROCESSING,
            started_at=self._clock(),
        )
        if not won:
            logger.debug("Claim lost for item %s (status changed since read)", item.id)
        return won

    async def complete(self, item_id: int) -> bool:
        """processing → completed; clears any previous error."""
        done = await self._store.compare_and_set_status(
            item_id,
            {ScoringStatus.PROCESSING},
            ScoringStatus.COMPLETED,
            completed_at=self._clock(),
            error=None,
        )
        if not done:
            logger.warning("Item %s was no longer processing when marked complete", item_id)
        return done

    async def fail(self, item_id: int, message: str) -> ScoringStatus | None:
        """processing → timeout or error. Returns the status written, None if the item was not ours."""
        status = ScoringStatus.TIMEOUT if is_timeout_message(message) else ScoringStatus.ERROR
        done = await self._store.compare_and_set_status(
            item_id,
            {ScoringStatus.PROCESSING},
            status,
            error=(message or "Unknown error")[:MAX_ERROR_LENGTH],
        )
        if not done:
            logger.warning("Item %s was no longer processing when marked %s", item_id, status.value)
            return None
        return status

    async def reap_stuck_items(self, brand_id: uuid.UUID | None = None) -> ReapResult:
        """Sweep items stuck in processing: long stalls → error, short stalls → timeout."""
        now = self._clock()
        errored = await self._store.reap_processing(
            now - self._stuck_error,
            ScoringStatus.ERROR,
            f"Processing failed (stuck for > {_hours(self._stuck_error)} hours)",
            brand_id=brand_id,
        )
        timed_out = await self._store.reap_processing(
            now - self._stuck_timeout,
            ScoringStatus.TIMEOUT,
            f"Processing timed out (stuck for > {_hours(self._stuck_timeout)} hours)",
            brand_id=brand_id,
        )
        result = ReapResult(timed_out=timed_out, errored=errored)
        if result.total:
            ITEMS_REAPED.labels(status="error").inc(errored)
            ITEMS_REAPED.labels(status="timeout").inc(timed_out)
            logger.warning(
                "Reaped stuck items%s: %d → timeout, %d → error",
                f" for brand {brand_id}" if brand_id else "",
                timed_out,
                errored,
            )
        return result


def _hours(delta: timedelta) -> str:
    hours = delta.total_seconds() / 3600
    return f"{hours:g}"
