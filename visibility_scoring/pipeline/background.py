"""Detached background scoring runs.

schedule_backlog_processing() starts process_backlog() as an asyncio task and
returns immediately. The returned handle is the completion signal: callers
may ``await`` it (getting the summary or the run's exception) or ignore it.
Either way a failed run is logged through the same error taxonomy as a
foreground run, and the task is kept referenced until it finishes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime

from visibility_scoring.analysis.types import ProcessingSummary
from visibility_scoring.core.errors import ConfigurationError
from visibility_scoring.pipeline.processor import BacklogProcessor

logger = logging.getLogger(__name__)

# Strong references: the event loop only keeps weak references to tasks
_running: set[asyncio.Task] = set()


class BackgroundRun:
    """Handle for one detached process_backlog() run."""

    def __init__(self, task: asyncio.Task, brand_id: uuid.UUID):
        self.task = task
        self.brand_id = brand_id

    def done(self) -> bool:
        return self.task.done()

    @property
    def error(self) -> BaseException | None:
        if not self.task.done() or self.task.cancelled():
            return None
        return self.task.exception()

    async def wait(self) -> ProcessingSummary:
        """Wait for completion; re-raises the run's exception if it failed."""
        return await asyncio.shield(self.task)

    def __await__(self):
        return self.wait().__await__()

    def cancel(self) -> bool:
        return self.task.cancel()


def _log_outcome(task: asyncio.Task, brand_id: uuid.UUID) -> None:
    _running.discard(task)
    if task.cancelled():
        logger.info("Background scoring for brand %s was cancelled", brand_id)
        return

    exc = task.exception()
    if exc is None:
        summary: ProcessingSummary = task.result()
        if summary.errors:
            logger.warning(
                "Background scoring for brand %s finished with %d item errors (processed=%d)",
                brand_id,
                len(summary.errors),
                summary.processed,
            )
        return

    if isinstance(exc, ConfigurationError):
        logger.error("Background scoring for brand %s not possible: %s", brand_id, exc)
    else:
        logger.error("Background scoring for brand %s failed: %s", brand_id, exc, exc_info=exc)


def schedule_backlog_processing(
    processor: BacklogProcessor,
    brand_id: uuid.UUID,
    customer_id: uuid.UUID,
    *,
    since: datetime | None = None,
    limit: int | None = None,
) -> BackgroundRun:
    """Start scoring a brand's backlog without blocking the caller. Requires a running loop."""
    task = asyncio.get_running_loop().create_task(
        processor.process_backlog(brand_id, customer_id, since=since, limit=limit),
        name=f"score-backlog-{brand_id}",
    )
    _running.add(task)
    task.add_done_callback(lambda t: _log_outcome(t, brand_id))
    logger.info("Scheduled background scoring for brand %s", brand_id)
    return BackgroundRun(task, brand_id)


def pending_runs() -> int:
    """Number of background runs still in flight in this process."""
    return len(_running)
