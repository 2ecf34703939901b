"""Single-flight queue: a process-wide FIFO serializer for backends that must
never receive concurrent calls (e.g. a locally hosted model).

asyncio.Lock wakes waiters in FIFO order, so calls run strictly one at a time
in submission order. Queues are process-global and keyed by name; a queue
rebinds itself to the running event loop when idle, so Celery tasks that
create a fresh loop per run can share it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlightQueue:
    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._waiting = 0
        self._running = False
        self.completed = 0

    @property
    def queue_length(self) -> int:
        """Calls waiting for their turn (not counting the running one)."""
        return self._waiting

    @property
    def is_busy(self) -> bool:
        return self._running

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is not loop and not self._running and self._waiting == 0:
            self._lock = asyncio.Lock()
            self._loop = loop

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` once every previously submitted call has finished."""
        self._bind_loop()
        self._waiting += 1
        if self._waiting > 1 or self._running:
            logger.debug("Queue %s: waiting (%d ahead)", self.name, self._waiting - 1 + int(self._running))
        acquired = False
        try:
            async with self._lock:
                self._waiting -= 1
                acquired = True
                self._running = True
                try:
                    return await operation()
                finally:
                    self._running = False
                    self.completed += 1
        finally:
            if not acquired:
                self._waiting -= 1


_queues: dict[str, SingleFlightQueue] = {}


def get_single_flight_queue(name: str) -> SingleFlightQueue:
    """The process-wide queue for ``name`` (created on first use)."""
    queue = _queues.get(name)
    if queue is None:
        queue = _queues[name] = SingleFlightQueue(name)
    return queue
