"""Tests for the single-flight queue and the serial failure breaker."""

import asyncio

import pytest

from visibility_scoring.backends.single_flight import SingleFlightQueue, get_single_flight_queue
from visibility_scoring.pipeline.breaker import SerialFailureBreaker


class TestSingleFlightQueue:
    async def test_never_runs_concurrently_and_keeps_order(self):
        queue = SingleFlightQueue("test")
        active = 0
        max_active = 0
        order = []

        async def job(n):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            order.append(n)
            active -= 1
            return n * 10

        results = await asyncio.gather(*(queue.run(lambda n=n: job(n)) for n in range(5)))

        assert results == [0, 10, 20, 30, 40]
        assert max_active == 1
        assert order == [0, 1, 2, 3, 4]
        assert queue.completed == 5
        assert queue.queue_length == 0
        assert queue.is_busy is False

    async def test_failure_does_not_block_the_queue(self):
        queue = SingleFlightQueue("test")

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            return "ok"

        results = await asyncio.gather(queue.run(boom), queue.run(ok), return_exceptions=True)

        assert isinstance(results[0], RuntimeError)
        assert results[1] == "ok"
        assert queue.completed == 2

    async def test_queue_length_while_busy(self):
        queue = SingleFlightQueue("test")
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        first = asyncio.create_task(queue.run(blocker))
        second = asyncio.create_task(queue.run(blocker))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert queue.is_busy is True
        assert queue.queue_length == 1

        release.set()
        await asyncio.gather(first, second)
        assert queue.queue_length == 0

    async def test_cancelled_waiter_leaves_queue(self):
        queue = SingleFlightQueue("test")
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        running = asyncio.create_task(queue.run(blocker))
        waiting = asyncio.create_task(queue.run(blocker))
        await asyncio.sleep(0)
        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

        assert queue.queue_length == 0
        release.set()
        await running

    def test_process_wide_registry(self):
        assert get_single_flight_queue("local") is get_single_flight_queue("local")
        assert get_single_flight_queue("local") is not get_single_flight_queue("other")


class TestSerialFailureBreaker:
    def test_trips_once_at_threshold(self):
        breaker = SerialFailureBreaker(threshold=3)
        assert breaker.record_failure() is False
        assert breaker.record_failure() is False
        assert breaker.record_failure() is True
        assert breaker.tripped is True
        assert breaker.record_failure() is False

    def test_success_resets_consecutive_count(self):
        breaker = SerialFailureBreaker(threshold=2)
        breaker.record_failure()
        breaker.record_success()
        assert breaker.record_failure() is False
        assert breaker.consecutive_failures == 1
        assert breaker.get_stats() == {
            "consecutive_failures": 1,
            "total_failures": 2,
            "total_successes": 1,
            "tripped": False,
        }

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            SerialFailureBreaker(threshold=0)
