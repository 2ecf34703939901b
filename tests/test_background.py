"""Tests for detached background scoring runs."""

import asyncio
import logging

import pytest

from tests.conftest import FakeBackend, seed_item
from visibility_scoring.backends.registry import BackendSet
from visibility_scoring.core.errors import ConfigurationError
from visibility_scoring.pipeline.background import pending_runs, schedule_backlog_processing
from visibility_scoring.pipeline.processor import BacklogProcessor, PipelineConfig


def _processor(store, batch=None):
    return BacklogProcessor(store, BackendSet(batch=batch), config=PipelineConfig(backend_retry_delay=0))


class TestScheduleBacklogProcessing:
    async def test_returns_immediately_and_can_be_awaited(self, store, session_factory, brand):
        await seed_item(session_factory, brand)

        run = schedule_backlog_processing(_processor(store, FakeBackend()), brand.id, brand.customer_id)

        assert run.done() is False
        assert pending_runs() >= 1
        summary = await run
        assert summary.processed == 1
        assert run.done() is True
        assert run.error is None

    async def test_wait_reraises_failure(self, store, brand, caplog):
        run = schedule_backlog_processing(_processor(store), brand.id, brand.customer_id)

        with caplog.at_level(logging.ERROR, logger="visibility_scoring.pipeline.background"):
            with pytest.raises(ConfigurationError):
                await run.wait()
            await asyncio.sleep(0)

        assert isinstance(run.error, ConfigurationError)
        assert "not possible" in caplog.text

    async def test_unawaited_failure_is_logged(self, store, brand, caplog):
        class ExplodingProcessor(BacklogProcessor):
            async def process_backlog(self, *args, **kwargs):
                raise RuntimeError("store exploded")

        processor = ExplodingProcessor(store, BackendSet(batch=FakeBackend()), config=PipelineConfig())

        with caplog.at_level(logging.ERROR, logger="visibility_scoring.pipeline.background"):
            run = schedule_backlog_processing(processor, brand.id, brand.customer_id)
            while not run.done():
                await asyncio.sleep(0)
            await asyncio.sleep(0)

        assert "store exploded" in caplog.text
        assert isinstance(run.error, RuntimeError)

    async def test_cancel(self, store, brand):
        run = schedule_backlog_processing(_processor(store, FakeBackend()), brand.id, brand.customer_id)
        assert run.cancel() is True
        with pytest.raises(asyncio.CancelledError):
            await run.wait()
        assert run.error is None
