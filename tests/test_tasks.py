"""Tests for the Celery scoring tasks."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from tests.conftest import FakeBackend, load_item, seed_brand, seed_item
from visibility_scoring.backends.registry import BackendSet
from visibility_scoring.tasks.celery_app import celery_app
from visibility_scoring.tasks.scoring_tasks import (
    _find_brands_with_backlog,
    _reap_stuck_async,
    _score_brand_async,
    dispatch_scoring_task,
)


def _factory(session_factory):
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return session_factory, engine


async def test_score_brand_returns_summary(session_factory, brand):
    item_id = await seed_item(session_factory, brand)
    factory, engine = _factory(session_factory)

    with (
        patch("visibility_scoring.tasks.scoring_tasks._make_session_factory", return_value=(factory, engine)),
        patch("visibility_scoring.tasks.scoring_tasks.build_backends", return_value=BackendSet(batch=FakeBackend())),
    ):
        result = await _score_brand_async(str(brand.id), str(brand.customer_id))

    assert result["processed"] == 1
    assert result["mode"] == "batch"
    assert result["errors"] == []
    assert (await load_item(session_factory, item_id)).scoring_status == "completed"
    engine.dispose.assert_awaited_once()


async def test_find_brands_with_backlog(session_factory, brand):
    done = await seed_brand(session_factory, name="Done")
    await seed_item(session_factory, brand)
    await seed_item(session_factory, done, status="completed")

    with patch(
        "visibility_scoring.tasks.scoring_tasks._make_session_factory",
        return_value=_factory(session_factory),
    ):
        pairs = await _find_brands_with_backlog()

    assert pairs == [(str(brand.id), str(brand.customer_id))]


async def test_reap_stuck(session_factory, brand):
    stuck = await seed_item(
        session_factory, brand, status="processing", started_at=datetime.now(timezone.utc) - timedelta(hours=9)
    )

    with patch(
        "visibility_scoring.tasks.scoring_tasks._make_session_factory",
        return_value=_factory(session_factory),
    ):
        result = await _reap_stuck_async()

    assert result == {"timed_out": 0, "errored": 1}
    assert (await load_item(session_factory, stuck)).scoring_status == "error"


def test_dispatch_enqueues_each_brand():
    pairs = [("b1", "c1"), ("b2", "c2")]
    with (
        patch("visibility_scoring.tasks.scoring_tasks._find_brands_with_backlog", new=MagicMock()),
        patch("visibility_scoring.tasks.scoring_tasks._run_async", return_value=pairs),
        patch("visibility_scoring.tasks.scoring_tasks.score_brand_task") as score_brand,
    ):
        assert dispatch_scoring_task() == 2

    assert [c.args for c in score_brand.delay.call_args_list] == pairs


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule
    assert schedule["dispatch-scoring"]["task"] == "dispatch_scoring"
    assert schedule["reap-stuck-scoring"]["task"] == "reap_stuck_scoring"
