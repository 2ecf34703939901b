from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from visibility_scoring.core.config import settings
from visibility_scoring.core.logging import setup_logging
from visibility_scoring.core.sentry import init_sentry

celery_app = Celery(
    "visibility_scoring",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

# Celery Beat schedule: the dispatcher enqueues score_brand for every brand
# with claimable backlog; the reaper sweeps items stuck in processing.
celery_app.conf.beat_schedule = {
    "dispatch-scoring": {
        "task": "dispatch_scoring",
        "schedule": crontab(minute=f"*/{settings.dispatch_interval_minutes}"),
    },
    "reap-stuck-scoring": {
        "task": "reap_stuck_scoring",
        "schedule": crontab(minute=f"*/{settings.reaper_interval_minutes}"),
    },
}

celery_app.conf.include = [
    "visibility_scoring.tasks.scoring_tasks",
]


@worker_process_init.connect
def _init_worker(**kwargs):
    setup_logging()
    init_sentry()
