"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from bizcontacts.config import get_settings

settings = get_settings()

celery_app = Celery(
    "bizcontacts",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "bizcontacts.tasks.discovery_tasks",
        "bizcontacts.tasks.crawl_tasks",
        "bizcontacts.tasks.extraction_tasks",
        "bizcontacts.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Athens",
    task_track_started=True,
    task_time_limit=1800,
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "dispatch-crawl-jobs": {
        "task": "bizcontacts.tasks.crawl_tasks.dispatch_crawl_jobs",
        "schedule": crontab(minute="*"),
    },
    "dispatch-extraction-jobs": {
        "task": "bizcontacts.tasks.extraction_tasks.dispatch_extraction_jobs",
        "schedule": crontab(minute="*"),
    },
    "fail-stale-jobs": {
        "task": "bizcontacts.tasks.maintenance_tasks.fail_stale_jobs",
        "schedule": crontab(minute="*/15"),
    },
}
