"""Maintenance tasks: stale job recovery."""

import logging
from datetime import timedelta

from bizcontacts.tasks.celery_app import celery_app
from bizcontacts.config import get_settings
from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.services import job_store

logger = logging.getLogger(__name__)


@celery_app.task(name="bizcontacts.tasks.maintenance_tasks.fail_stale_jobs")
def fail_stale_jobs():
    """Fail crawl jobs, extraction jobs and discovery runs left running by a lost worker."""
    db = SyncSessionLocal()
    try:
        result = job_store.fail_stale_jobs(db, timedelta(minutes=get_settings().stale_job_minutes))
        logger.info(f"Stale job sweep: {result}")
        return result
    finally:
        db.close()
