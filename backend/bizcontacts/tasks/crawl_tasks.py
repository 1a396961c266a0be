"""Crawl tasks: poll for queued jobs and crawl them in bounded batches."""

import asyncio
import logging
import uuid

from bizcontacts.tasks.celery_app import celery_app
from bizcontacts.config import get_settings
from bizcontacts.crawler.runner import run_crawl_batch
from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.services import job_store

logger = logging.getLogger(__name__)


@celery_app.task(name="bizcontacts.tasks.crawl_tasks.dispatch_crawl_jobs")
def dispatch_crawl_jobs():
    """Pick the oldest queued crawl jobs and hand them to one batch task."""
    db = SyncSessionLocal()
    try:
        job_ids = job_store.select_eligible_crawl_jobs(db, get_settings().crawl_batch_size)
    finally:
        db.close()

    if job_ids:
        crawl_batch.delay([str(job_id) for job_id in job_ids])
    logger.info(f"Dispatched {len(job_ids)} crawl jobs")
    return {"dispatched": len(job_ids)}


@celery_app.task(name="bizcontacts.tasks.crawl_tasks.crawl_batch")
def crawl_batch(job_ids: list[str]):
    """Crawl a batch of jobs sharing one browser. Jobs claimed elsewhere are skipped."""
    ids = [uuid.UUID(job_id) for job_id in job_ids]
    counts = asyncio.run(run_crawl_batch(SyncSessionLocal, ids))
    logger.info(f"Crawl batch finished: {counts}")
    return counts
