"""Extraction tasks: poll for pending jobs and process them one by one."""

import logging
import uuid

from bizcontacts.tasks.celery_app import celery_app
from bizcontacts.config import get_settings
from bizcontacts.extraction.engine import ExtractionEngine
from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.services import job_store

logger = logging.getLogger(__name__)


@celery_app.task(name="bizcontacts.tasks.extraction_tasks.dispatch_extraction_jobs")
def dispatch_extraction_jobs():
    """Pending extraction jobs whose business has no crawl in flight."""
    db = SyncSessionLocal()
    try:
        job_ids = job_store.select_eligible_extraction_jobs(db, get_settings().extraction_batch_size)
    finally:
        db.close()

    if job_ids:
        extract_batch.delay([str(job_id) for job_id in job_ids])
    logger.info(f"Dispatched {len(job_ids)} extraction jobs")
    return {"dispatched": len(job_ids)}


@celery_app.task(name="bizcontacts.tasks.extraction_tasks.extract_batch")
def extract_batch(job_ids: list[str]):
    db = SyncSessionLocal()
    processed = 0
    try:
        engine = ExtractionEngine(db)
        for job_id in job_ids:
            if engine.run_job(uuid.UUID(job_id)):
                processed += 1
        if engine.places_client is not None:
            engine.places_client.close()
    finally:
        db.close()

    logger.info(f"Extraction batch: processed {processed} of {len(job_ids)}")
    return {"processed": processed}
