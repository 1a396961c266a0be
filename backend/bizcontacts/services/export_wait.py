"""Wait for a dataset's crawl and extraction jobs before exporting it.

Bounded, cancellable polling: returns when no job is active, when the
maximum wait elapses (the export then proceeds with whatever data exists),
or as soon as the stop event is set.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func, select

from bizcontacts.config import get_settings
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.dataset import dataset_businesses
from bizcontacts.models.extraction_job import ExtractionJob
from bizcontacts.models.job_status import ACTIVE_CRAWL, ACTIVE_EXTRACTION

logger = logging.getLogger(__name__)


@dataclass
class WaitResult:
    completed: bool
    timed_out: bool
    cancelled: bool
    active_crawl: int
    active_extraction: int
    waited_seconds: float


def count_active_jobs(db, dataset_id: uuid.UUID) -> tuple[int, int]:
    """(active crawl jobs, active extraction jobs) for businesses in the dataset."""
    in_dataset = select(dataset_businesses.c.business_id).where(dataset_businesses.c.dataset_id == dataset_id)
    crawl = db.execute(
        select(func.count(CrawlJob.id)).where(
            CrawlJob.business_id.in_(in_dataset),
            CrawlJob.status.in_(list(ACTIVE_CRAWL)),
        )
    ).scalar_one()
    extraction = db.execute(
        select(func.count(ExtractionJob.id)).where(
            ExtractionJob.business_id.in_(in_dataset),
            ExtractionJob.status.in_(list(ACTIVE_EXTRACTION)),
        )
    ).scalar_one()
    return crawl, extraction


def wait_for_dataset_jobs(
    session_factory,
    dataset_id: uuid.UUID,
    max_wait_seconds: float | None = None,
    poll_interval_seconds: float | None = None,
    stop_event: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> WaitResult:
    settings = get_settings()
    if max_wait_seconds is None:
        max_wait_seconds = settings.export_wait_max_seconds
    if poll_interval_seconds is None:
        poll_interval_seconds = settings.export_wait_poll_seconds
    stop_event = stop_event or threading.Event()

    started = clock()
    while True:
        db = session_factory()
        try:
            crawl, extraction = count_active_jobs(db, dataset_id)
        finally:
            db.close()

        waited = clock() - started
        logger.info(
            f"[export {dataset_id}] {crawl} crawl / {extraction} extraction jobs active "
            f"after {waited:.0f}s"
        )

        if crawl == 0 and extraction == 0:
            return WaitResult(True, False, False, 0, 0, waited)
        if waited >= max_wait_seconds:
            logger.warning(f"[export {dataset_id}] Wait limit {max_wait_seconds}s reached, exporting available data")
            return WaitResult(False, True, False, crawl, extraction, waited)

        # Event.wait doubles as the sleep and the cancellation check
        remaining = max_wait_seconds - waited
        if stop_event.wait(min(poll_interval_seconds, remaining)):
            logger.info(f"[export {dataset_id}] Wait cancelled")
            return WaitResult(False, False, True, crawl, extraction, clock() - started)
