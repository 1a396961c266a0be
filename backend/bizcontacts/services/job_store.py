"""Job store: status transitions for discovery runs, crawl jobs and extraction jobs.

Every cross-worker state change is a conditional UPDATE whose WHERE clause
only matches the legal source state. A caller learns whether it won by
looking at the affected row count; a loser simply skips the job.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import String, and_, case, cast, exists, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from bizcontacts.config import get_settings
from bizcontacts.models.business import Business
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.discovery_run import DiscoveryRun
from bizcontacts.models.extraction_job import ExtractionJob
from bizcontacts.models.job_status import (
    ACTIVE_CRAWL,
    ACTIVE_EXTRACTION,
    CRAWL_TRANSITIONS,
    EXTRACTION_TRANSITIONS,
    RUN_TRANSITIONS,
    CrawlJobStatus,
    ExtractionJobStatus,
    RunStatus,
    check_transition,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def dialect_insert(db: Session, model):
    """Dialect insert that supports ON CONFLICT (PostgreSQL in production, SQLite in tests)."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# --- Discovery runs ---------------------------------------------------------

def create_discovery_run(
    db: Session,
    dataset_id: uuid.UUID,
    user_id: str | None,
    industry_group_id: uuid.UUID | None = None,
) -> DiscoveryRun:
    run = DiscoveryRun(
        id=uuid.uuid4(),
        dataset_id=dataset_id,
        user_id=user_id,
        industry_group_id=industry_group_id,
        status=RunStatus.PENDING,
    )
    db.add(run)
    db.commit()
    logger.info(f"Created discovery run {run.id} for dataset {dataset_id}")
    return run


def start_discovery_run(db: Session, run_id: uuid.UUID) -> DiscoveryRun:
    """pending -> running, stamping started_at before any external call."""
    run = db.get(DiscoveryRun, run_id)
    if run is None:
        raise LookupError(f"Discovery run {run_id} not found")
    check_transition("discovery_run", RUN_TRANSITIONS, run.status, RunStatus.RUNNING)
    run.status = RunStatus.RUNNING
    run.started_at = _now()
    db.commit()
    return run


def fail_discovery_run(db: Session, run_id: uuid.UUID, message: str) -> bool:
    """Mark a non-terminal run failed. started_at is back-filled when it was never set."""
    now = _now()
    result = db.execute(
        update(DiscoveryRun)
        .where(
            DiscoveryRun.id == run_id,
            DiscoveryRun.status.in_([RunStatus.PENDING, RunStatus.RUNNING]),
        )
        .values(
            status=RunStatus.FAILED,
            error_message=message[:2000],
            started_at=func.coalesce(DiscoveryRun.started_at, now),
            completed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def complete_discovery_run_if_done(db: Session, run_id: uuid.UUID) -> bool:
    """Close the run once none of its extraction jobs is pending or running.

    One UPDATE ... WHERE NOT EXISTS, so two jobs finishing at the same time
    can neither both close the run nor both miss it. The run ends failed
    when any of its extraction jobs failed. Returns True when this call
    closed the run.
    """
    run_jobs = and_(
        ExtractionJob.business_id == Business.id,
        Business.discovery_run_id == run_id,
    )
    still_active = exists().where(run_jobs, ExtractionJob.status.in_(list(ACTIVE_EXTRACTION)))
    failed_count = (
        select(func.count(ExtractionJob.id))
        .where(run_jobs, ExtractionJob.status == ExtractionJobStatus.FAILED)
        .scalar_subquery()
    )

    result = db.execute(
        update(DiscoveryRun)
        .where(
            DiscoveryRun.id == run_id,
            DiscoveryRun.status == RunStatus.RUNNING,
            ~still_active,
        )
        .values(
            status=case((failed_count > 0, RunStatus.FAILED.value), else_=RunStatus.COMPLETED.value),
            error_message=case(
                (failed_count > 0, cast(failed_count, String) + " extraction job(s) failed"),
                else_=None,
            ),
            completed_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    closed = result.rowcount == 1
    if closed:
        logger.info(f"Discovery run {run_id} closed")
    return closed


def recover_discovery_run(db: Session, run_id: uuid.UUID, message: str) -> bool:
    """Settle a running run whose discovery worker was lost.

    cost_estimates is written only after the follow-up jobs are queued, so a
    run that has it closes through the normal completion check; one without
    it never finished discovery and fails. Returns True when the run closed.
    """
    run = db.get(DiscoveryRun, run_id, populate_existing=True)
    if run is None or run.status != RunStatus.RUNNING:
        return False
    if run.cost_estimates is not None:
        return complete_discovery_run_if_done(db, run_id)
    closed = fail_discovery_run(db, run_id, message)
    if closed:
        logger.warning(f"Discovery run {run_id} failed: {message}")
    return closed


# --- Crawl jobs -------------------------------------------------------------

def enqueue_crawl_job(
    db: Session,
    business: Business,
    website_url: str,
    pages_limit: int | None = None,
) -> CrawlJob | None:
    """Queue a crawl unless the business already has an active one. Caller commits."""
    if not website_url or not website_url.strip():
        return None

    active = db.execute(
        select(CrawlJob.id).where(
            CrawlJob.business_id == business.id,
            CrawlJob.status.in_(list(ACTIVE_CRAWL)),
        ).limit(1)
    ).scalar_one_or_none()
    if active is not None:
        return None

    job = CrawlJob(
        id=uuid.uuid4(),
        business_id=business.id,
        website_url=website_url.strip(),
        status=CrawlJobStatus.QUEUED,
        pages_crawled=0,
        pages_limit=pages_limit or get_settings().crawl_pages_limit,
    )
    db.add(job)
    db.flush()
    return job


def claim_crawl_job(db: Session, job_id: uuid.UUID) -> bool:
    """queued -> running. Exactly one concurrent caller gets True."""
    check_transition("crawl_job", CRAWL_TRANSITIONS, CrawlJobStatus.QUEUED, CrawlJobStatus.RUNNING)
    result = db.execute(
        update(CrawlJob)
        .where(CrawlJob.id == job_id, CrawlJob.status == CrawlJobStatus.QUEUED)
        .values(status=CrawlJobStatus.RUNNING, started_at=_now(), error_message=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def finish_crawl_job(
    db: Session,
    job_id: uuid.UUID,
    status: CrawlJobStatus,
    pages_crawled: int = 0,
    error_message: str | None = None,
) -> bool:
    """running -> success/failed. Ignored when the job is no longer running."""
    check_transition("crawl_job", CRAWL_TRANSITIONS, CrawlJobStatus.RUNNING, status)
    result = db.execute(
        update(CrawlJob)
        .where(CrawlJob.id == job_id, CrawlJob.status == CrawlJobStatus.RUNNING)
        .values(
            status=status,
            pages_crawled=pages_crawled,
            error_message=error_message[:2000] if error_message else None,
            completed_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# --- Extraction jobs --------------------------------------------------------

def ensure_extraction_job(db: Session, business_id: uuid.UUID) -> None:
    """Insert a pending extraction job if the business has none. Caller commits."""
    stmt = dialect_insert(db, ExtractionJob).values(
        id=uuid.uuid4(),
        business_id=business_id,
        status=ExtractionJobStatus.PENDING,
    )
    db.execute(stmt.on_conflict_do_nothing(index_elements=["business_id"]))


def reset_extraction_job(db: Session, business_id: uuid.UUID) -> None:
    """Upsert the business's extraction job back to pending. Caller commits.

    Runs after every crawl so extraction sees the fresh pages, even when a
    previous extraction already finished.
    """
    stmt = dialect_insert(db, ExtractionJob).values(
        id=uuid.uuid4(),
        business_id=business_id,
        status=ExtractionJobStatus.PENDING,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["business_id"],
        set_={
            "status": ExtractionJobStatus.PENDING.value,
            "error_message": None,
            "started_at": None,
            "completed_at": None,
            "updated_at": _now(),
        },
    )
    db.execute(stmt)


def _no_active_crawl(business_id_col):
    return ~exists().where(
        CrawlJob.business_id == business_id_col,
        CrawlJob.status.in_(list(ACTIVE_CRAWL)),
    )


def claim_extraction_job(db: Session, job_id: uuid.UUID) -> bool:
    """pending -> running, only while the business has no queued or running crawl."""
    check_transition("extraction_job", EXTRACTION_TRANSITIONS, ExtractionJobStatus.PENDING, ExtractionJobStatus.RUNNING)
    result = db.execute(
        update(ExtractionJob)
        .where(
            ExtractionJob.id == job_id,
            ExtractionJob.status == ExtractionJobStatus.PENDING,
            _no_active_crawl(ExtractionJob.business_id),
        )
        .values(status=ExtractionJobStatus.RUNNING, started_at=_now(), error_message=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def finish_extraction_job(
    db: Session,
    job_id: uuid.UUID,
    status: ExtractionJobStatus,
    error_message: str | None = None,
) -> bool:
    """running -> success/failed.

    A job that was reset to pending while running (a crawl finished
    meanwhile) is left pending so it runs again against the new pages.
    """
    check_transition("extraction_job", EXTRACTION_TRANSITIONS, ExtractionJobStatus.RUNNING, status)
    result = db.execute(
        update(ExtractionJob)
        .where(ExtractionJob.id == job_id, ExtractionJob.status == ExtractionJobStatus.RUNNING)
        .values(
            status=status,
            error_message=error_message[:2000] if error_message else None,
            completed_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# --- Polling ----------------------------------------------------------------

def select_eligible_crawl_jobs(db: Session, limit: int) -> list[uuid.UUID]:
    return list(db.execute(
        select(CrawlJob.id)
        .where(CrawlJob.status == CrawlJobStatus.QUEUED)
        .order_by(CrawlJob.created_at)
        .limit(limit)
    ).scalars())


def select_eligible_extraction_jobs(db: Session, limit: int) -> list[uuid.UUID]:
    return list(db.execute(
        select(ExtractionJob.id)
        .where(
            ExtractionJob.status == ExtractionJobStatus.PENDING,
            _no_active_crawl(ExtractionJob.business_id),
        )
        .order_by(ExtractionJob.created_at)
        .limit(limit)
    ).scalars())


def fail_stale_jobs(db: Session, max_age: timedelta) -> dict:
    """Fail crawl and extraction jobs stuck in running longer than max_age.

    A stale crawl re-arms extraction like any finished crawl; a stale
    extraction re-checks its run for completion. Discovery runs still
    running past max_age with no active extraction job are settled last.
    """
    cutoff = _now() - max_age
    message = f"Job exceeded {int(max_age.total_seconds() // 60)} minutes in running state (worker lost)"

    stale_crawls = db.execute(
        select(CrawlJob.id, CrawlJob.business_id, CrawlJob.pages_crawled)
        .where(CrawlJob.status == CrawlJobStatus.RUNNING, CrawlJob.started_at < cutoff)
    ).all()
    crawl_failed = 0
    for job_id, business_id, pages in stale_crawls:
        if finish_crawl_job(db, job_id, CrawlJobStatus.FAILED, pages or 0, message):
            reset_extraction_job(db, business_id)
            db.commit()
            crawl_failed += 1

    stale_extractions = db.execute(
        select(ExtractionJob.id, Business.discovery_run_id)
        .join(Business, Business.id == ExtractionJob.business_id)
        .where(ExtractionJob.status == ExtractionJobStatus.RUNNING, ExtractionJob.started_at < cutoff)
    ).all()
    extraction_failed = 0
    for job_id, run_id in stale_extractions:
        if finish_extraction_job(db, job_id, ExtractionJobStatus.FAILED, message):
            extraction_failed += 1
            if run_id:
                complete_discovery_run_if_done(db, run_id)

    run_has_active_extraction = exists().where(
        ExtractionJob.business_id == Business.id,
        Business.discovery_run_id == DiscoveryRun.id,
        ExtractionJob.status.in_(list(ACTIVE_EXTRACTION)),
    )
    stale_runs = db.execute(
        select(DiscoveryRun.id)
        .where(
            DiscoveryRun.status == RunStatus.RUNNING,
            DiscoveryRun.started_at < cutoff,
            ~run_has_active_extraction,
        )
    ).scalars().all()
    run_message = (
        f"Discovery run exceeded {int(max_age.total_seconds() // 60)} minutes without finishing (worker lost)"
    )
    runs_settled = 0
    for run_id in stale_runs:
        if recover_discovery_run(db, run_id, run_message):
            runs_settled += 1

    if crawl_failed or extraction_failed or runs_settled:
        logger.warning(
            f"Stale sweep: {crawl_failed} crawl failed, {extraction_failed} extraction failed, "
            f"{runs_settled} discovery runs settled"
        )
    return {"crawl_failed": crawl_failed, "extraction_failed": extraction_failed, "runs_settled": runs_settled}
