"""Discovery orchestration: dataset resolution, the run boundary, and follow-up jobs."""

import logging
import uuid

from sqlalchemy.orm import Session

from bizcontacts.errors import InvalidTransition
from bizcontacts.models.business import Business
from bizcontacts.models.dataset import Dataset
from bizcontacts.models.discovery_run import DiscoveryRun
from bizcontacts.schemas.discovery import DiscoveryRequest, DiscoveryStats
from bizcontacts.services import job_store
from bizcontacts.services.cost_estimates import build_cost_estimates
from bizcontacts.services.industries import expand_industry_group

logger = logging.getLogger(__name__)


def resolve_dataset(db: Session, request: DiscoveryRequest) -> Dataset:
    """An explicit dataset id wins; otherwise reuse or create one per (user, location, industry)."""
    if request.dataset_id:
        dataset = db.get(Dataset, request.dataset_id)
        if dataset is None:
            raise LookupError(f"Dataset {request.dataset_id} not found")
        return dataset

    dataset = db.query(Dataset).filter(
        Dataset.user_id == request.user_id,
        Dataset.location_key == request.location_key,
        Dataset.industry_key == request.industry_key,
    ).first()
    if dataset:
        return dataset

    dataset = Dataset(
        id=uuid.uuid4(),
        user_id=request.user_id,
        name=f"{request.industry_key} @ {request.location_key}"[:255],
        location_key=request.location_key,
        industry_key=request.industry_key,
    )
    db.add(dataset)
    db.commit()
    logger.info(f"Created dataset {dataset.id} ({dataset.name}) for user {request.user_id}")
    return dataset


def submit_discovery(db: Session, request: DiscoveryRequest) -> DiscoveryRun:
    """Resolve the dataset and create a pending run. The caller dispatches run_discovery."""
    dataset = resolve_dataset(db, request)
    return job_store.create_discovery_run(db, dataset.id, request.user_id, request.industry_group_id)


def enqueue_followup_jobs(db: Session, run_id: uuid.UUID) -> dict:
    """Crawl jobs for businesses with a website, extraction jobs for incomplete ones."""
    businesses = db.query(Business).filter(Business.discovery_run_id == run_id).all()
    crawls = 0
    extractions = 0
    for business in businesses:
        if business.website_url and business.website_url.strip():
            if job_store.enqueue_crawl_job(db, business, business.website_url):
                crawls += 1
        if not (business.email and business.phone):
            job_store.ensure_extraction_job(db, business.id)
            extractions += 1
    db.commit()
    logger.info(f"Run {run_id}: queued {crawls} crawl jobs, ensured {extractions} extraction jobs")
    return {"crawl_jobs": crawls, "extraction_jobs": extractions}


def run_discovery(db: Session, run_id: uuid.UUID, request: DiscoveryRequest, client=None) -> DiscoveryStats | None:
    """Execute one discovery run end to end.

    Any exception reaching this boundary marks the run failed with its
    message; the run is never left running. Follow-up jobs are queued
    before cost_estimates is stored, so a stored estimate means the run
    only waits on extraction. Returns None on failure.
    """
    # Import discovery package to trigger @register_source decorators
    import bizcontacts.discovery  # noqa: F401
    from bizcontacts.discovery.sources import get_source_class, list_sources

    try:
        run = job_store.start_discovery_run(db, run_id)
        dataset = db.get(Dataset, run.dataset_id)

        request = expand_industry_group(db, request)
        source_name = request.source_name
        source_class = get_source_class(source_name)
        if not source_class:
            raise ValueError(f"No discovery source registered: {source_name} (known: {list_sources()})")

        kwargs = {"client": client} if client is not None else {}
        source = source_class(request, db, run, dataset, **kwargs)
        stats = source.run()

        enqueue_followup_jobs(db, run_id)

        businesses = db.query(Business).filter(Business.discovery_run_id == run_id).all()
        run = db.get(DiscoveryRun, run_id)
        run.cost_estimates = build_cost_estimates(businesses).model_dump()
        db.commit()

        job_store.complete_discovery_run_if_done(db, run_id)
        logger.info(f"Discovery run {run_id} finished discovery: {stats.model_dump()}")
        return stats

    except InvalidTransition as e:
        # Redelivered task: the first worker either finished the run or died mid-run
        db.rollback()
        logger.warning(f"Discovery run {run_id} not started: {e}")
        if job_store.recover_discovery_run(db, run_id, "Discovery worker lost before the run finished"):
            logger.warning(f"Discovery run {run_id} settled after redelivery")
        return None

    except Exception as e:
        db.rollback()
        job_store.fail_discovery_run(db, run_id, str(e) or e.__class__.__name__)
        logger.exception(f"Discovery run {run_id} failed: {e}")
        return None
