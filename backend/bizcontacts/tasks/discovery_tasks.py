"""Discovery tasks."""

import logging
import uuid

from bizcontacts.tasks.celery_app import celery_app
from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.schemas.discovery import DiscoveryRequest
from bizcontacts.services import orchestrator

logger = logging.getLogger(__name__)


@celery_app.task(name="bizcontacts.tasks.discovery_tasks.run_discovery")
def run_discovery(run_id: str, request_json: dict):
    """Run one discovery to a terminal state and queue its crawl/extraction jobs."""
    db = SyncSessionLocal()
    try:
        request = DiscoveryRequest.model_validate(request_json)
        stats = orchestrator.run_discovery(db, uuid.UUID(run_id), request)
        return stats.model_dump() if stats else None
    finally:
        db.close()


def submit_discovery(request: DiscoveryRequest) -> str:
    """Create the pending run and hand it to a worker. Returns the run id."""
    db = SyncSessionLocal()
    try:
        run = orchestrator.submit_discovery(db, request)
        run_id = str(run.id)
    finally:
        db.close()

    run_discovery.delay(run_id, request.model_dump(mode="json"))
    logger.info(f"Dispatched discovery run {run_id}")
    return run_id
