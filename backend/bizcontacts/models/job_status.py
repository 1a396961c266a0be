"""Status enums and allowed transitions for each job kind."""

import enum

from sqlalchemy import Enum

from bizcontacts.errors import InvalidTransition


class RunStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CrawlJobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class ExtractionJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


RUN_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}

CRAWL_TRANSITIONS = {
    CrawlJobStatus.QUEUED: {CrawlJobStatus.RUNNING, CrawlJobStatus.FAILED},
    CrawlJobStatus.RUNNING: {CrawlJobStatus.SUCCESS, CrawlJobStatus.FAILED},
    CrawlJobStatus.SUCCESS: {CrawlJobStatus.QUEUED},
    CrawlJobStatus.FAILED: {CrawlJobStatus.QUEUED},
}

# Any state may go back to pending: a finished crawl always re-arms extraction.
EXTRACTION_TRANSITIONS = {
    ExtractionJobStatus.PENDING: {ExtractionJobStatus.RUNNING, ExtractionJobStatus.PENDING},
    ExtractionJobStatus.RUNNING: {
        ExtractionJobStatus.SUCCESS,
        ExtractionJobStatus.FAILED,
        ExtractionJobStatus.PENDING,
    },
    ExtractionJobStatus.SUCCESS: {ExtractionJobStatus.PENDING},
    ExtractionJobStatus.FAILED: {ExtractionJobStatus.PENDING},
}

ACTIVE_CRAWL = {CrawlJobStatus.QUEUED, CrawlJobStatus.RUNNING}
ACTIVE_EXTRACTION = {ExtractionJobStatus.PENDING, ExtractionJobStatus.RUNNING}


def check_transition(kind: str, table: dict, current, target) -> None:
    """Raise InvalidTransition unless current -> target is allowed."""
    if target not in table[current]:
        raise InvalidTransition(kind, current, target)


def status_column_type(enum_cls):
    """Store enum values (not names) in a VARCHAR(20)."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
