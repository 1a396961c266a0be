"""Wait until a dataset's crawl and extraction jobs settle, then print a status summary.

Ctrl-C stops waiting immediately.

Usage:
    docker compose exec backend python -m scripts.ops.wait_for_dataset <dataset_id>
    docker compose exec backend python -m scripts.ops.wait_for_dataset <dataset_id> --max-wait 120 --poll 5
"""

import argparse
import logging
import signal
import threading
import uuid

from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.services.export_wait import wait_for_dataset_jobs

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Wait for a dataset's pipeline jobs")
    parser.add_argument("dataset_id", type=uuid.UUID)
    parser.add_argument("--max-wait", type=float, help="Seconds to wait at most")
    parser.add_argument("--poll", type=float, help="Seconds between polls")
    args = parser.parse_args()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    result = wait_for_dataset_jobs(
        SyncSessionLocal,
        args.dataset_id,
        max_wait_seconds=args.max_wait,
        poll_interval_seconds=args.poll,
        stop_event=stop,
    )

    if result.completed:
        print(f"All jobs finished after {result.waited_seconds:.0f}s")
    elif result.cancelled:
        print("Cancelled")
    else:
        print(
            f"Gave up after {result.waited_seconds:.0f}s: {result.active_crawl} crawl / "
            f"{result.active_extraction} extraction jobs still active"
        )


if __name__ == "__main__":
    main()
