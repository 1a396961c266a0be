"""Submit a discovery run from the command line.

By default the run is handed to a Celery worker; --inline runs it in this
process (useful against a local database without workers).

Usage:
    docker compose exec backend python -m scripts.ops.run_discovery --user u1 --municipality 1001 --activity 5610
    docker compose exec backend python -m scripts.ops.run_discovery --user u1 --prefecture 12
    docker compose exec backend python -m scripts.ops.run_discovery --user u1 --city athens \\
        --lat 37.9838 --lng 23.7275 --radius 3 --keyword cafe --inline
    docker compose exec backend python -m scripts.ops.run_discovery --user u1 --source listing --city athens \\
        --location "Αθήνα" --keyword καφέ --no-reuse
"""

import argparse
import logging

from pydantic import ValidationError

from bizcontacts.models.base import SyncSessionLocal
from bizcontacts.schemas.discovery import DiscoveryRequest, DiscoveryRunRead
from bizcontacts.services import orchestrator

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def build_request(args) -> DiscoveryRequest:
    return DiscoveryRequest(
        user_id=args.user,
        dataset_id=args.dataset,
        source=args.source,
        industry_group_id=args.industry_group,
        reuse_local=not args.no_reuse,
        municipality_ids=args.municipality or [],
        prefecture_id=args.prefecture,
        activity_ids=args.activity or [],
        city_id=args.city,
        latitude=args.lat,
        longitude=args.lng,
        radius_km=args.radius,
        keywords=args.keyword or [],
        location_name=args.location,
    )


def run_inline(request: DiscoveryRequest):
    db = SyncSessionLocal()
    try:
        run = orchestrator.submit_discovery(db, request)
        stats = orchestrator.run_discovery(db, run.id, request)
        db.refresh(run)
        print(DiscoveryRunRead.model_validate(run).model_dump_json(indent=2))
        if stats:
            print(stats.model_dump_json(indent=2))
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Submit a business discovery run")
    parser.add_argument("--user", required=True, help="Owning user id")
    parser.add_argument("--dataset", help="Existing dataset id")
    parser.add_argument("--source", choices=["registry", "geo_grid", "listing"], help="Discovery source (default: from the location)")
    parser.add_argument("--industry-group", dest="industry_group", help="Industry group id, expanded to its activities and keywords")
    parser.add_argument("--municipality", type=int, action="append", help="Registry municipality id (repeatable)")
    parser.add_argument("--prefecture", type=int, help="Registry prefecture id")
    parser.add_argument("--activity", type=int, action="append", help="Registry activity id (repeatable)")
    parser.add_argument("--city", help="City id for geo-grid discovery")
    parser.add_argument("--lat", type=float)
    parser.add_argument("--lng", type=float)
    parser.add_argument("--radius", type=float, help="Search radius in km")
    parser.add_argument("--keyword", action="append", help="Search keyword (repeatable)")
    parser.add_argument("--location", help="Free-text location for directory listing searches (default: city id)")
    parser.add_argument("--no-reuse", action="store_true", help="Query the source even when matching businesses are stored")
    parser.add_argument("--inline", action="store_true", help="Run in this process instead of a worker")
    args = parser.parse_args()

    try:
        request = build_request(args)
    except ValidationError as e:
        parser.error(str(e))

    if args.inline:
        run_inline(request)
    else:
        from bizcontacts.tasks.discovery_tasks import submit_discovery
        run_id = submit_discovery(request)
        print(f"Dispatched run {run_id}")


if __name__ == "__main__":
    main()
