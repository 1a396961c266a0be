"""Base discovery source abstract class."""

import logging
import uuid
from abc import ABC, abstractmethod

from sqlalchemy.exc import IntegrityError

from bizcontacts.errors import ContractError
from bizcontacts.models.business import Business
from bizcontacts.models.dataset import Dataset
from bizcontacts.models.discovery_run import DiscoveryRun
from bizcontacts.schemas.discovery import DiscoveryRequest, DiscoveryStats
from bizcontacts.services.dedup import dedupe_candidates

logger = logging.getLogger(__name__)

# Fields merged into an existing business when it has no value yet
COALESCE_FIELDS = (
    "name", "address", "postal_code", "municipality_id", "prefecture_id", "city_id",
    "latitude", "longitude", "website_url", "phone", "email", "activity_id", "place_id",
)


class BaseDiscoverySource(ABC):
    """Abstract base class for discovery sources.

    Subclasses must implement:
        fetch() -> list: query the external source (or raise)
        normalize(raw) -> dict: map one raw record to Business fields
        find_local() -> list: businesses already stored for this request

    normalize() must return at least external_id and name, plus one location id
    (municipality_id, prefecture_id or city_id).
    """

    source_name = "base"

    def __init__(self, request: DiscoveryRequest, db, run: DiscoveryRun, dataset: Dataset):
        self.request = request
        self.db = db
        self.run_id = run.id
        self.dataset_id = dataset.id
        self.stats = DiscoveryStats()

    @property
    def tag(self) -> str:
        return f"[{self.source_name}/{self.run_id}]"

    @abstractmethod
    def fetch(self) -> list:
        ...

    @abstractmethod
    def normalize(self, raw) -> dict:
        ...

    @abstractmethod
    def find_local(self) -> list[Business]:
        ...

    def run(self) -> DiscoveryStats:
        """Reuse local businesses when there are any, else fetch, dedupe and upsert."""
        local = self.find_local() if self.request.reuse_local else []
        if local:
            logger.info(f"{self.tag} Reusing {len(local)} stored businesses, no external calls")
            for business in local:
                business.discovery_run_id = self.run_id
                if self._link(business):
                    self.stats.businesses_linked += 1
            self.db.commit()
            self.stats.businesses_found = len(local)
            self.stats.reused_local = True
            return self.stats

        raw_records = self.fetch()
        logger.info(f"{self.tag} Fetched {len(raw_records)} raw records")

        candidates = [self.normalize(raw) for raw in raw_records]
        unique = dedupe_candidates(candidates)
        self.stats.businesses_found = len(unique)

        for data in unique:
            result = self._save_business(data)
            if result == "new":
                self.stats.businesses_created += 1
            elif result == "updated":
                self.stats.businesses_updated += 1

        logger.info(
            f"{self.tag} found={self.stats.businesses_found} created={self.stats.businesses_created} "
            f"updated={self.stats.businesses_updated} linked={self.stats.businesses_linked}"
        )
        return self.stats

    def _link(self, business: Business) -> bool:
        dataset = self.db.get(Dataset, self.dataset_id)
        if dataset in business.datasets:
            return False
        business.datasets.append(dataset)
        return True

    def _save_business(self, data: dict) -> str:
        """Upsert by external_id. Returns 'new', 'updated', or 'existing'."""
        if not data.get("external_id"):
            raise ContractError(f"external_id missing in discovery insert for business '{data.get('name')}'")
        if data.get("municipality_id") is None and data.get("prefecture_id") is None and not data.get("city_id"):
            raise ContractError(
                f"location id missing in discovery insert for business '{data.get('name')}' "
                f"({data['external_id']})"
            )

        existing = self._find_existing(data["external_id"])
        if existing:
            return self._merge(existing, data)

        business = Business(
            id=uuid.uuid4(),
            external_id=data["external_id"],
            source=data.get("source", self.source_name),
            discovery_run_id=self.run_id,
            **{key: data.get(key) for key in COALESCE_FIELDS},
        )
        self.db.add(business)
        try:
            self._link(business)
            self.db.commit()
        except IntegrityError:
            # Another worker inserted the same external_id first
            self.db.rollback()
            existing = self.db.query(Business).filter(Business.external_id == data["external_id"]).one()
            logger.info(f"{self.tag} Concurrent insert of {data['external_id']}, updating instead")
            return self._merge(existing, data)
        self.stats.businesses_linked += 1
        return "new"

    def _find_existing(self, external_id: str) -> Business | None:
        return self.db.query(Business).filter(Business.external_id == external_id).first()

    def _merge(self, existing: Business, data: dict) -> str:
        changed = False
        for key in COALESCE_FIELDS:
            value = data.get(key)
            if value not in (None, "") and getattr(existing, key) in (None, ""):
                setattr(existing, key, value)
                changed = True
        existing.discovery_run_id = self.run_id
        if self._link(existing):
            self.stats.businesses_linked += 1
        self.db.commit()
        return "updated" if changed else "existing"
