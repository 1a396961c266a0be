"""Business directory listing discovery source.

Searches the directory once per keyword for the request's location. Listings
carry no provider id, so each business gets a surrogate external id built
from its normalized name and postal code (or city), and is stored with
source "synthetic".
"""

import logging

from bizcontacts.discovery.base import BaseDiscoverySource
from bizcontacts.discovery.sources import register_source
from bizcontacts.errors import ContractError
from bizcontacts.models.business import Business
from bizcontacts.models.dataset import Dataset, dataset_businesses
from bizcontacts.services.contact_normalizer import normalize_email, normalize_phone
from bizcontacts.services.dedup import synthetic_key
from bizcontacts.services.listing_client import ListingClient, ListingEntry

logger = logging.getLogger(__name__)


@register_source("listing")
class ListingDirectorySource(BaseDiscoverySource):

    def __init__(self, request, db, run, dataset, client: ListingClient | None = None):
        super().__init__(request, db, run, dataset)
        self.client = client or ListingClient()

    @property
    def location(self) -> str:
        return self.request.location_name or self.request.city_id

    def fetch(self) -> list[ListingEntry]:
        if not self.request.city_id:
            raise ContractError("city_id is required for directory listing discovery")
        if not self.request.keywords:
            raise ContractError("At least one keyword is required for directory listing discovery")

        entries = []
        for keyword in self.request.keywords:
            found = self.client.search(keyword, self.location)
            self.stats.searches_executed += 1
            entries.extend(e for e in found if synthetic_key(e.name, self._location_of(e)))
            logger.info(f"{self.tag} '{keyword}' in '{self.location}': {len(found)} listings")

        self.stats.errors.extend(self.client.errors)
        return entries

    def _location_of(self, entry: ListingEntry) -> str:
        return entry.postal_code or entry.city or self.request.city_id

    def normalize(self, raw: ListingEntry) -> dict:
        phones = [p for p in (normalize_phone(phone) for phone in raw.phones) if p]
        address = ", ".join(part for part in (raw.street, raw.city) if part)
        if raw.postal_code:
            address = f"{address} {raw.postal_code}".strip()
        return {
            "external_id": synthetic_key(raw.name, self._location_of(raw)),
            "source": "synthetic",
            "name": raw.name,
            "address": address or None,
            "postal_code": raw.postal_code,
            "city_id": self.request.city_id,
            "latitude": raw.latitude,
            "longitude": raw.longitude,
            "website_url": raw.website,
            "phone": phones[0] if phones else None,
            "email": normalize_email(raw.email),
        }

    def find_local(self) -> list[Business]:
        """Directory businesses of this city already collected for the same industry."""
        return (
            self.db.query(Business)
            .join(dataset_businesses, dataset_businesses.c.business_id == Business.id)
            .join(Dataset, Dataset.id == dataset_businesses.c.dataset_id)
            .filter(
                Business.city_id == self.request.city_id,
                Business.source == "synthetic",
                Dataset.industry_key == self.request.industry_key,
            )
            .distinct()
            .all()
        )
