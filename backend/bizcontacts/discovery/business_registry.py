"""Business registry discovery source.

Queries the registry once per (municipality, activity) pair. A prefecture is
expanded to its municipalities first; if the metadata has none for it, the
prefecture itself is queried.
"""

import logging
from itertools import product

from bizcontacts.discovery.base import BaseDiscoverySource
from bizcontacts.discovery.sources import register_source
from bizcontacts.models.business import Business
from bizcontacts.services.contact_normalizer import normalize_email, normalize_phone
from bizcontacts.services.registry_client import RegistryClient, RegistryCompany

logger = logging.getLogger(__name__)


@register_source("registry")
class BusinessRegistrySource(BaseDiscoverySource):

    def __init__(self, request, db, run, dataset, client: RegistryClient | None = None):
        super().__init__(request, db, run, dataset)
        self.client = client or RegistryClient()

    def _municipalities(self) -> list[int]:
        if self.request.municipality_ids:
            return list(self.request.municipality_ids)
        ids = self.client.fetch_municipalities(self.request.prefecture_id)
        logger.info(f"{self.tag} Prefecture {self.request.prefecture_id} has {len(ids)} municipalities")
        return ids

    def fetch(self) -> list[RegistryCompany]:
        municipalities = self._municipalities()
        activities = list(self.request.activity_ids) or [None]

        by_ar_gemi: dict[str, RegistryCompany] = {}

        if municipalities:
            queries = [([m], None, [a] if a is not None else None, m, a)
                       for m, a in product(municipalities, activities)]
        else:
            queries = [(None, self.request.prefecture_id, [a] if a is not None else None, None, a)
                       for a in activities]

        for municipality_ids, prefecture_id, activity_ids, municipality, activity in queries:
            result = self.client.fetch_all_companies(
                municipality_ids=municipality_ids,
                prefecture_id=prefecture_id,
                activity_ids=activity_ids,
            )
            self.stats.searches_executed += result.calls
            for company in result.companies:
                if company.municipality_id is None:
                    company.municipality_id = municipality
                if company.prefecture_id is None:
                    company.prefecture_id = self.request.prefecture_id
                if company.activity_id is None:
                    company.activity_id = activity
                by_ar_gemi.setdefault(company.ar_gemi, company)

        logger.info(f"{self.tag} {len(queries)} registry queries, {len(by_ar_gemi)} unique companies")
        return list(by_ar_gemi.values())

    def normalize(self, raw: RegistryCompany) -> dict:
        return {
            "external_id": raw.ar_gemi,
            "source": "registry",
            "name": raw.name,
            "address": raw.address,
            "postal_code": raw.postal_code,
            "municipality_id": raw.municipality_id,
            "prefecture_id": raw.prefecture_id,
            "activity_id": raw.activity_id,
            "website_url": raw.website_url,
            "email": normalize_email(raw.email),
            "phone": normalize_phone(raw.phone),
        }

    def find_local(self) -> list[Business]:
        query = self.db.query(Business).filter(Business.source == "registry")
        if self.request.municipality_ids:
            query = query.filter(Business.municipality_id.in_(self.request.municipality_ids))
        else:
            query = query.filter(Business.prefecture_id == self.request.prefecture_id)
        if self.request.activity_ids:
            query = query.filter(Business.activity_id.in_(self.request.activity_ids))
        return query.all()
