"""Geo-grid keyword discovery source.

One place search per (grid point, keyword), issued in small concurrent
batches. Expansion stops after three consecutive batches that each found
less than min_new_businesses_percent new places, or at max_searches.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import httpx

from bizcontacts.config import get_settings
from bizcontacts.discovery.base import BaseDiscoverySource
from bizcontacts.discovery.sources import register_source
from bizcontacts.errors import ContractError
from bizcontacts.models.business import Business
from bizcontacts.models.dataset import Dataset, dataset_businesses
from bizcontacts.services.geo_grid import GridPoint, generate_grid_points
from bizcontacts.services.places_client import PlaceResult, PlacesClient

logger = logging.getLogger(__name__)

LOW_YIELD_BATCHES_TO_STOP = 3


@register_source("geo_grid")
class GeoGridSource(BaseDiscoverySource):

    def __init__(self, request, db, run, dataset, client: PlacesClient | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(request, db, run, dataset)
        self.client = client or PlacesClient()
        self.settings = get_settings()
        self._sleep = sleep

    def _validate(self):
        if not self.request.city_id:
            raise ContractError("city_id is required for geo-grid discovery")
        if self.request.latitude is None or self.request.longitude is None or not self.request.radius_km:
            raise ContractError(
                f"Coordinates are required for geo-grid discovery of city {self.request.city_id}: "
                f"lat={self.request.latitude}, lng={self.request.longitude}, radius={self.request.radius_km}"
            )
        if not self.request.keywords:
            raise ContractError("At least one keyword is required for geo-grid discovery")

    def _search(self, point: GridPoint, keyword: str) -> list[PlaceResult]:
        try:
            return self.client.search_text(
                keyword, point.latitude, point.longitude,
                radius_m=self.settings.grid_radius_km * 1000,
            )
        except httpx.HTTPError as e:
            self.stats.errors.append(f"search '{keyword}' at {point.latitude},{point.longitude}: {e}")
            logger.warning(f"{self.tag} Search failed for '{keyword}': {e}")
            return []

    def fetch(self) -> list[PlaceResult]:
        self._validate()
        s = self.settings

        points = generate_grid_points(
            self.request.latitude, self.request.longitude, self.request.radius_km,
            grid_radius_km=s.grid_radius_km, density=s.grid_density,
        )
        searches = [(p, kw) for p in points for kw in self.request.keywords][:s.max_searches]
        logger.info(f"{self.tag} {len(points)} grid points x {len(self.request.keywords)} keywords = {len(searches)} searches")

        found: dict[str, PlaceResult] = {}
        low_yield_streak = 0
        batch_size = max(1, s.grid_concurrency)

        with ThreadPoolExecutor(max_workers=batch_size) as pool:
            for start in range(0, len(searches), batch_size):
                if start > 0 and s.request_delay_ms:
                    self._sleep(s.request_delay_ms / 1000)

                batch = searches[start:start + batch_size]
                results = list(pool.map(lambda args: self._search(*args), batch))
                self.stats.searches_executed += len(batch)

                returned = 0
                new = 0
                for places in results:
                    for place in places:
                        if not place.place_id:
                            continue
                        returned += 1
                        if place.place_id not in found:
                            found[place.place_id] = place
                            new += 1

                new_percent = (new / returned * 100) if returned else 0
                if new_percent < s.min_new_businesses_percent:
                    low_yield_streak += 1
                else:
                    low_yield_streak = 0

                if low_yield_streak >= LOW_YIELD_BATCHES_TO_STOP:
                    self.stats.stopped_early = True
                    logger.info(
                        f"{self.tag} Diminishing returns after {self.stats.searches_executed} searches, stopping"
                    )
                    break

        return list(found.values())

    def normalize(self, raw: PlaceResult) -> dict:
        return {
            "external_id": raw.place_id,
            "place_id": raw.place_id,
            "source": "places",
            "name": raw.name,
            "address": raw.address,
            "postal_code": raw.postal_code,
            "city_id": self.request.city_id,
            "latitude": raw.latitude if raw.latitude is not None else self.request.latitude,
            "longitude": raw.longitude if raw.longitude is not None else self.request.longitude,
        }

    def find_local(self) -> list[Business]:
        """Businesses in this city already collected for the same keywords by any dataset."""
        return (
            self.db.query(Business)
            .join(dataset_businesses, dataset_businesses.c.business_id == Business.id)
            .join(Dataset, Dataset.id == dataset_businesses.c.dataset_id)
            .filter(
                Business.city_id == self.request.city_id,
                Dataset.industry_key == self.request.industry_key,
            )
            .distinct()
            .all()
        )
