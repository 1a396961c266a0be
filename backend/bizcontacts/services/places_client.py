"""Google Places (New) API client used by geo-grid discovery and the extraction fallback."""

import logging
from dataclasses import dataclass

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from bizcontacts.config import get_settings
from bizcontacts.services.http_retry import is_transient

logger = logging.getLogger(__name__)

SEARCH_FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.rating",
    "places.userRatingCount",
    "places.types",
    "places.addressComponents",
])

DETAILS_FIELD_MASK = ",".join([
    "id",
    "displayName",
    "formattedAddress",
    "websiteUri",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
])


@dataclass
class PlaceResult:
    place_id: str
    name: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    postal_code: str | None = None
    rating: float | None = None
    types: list | None = None


@dataclass
class PlaceDetails:
    place_id: str
    website: str | None = None
    phone: str | None = None


def _log_retry(retry_state):
    logger.warning(
        f"Places request failed ({retry_state.outcome.exception()}), "
        f"retry {retry_state.attempt_number}"
    )


_transient_retry = retry(
    stop=stop_after_attempt(get_settings().retry_attempts),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient),
    before_sleep=_log_retry,
    reraise=True,
)


def _strip_prefix(place_id: str) -> str:
    return place_id[len("places/"):] if place_id.startswith("places/") else place_id


def _postal_code(components: list | None) -> str | None:
    for comp in components or []:
        if "postal_code" in (comp.get("types") or []):
            return comp.get("longText") or comp.get("shortText")
    return None


class PlacesClient:
    def __init__(self, api_key: str | None = None, base_url: str | None = None,
                 http_client: httpx.Client | None = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.places_api_key
        self.base_url = (base_url or settings.places_base_url).rstrip("/")
        self.client = http_client or httpx.Client(timeout=30)

    @_transient_retry
    def search_text(self, query: str, latitude: float, longitude: float,
                    radius_m: float = 1500) -> list[PlaceResult]:
        """Text search biased to a circle around (latitude, longitude)."""
        resp = self.client.post(
            f"{self.base_url}/places:searchText",
            json={
                "textQuery": query,
                "languageCode": "el",
                "regionCode": "GR",
                "locationBias": {
                    "circle": {
                        "center": {"latitude": latitude, "longitude": longitude},
                        "radius": radius_m,
                    }
                },
            },
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": SEARCH_FIELD_MASK,
            },
        )
        resp.raise_for_status()

        results = []
        for place in resp.json().get("places", []):
            location = place.get("location") or {}
            results.append(PlaceResult(
                place_id=_strip_prefix(place.get("id", "")),
                name=(place.get("displayName") or {}).get("text", "Unknown"),
                address=place.get("formattedAddress"),
                latitude=location.get("latitude"),
                longitude=location.get("longitude"),
                postal_code=_postal_code(place.get("addressComponents")),
                rating=place.get("rating"),
                types=place.get("types"),
            ))
        return results

    @_transient_retry
    def get_place_details(self, place_id: str) -> PlaceDetails | None:
        """Website and phone for a place. None when the place is unknown."""
        place_id = _strip_prefix(place_id)
        resp = self.client.get(
            f"{self.base_url}/places/{place_id}",
            params={"languageCode": "el"},
            headers={
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": DETAILS_FIELD_MASK,
            },
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        return PlaceDetails(
            place_id=place_id,
            website=data.get("websiteUri"),
            phone=data.get("nationalPhoneNumber") or data.get("internationalPhoneNumber"),
        )

    def close(self):
        self.client.close()
