"""Client for the business registry (GEMI open data API).

Every request goes through the shared RateLimiter. A 429 answer is retried
with exponential backoff (tenacity) and resets the limiter window. Timeouts,
connection errors and 5xx answers get the same backoff. A 404 is an empty
result, and the response body is parsed into one of a few known envelope
shapes.
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
from tenacity import Retrying, retry_if_exception, retry_if_exception_type, stop_after_attempt, wait_exponential

from bizcontacts.config import get_settings
from bizcontacts.errors import InvalidRegistryResponse, RegistryError, RegistryRateLimitError
from bizcontacts.services.http_retry import is_transient
from bizcontacts.services.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

SORT_KEY = "+arGemi"


class EnvelopeKind(str, enum.Enum):
    DIRECT_ARRAY = "direct_array"
    DATA = "data"
    SEARCH_RESULTS = "search_results"
    UNKNOWN_ARRAY = "unknown_array"


@dataclass
class Envelope:
    kind: EnvelopeKind
    records: list
    total_count: int | None = None


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_envelope(payload: Any) -> Envelope:
    """Classify a registry response body into one of the known envelope shapes."""
    if isinstance(payload, list):
        return Envelope(EnvelopeKind.DIRECT_ARRAY, payload)

    if not isinstance(payload, dict):
        raise InvalidRegistryResponse(f"Invalid API response structure: {type(payload).__name__}")

    if isinstance(payload.get("searchResults"), list):
        metadata = payload.get("searchMetadata") or {}
        total = _as_int(metadata.get("totalCount")) if isinstance(metadata, dict) else None
        return Envelope(EnvelopeKind.SEARCH_RESULTS, payload["searchResults"], total)

    if isinstance(payload.get("data"), list):
        total = _as_int(payload.get("totalCount")) or _as_int(payload.get("total"))
        return Envelope(EnvelopeKind.DATA, payload["data"], total)

    for key, value in payload.items():
        if isinstance(value, list):
            logger.warning(f"Registry response used unexpected array key '{key}'")
            total = _as_int(payload.get("totalCount")) or _as_int(payload.get("total"))
            return Envelope(EnvelopeKind.UNKNOWN_ARRAY, value, total)

    raise InvalidRegistryResponse(f"Invalid API response structure: no array in keys {sorted(payload)}")


@dataclass
class RegistryCompany:
    ar_gemi: str
    name: str
    legal_name: str | None = None
    address: str | None = None
    postal_code: str | None = None
    municipality_id: int | None = None
    prefecture_id: int | None = None
    activity_id: int | None = None
    website_url: str | None = None
    email: str | None = None
    phone: str | None = None
    raw: dict = field(default_factory=dict, repr=False)


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _ref_id(value: Any) -> int | None:
    """Ids come as ints, numeric strings or {"id": ...} objects."""
    if isinstance(value, dict):
        return _as_int(value.get("id") or value.get("gemi_id") or value.get("gemiId"))
    return _as_int(value)


def normalize_company(raw: dict) -> RegistryCompany | None:
    """Map one registry record to RegistryCompany. Records without ar_gemi are dropped."""
    ar_gemi = raw.get("arGemi") or raw.get("ar_gemi") or raw.get("ar")
    if not ar_gemi:
        return None

    name = (
        _first(raw.get("coNameEl") or raw.get("coNamesEL"))
        or _first(raw.get("coNamesEn"))
        or _first(raw.get("name"))
        or _first(raw.get("companyName"))
        or _first(raw.get("legalName"))
        or "Unknown"
    )

    return RegistryCompany(
        ar_gemi=str(ar_gemi),
        name=str(name).strip(),
        legal_name=_first(raw.get("legalName") or raw.get("legal_name")),
        address=raw.get("address") or raw.get("fullAddress"),
        postal_code=raw.get("postalCode") or raw.get("postal_code") or raw.get("zipCode"),
        municipality_id=_ref_id(raw.get("municipalityId") or raw.get("municipality_id") or raw.get("municipality")),
        prefecture_id=_ref_id(raw.get("prefectureId") or raw.get("prefecture_id") or raw.get("prefecture")),
        activity_id=_ref_id(raw.get("activityId") or raw.get("activity_id") or raw.get("activity")),
        website_url=raw.get("url") or raw.get("websiteUrl") or raw.get("website_url") or raw.get("website"),
        email=raw.get("email"),
        phone=raw.get("phone") or raw.get("telephone"),
        raw=raw,
    )


@dataclass
class RegistryPage:
    companies: list[RegistryCompany]
    total_count: int
    next_offset: int
    has_more: bool


@dataclass
class RegistryResult:
    companies: list[RegistryCompany]
    next_offset: int
    calls: int


class _Throttled(Exception):
    """Internal signal: the registry answered 429."""


def _join(values: list[int] | None) -> str | None:
    if not values:
        return None
    return ",".join(str(v) for v in values)


class RegistryClient:
    """Paginated, rate-limited access to the registry's /companies resource."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        limiter: RateLimiter | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int | None = None,
        backoff_base_seconds: float | None = None,
        page_size: int | None = None,
        safety_limit: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.registry_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.registry_api_key
        self.limiter = limiter or get_rate_limiter()
        self.page_size = page_size or settings.registry_page_size
        self.safety_limit = safety_limit or settings.registry_safety_limit
        self.max_retries = max_retries if max_retries is not None else settings.registry_max_retries
        self.backoff_base_seconds = backoff_base_seconds or settings.registry_backoff_base_seconds
        self._sleep = sleep
        self.client = http_client or httpx.Client(timeout=settings.registry_timeout)

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key, "Accept": "application/json"}

    def _before_retry(self, retry_state) -> None:
        attempt = f"attempt {retry_state.attempt_number}/{self.max_retries + 1}"
        backoff = f"backing off {retry_state.next_action.sleep:.0f}s"
        exc = retry_state.outcome.exception()
        if isinstance(exc, _Throttled):
            logger.warning(f"Registry rate limited ({attempt}), {backoff}")
            self.limiter.reset()
        else:
            logger.warning(f"Registry request failed: {exc} ({attempt}), {backoff}")

    def _get_once(self, path: str, params: dict) -> httpx.Response | None:
        self.limiter.acquire()
        resp = self.client.get(
            f"{self.base_url}{path}",
            params={**params, "api_key": self.api_key},
            headers=self._headers(),
        )
        if resp.status_code == 429:
            raise _Throttled()
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp

    def _get(self, path: str, params: dict) -> httpx.Response | None:
        """GET with backoff on 429 and transient failures. Returns None for 404."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_base_seconds, min=self.backoff_base_seconds),
            retry=retry_if_exception_type(_Throttled) | retry_if_exception(is_transient),
            before_sleep=self._before_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self._get_once, path, params)
        except _Throttled:
            raise RegistryRateLimitError(
                f"Registry rate limit exceeded after {self.max_retries} retries"
            ) from None
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry request failed: {e}") from e

    def fetch_companies(
        self,
        municipality_ids: list[int] | None = None,
        prefecture_id: int | None = None,
        activity_ids: list[int] | None = None,
        offset: int = 0,
    ) -> RegistryPage:
        """Fetch one page of active companies for a location (and optional activities)."""
        if not municipality_ids and prefecture_id is None:
            raise ValueError("Either municipality_ids or prefecture_id must be provided")

        params: dict[str, Any] = {
            "resultsOffset": offset,
            "resultsSize": self.page_size,
            "resultsSortBy": SORT_KEY,
            "isActive": "true",
        }
        if municipality_ids:
            params["municipalities"] = _join(municipality_ids)
        else:
            params["prefectures"] = prefecture_id
        if activity_ids:
            params["activities"] = _join(activity_ids)

        resp = self._get("/companies", params)
        if resp is None:
            logger.info(f"Registry returned 404 for {params.get('municipalities') or params.get('prefectures')}, treating as empty")
            return RegistryPage(companies=[], total_count=0, next_offset=offset, has_more=False)

        try:
            payload = resp.json()
        except ValueError as e:
            raise InvalidRegistryResponse(f"Registry returned non-JSON body: {e}") from e

        envelope = parse_envelope(payload)
        companies = [c for c in (normalize_company(r) for r in envelope.records if isinstance(r, dict)) if c]
        if len(companies) < len(envelope.records):
            logger.warning(f"Filtered out {len(envelope.records) - len(companies)} registry records without ar_gemi")

        total = envelope.total_count or 0
        next_offset = offset + self.page_size
        has_more = len(companies) > 0 and (total == 0 or next_offset < total)
        return RegistryPage(companies=companies, total_count=total, next_offset=next_offset, has_more=has_more)

    def fetch_all_companies(
        self,
        municipality_ids: list[int] | None = None,
        prefecture_id: int | None = None,
        activity_ids: list[int] | None = None,
        start_offset: int = 0,
        max_results: int | None = None,
    ) -> RegistryResult:
        """Page through results until exhausted or the safety ceiling is hit.

        The returned next_offset lets a follow-up call resume where this one stopped.
        """
        ceiling = min(max_results or self.safety_limit, self.safety_limit)
        companies: list[RegistryCompany] = []
        offset = start_offset
        page_start = offset
        kept_on_page = 0
        calls = 0

        while len(companies) < ceiling:
            page_start = offset
            page = self.fetch_companies(municipality_ids, prefecture_id, activity_ids, offset)
            calls += 1
            kept_on_page = len(page.companies)
            companies.extend(page.companies)
            offset = page.next_offset if page.companies else offset
            if not page.has_more:
                break

        if len(companies) >= ceiling:
            dropped = len(companies) - ceiling
            if dropped:
                # Resume right after the last kept record of the final page
                companies = companies[:ceiling]
                offset = page_start + kept_on_page - dropped
            logger.warning(f"Registry safety ceiling reached ({ceiling}), resume from offset {offset}")

        return RegistryResult(companies=companies, next_offset=offset, calls=calls)

    def fetch_municipalities(self, prefecture_id: int) -> list[int]:
        """Municipality ids belonging to a prefecture, from the registry metadata."""
        resp = self._get("/metadata/municipalities", {})
        if resp is None:
            return []
        envelope = parse_envelope(resp.json())
        ids = []
        for item in envelope.records:
            if not isinstance(item, dict):
                continue
            parent = _ref_id(item.get("prefectureId") or item.get("prefecture_id") or item.get("prefecture"))
            if parent == prefecture_id:
                mid = _as_int(item.get("id") or item.get("gemi_id") or item.get("gemiId"))
                if mid is not None:
                    ids.append(mid)
        return ids

    def close(self):
        self.client.close()
