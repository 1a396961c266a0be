"""Business directory listing client (vrisko.gr search pages).

Search results are plain HTML, one .AdvItemBox per business with schema.org
microdata for address, phones and coordinates. Pages are walked in order
until two consecutive pages come back empty or max_pages is reached.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import quote, urljoin

import httpx
from bs4 import BeautifulSoup
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from bizcontacts.config import get_settings
from bizcontacts.services.http_retry import is_transient

logger = logging.getLogger(__name__)

EMPTY_PAGES_TO_STOP = 2


@dataclass
class ListingEntry:
    name: str
    category: str | None = None
    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    region: str | None = None
    phones: list[str] = field(default_factory=list)
    email: str | None = None
    website: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    listing_url: str | None = None


def _meta(box, prop: str) -> str | None:
    tag = box.select_one(f'meta[itemprop="{prop}"]')
    if tag is None:
        return None
    value = (tag.get("content") or "").strip()
    return value or None


def _float(value: str | None) -> float | None:
    try:
        return float(value) if value else None
    except ValueError:
        return None


def parse_listings(html: str, base_url: str) -> list[ListingEntry]:
    """Every business box on one search page. Boxes without a name are skipped."""
    soup = BeautifulSoup(html, "lxml")
    entries = []

    for box in soup.select(".AdvItemBox"):
        link = box.select_one("h2.CompanyName a.nav-company")
        name = ""
        if link is not None:
            name = link.get_text(strip=True) or (link.get("title") or "").strip()
        if not name:
            logger.debug("Skipping listing without a business name")
            continue

        phones = []
        for tag in box.select('[itemprop="telephone"]'):
            phone = tag.get_text(strip=True) or (tag.get("content") or "").strip()
            if phone and phone not in phones:
                phones.append(phone)

        email = _meta(box, "email")
        if not email:
            mailto = box.select_one('a[href^="mailto:"]')
            if mailto is not None:
                email = mailto["href"][len("mailto:"):].split("?")[0].strip() or None

        website_link = box.select_one('a[itemprop="url"]')
        website = (website_link.get("href") or "").strip() if website_link is not None else ""
        category_tag = box.select_one(".AdvCategory")
        category = category_tag.get_text(strip=True) if category_tag is not None else ""
        href = link.get("href")

        entries.append(ListingEntry(
            name=name,
            category=category or None,
            street=_meta(box, "streetAddress"),
            city=_meta(box, "addressLocality"),
            postal_code=_meta(box, "postalCode"),
            region=_meta(box, "addressRegion"),
            phones=phones,
            email=email,
            website=website or None,
            latitude=_float(_meta(box, "latitude")),
            longitude=_float(_meta(box, "longitude")),
            listing_url=urljoin(base_url + "/", href) if href else None,
        ))

    return entries


class ListingClient:
    """Walks the paginated search results for one keyword and location."""

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        page_delay_ms: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.listing_base_url).rstrip("/")
        self.page_delay_ms = settings.listing_page_delay_ms if page_delay_ms is None else page_delay_ms
        self.retry_attempts = settings.retry_attempts
        self._sleep = sleep
        self.client = http_client or httpx.Client(
            timeout=settings.listing_timeout,
            follow_redirects=True,
            headers={"User-Agent": settings.crawler_user_agent, "Accept-Language": "el-GR,el;q=0.9,en;q=0.5"},
        )
        self.errors: list[str] = []

    def search_url(self, keyword: str, location: str, page: int) -> str:
        return f"{self.base_url}/search/{quote(keyword, safe='')}/{quote(location, safe='')}/?page={page}"

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            f"Listing page request failed ({retry_state.outcome.exception()}), "
            f"retry {retry_state.attempt_number}"
        )

    def _get_page(self, url: str) -> str:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                resp = self.client.get(url)
                resp.raise_for_status()
                return resp.text

    def fetch_page(self, keyword: str, location: str, page: int) -> list[ListingEntry]:
        """One results page. A failed page counts as empty so the walk can go on."""
        url = self.search_url(keyword, location, page)
        try:
            html = self._get_page(url)
        except httpx.HTTPError as e:
            self.errors.append(f"page {page} of '{keyword}' in '{location}': {e}")
            logger.warning(f"Listing page {url} failed: {e}")
            return []
        entries = parse_listings(html, self.base_url)
        logger.info(f"Listing page {page} for '{keyword}' in '{location}': {len(entries)} entries")
        return entries

    def search(self, keyword: str, location: str, max_pages: int | None = None) -> list[ListingEntry]:
        limit = max_pages or get_settings().listing_max_pages
        entries: list[ListingEntry] = []
        empty_streak = 0

        for page in range(1, limit + 1):
            if page > 1 and self.page_delay_ms:
                self._sleep(self.page_delay_ms / 1000)
            found = self.fetch_page(keyword, location, page)
            if not found:
                empty_streak += 1
                if empty_streak >= EMPTY_PAGES_TO_STOP:
                    break
                continue
            empty_streak = 0
            entries.extend(found)

        logger.info(f"Listing search '{keyword}' in '{location}': {len(entries)} entries")
        return entries

    def close(self):
        self.client.close()
