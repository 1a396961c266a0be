"""Bounded breadth-first crawl of one business website.

Order: homepage, then likely contact/about/company paths (Greek and English),
then footer links and contact-labelled links found on the homepage.
The crawler only fetches; persisting pages is the caller's job.
"""

import hashlib
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from urllib.parse import unquote, urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from bizcontacts.config import get_settings
from bizcontacts.errors import PageFetchError

logger = logging.getLogger(__name__)

DISALLOWED_MESSAGE = "Crawling disallowed by robots.txt"

CONTACT_PATHS = [
    "/contact",
    "/contacts",
    "/contact-us",
    "/contactus",
    "/επικοινωνια",
    "/επικοινωνία",
    "/επικοινωνηστε-μαζι-μας",
    "/επικοινωνήστε-μαζί-μας",
    "/epikoinonia",
    "/epikoinonia-mas",
    "/about",
    "/about-us",
    "/company",
    "/σχετικα-μας",
    "/σχετικά-μας",
]

CONTACT_LINK_RE = re.compile(r"contact|επικοινων|epikoinonia", re.IGNORECASE)

FOOTER_LINK_SELECTOR = "footer a[href], .footer a[href]"

_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "whatsapp:", "viber:")
_SKIP_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".zip", ".doc", ".docx", ".xls", ".xlsx")


def page_type_for_path(path: str) -> str:
    p = unquote(path).lower()
    if "about" in p or "σχετικ" in p:
        return "about"
    if "company" in p or "εταιρ" in p:
        return "company"
    return "contact"


def normalize_site_url(url: str) -> str:
    url = url.strip()
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"
    if not urlparse(url).path:
        url += "/"
    return url


def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


@dataclass
class CrawledPage:
    url: str
    final_url: str
    status_code: int
    content_type: str | None
    page_type: str
    html: str
    hash: str


@dataclass
class CrawlOutcome:
    pages: list[CrawledPage] = field(default_factory=list)
    error: str | None = None
    disallowed: bool = False

    @property
    def pages_crawled(self) -> int:
        return len(self.pages)


def harvest_links(html: str, base_url: str) -> list[tuple[str, str]]:
    """Same-site footer links and contact-labelled links from a homepage, with page types."""
    soup = BeautifulSoup(html, "lxml")
    site = _host(base_url)
    found: list[tuple[str, str]] = []
    seen: set[str] = set()

    def candidate(href: str | None) -> str | None:
        if not href:
            return None
        href = href.strip()
        if not href or href.startswith("#") or href.lower().startswith(_SKIP_SCHEMES):
            return None
        absolute, _ = urldefrag(urljoin(base_url, href))
        if not absolute.startswith(("http://", "https://")):
            return None
        if _host(absolute) != site:
            return None
        if urlparse(absolute).path.lower().endswith(_SKIP_EXTENSIONS):
            return None
        return absolute

    for a in soup.select(FOOTER_LINK_SELECTOR):
        url = candidate(a.get("href"))
        if url and url not in seen:
            seen.add(url)
            found.append((url, "footer"))

    for a in soup.find_all("a", href=True):
        href = a.get("href")
        text = a.get_text(" ", strip=True)
        if not (CONTACT_LINK_RE.search(text) or CONTACT_LINK_RE.search(unquote(href))):
            continue
        url = candidate(href)
        if url and url not in seen:
            seen.add(url)
            found.append((url, "contact"))

    return found


class SiteCrawler:
    """Fetches a bounded set of pages from one site through a page fetcher."""

    def __init__(self, fetcher, robots=None, max_pages: int | None = None):
        self.fetcher = fetcher
        self.robots = robots
        self.max_pages = max_pages or get_settings().crawler_max_pages

    def _seeds(self, homepage: str) -> list[tuple[str, str]]:
        parts = urlparse(homepage)
        origin = f"{parts.scheme}://{parts.netloc}"
        return [(homepage, "homepage")] + [(origin + path, page_type_for_path(path)) for path in CONTACT_PATHS]

    async def crawl(self, website_url: str, pages_limit: int) -> CrawlOutcome:
        homepage = normalize_site_url(website_url)
        outcome = CrawlOutcome()

        if self.robots is not None and not await self.robots.allowed(homepage):
            logger.info(f"[crawl {homepage}] {DISALLOWED_MESSAGE}")
            outcome.error = DISALLOWED_MESSAGE
            outcome.disallowed = True
            return outcome

        limit = max(0, min(pages_limit, self.max_pages))
        queue = deque(self._seeds(homepage))
        visited: set[str] = set()
        errors: list[str] = []

        while queue and len(outcome.pages) < limit:
            url, page_type = queue.popleft()
            if url in visited:
                continue
            visited.add(url)

            if self.robots is not None and url != homepage and not await self.robots.allowed(url):
                logger.debug(f"[crawl {homepage}] Skipping {url}: disallowed by robots.txt")
                continue

            try:
                fetched = await self.fetcher.fetch(url)
            except PageFetchError as e:
                errors.append(str(e))
                logger.info(f"[crawl {homepage}] {e}")
                continue
            except Exception as e:
                errors.append(f"Crawl aborted at {url}: {e}")
                logger.error(f"[crawl {homepage}] Fatal error at {url}, keeping {len(outcome.pages)} pages: {e}")
                break

            if fetched.status_code >= 400:
                logger.debug(f"[crawl {homepage}] Skipping {url} (HTTP {fetched.status_code})")
                continue

            outcome.pages.append(CrawledPage(
                url=url,
                final_url=fetched.final_url,
                status_code=fetched.status_code,
                content_type=fetched.content_type,
                page_type=page_type,
                html=fetched.html,
                hash=hashlib.sha256(fetched.html.encode()).hexdigest(),
            ))

            if page_type == "homepage":
                for link, link_type in harvest_links(fetched.html, fetched.final_url or url):
                    if link not in visited:
                        queue.append((link, link_type))

        if errors:
            outcome.error = "; ".join(errors)[:2000]
        logger.info(f"[crawl {homepage}] {len(outcome.pages)} pages, {len(errors)} errors")
        return outcome
