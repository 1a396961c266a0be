"""Page fetchers used by the site crawler.

A fetcher turns a URL into a FetchedPage or raises PageFetchError when the
navigation itself failed (timeout, DNS, refused connection). HTTP error
statuses are returned, not raised; the crawler decides what to skip.
"""

import logging
from dataclasses import dataclass

import httpx

from bizcontacts.config import get_settings
from bizcontacts.errors import PageFetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: str | None
    html: str


class BrowserPageFetcher:
    """Renders pages in one isolated browser context (one per crawl job)."""

    def __init__(self, context, timeout_ms: int | None = None):
        self.context = context
        self.timeout_ms = timeout_ms or get_settings().crawler_timeout_ms

    async def fetch(self, url: str) -> FetchedPage:
        from patchright.async_api import Error as BrowserError
        from patchright.async_api import TimeoutError as BrowserTimeout

        from bizcontacts.crawler.browser import STEALTH_SCRIPT

        page = await self.context.new_page()
        try:
            try:
                response = await page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
                await page.evaluate(STEALTH_SCRIPT)
                html = await page.content()
            except BrowserTimeout as e:
                raise PageFetchError(f"Timeout after {self.timeout_ms}ms loading {url}") from e
            except BrowserError as e:
                raise PageFetchError(f"Navigation to {url} failed: {e}") from e

            return FetchedPage(
                url=url,
                final_url=page.url,
                status_code=response.status if response else 200,
                content_type=response.headers.get("content-type") if response else None,
                html=html,
            )
        finally:
            await page.close()


class HttpPageFetcher:
    """Plain HTTP fetcher for sites that render without JavaScript."""

    def __init__(self, client: httpx.AsyncClient, timeout_ms: int | None = None, user_agent: str | None = None):
        settings = get_settings()
        self.client = client
        self.timeout = (timeout_ms or settings.crawler_timeout_ms) / 1000
        self.user_agent = user_agent or settings.crawler_user_agent

    async def fetch(self, url: str) -> FetchedPage:
        try:
            resp = await self.client.get(
                url,
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent, "Accept-Language": "el-GR,el;q=0.9,en;q=0.8"},
            )
        except httpx.TimeoutException as e:
            raise PageFetchError(f"Timeout after {self.timeout:.0f}s loading {url}") from e
        except httpx.HTTPError as e:
            raise PageFetchError(f"Request to {url} failed: {e}") from e

        return FetchedPage(
            url=url,
            final_url=str(resp.url),
            status_code=resp.status_code,
            content_type=resp.headers.get("content-type"),
            html=resp.text,
        )
