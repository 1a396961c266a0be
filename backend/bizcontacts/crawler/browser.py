"""Shared headless browser for crawling JS-rendered business sites.

Uses Patchright (Playwright fork with anti-detection patches). One browser
process is shared by a worker batch; every crawl job gets its own
isolated context so cookies and storage never leak between sites.
"""

import logging
from contextlib import asynccontextmanager

from bizcontacts.config import get_settings

logger = logging.getLogger(__name__)

# Injected after navigation; context.add_init_script breaks DNS resolution in Docker
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['el-GR', 'el', 'en-US', 'en'] });
Object.defineProperty(navigator, 'platform', { get: () => 'Win32' });
window.chrome = { runtime: {}, loadTimes: () => ({}), csi: () => ({}) };
"""

BROWSER_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--no-first-run",
    "--window-size=1366,900",
]


def _context_options(user_agent: str) -> dict:
    return {
        "viewport": {"width": 1366, "height": 900},
        "locale": "el-GR",
        "timezone_id": "Europe/Athens",
        "user_agent": user_agent,
        "accept_downloads": False,
        "ignore_https_errors": True,
    }


class CrawlBrowser:
    """One launched browser; hands out a fresh context per crawl job."""

    def __init__(self, headless: bool = True, timeout: int | None = None, user_agent: str | None = None):
        settings = get_settings()
        self.headless = headless
        self.timeout = timeout or settings.crawler_timeout_ms
        self.user_agent = user_agent or settings.crawler_user_agent
        self.browser = None
        self.playwright = None

    async def launch(self) -> bool:
        """Launch browser. Returns True on success."""
        try:
            from patchright.async_api import async_playwright
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            logger.info("Launched Patchright Chromium for crawling")
            return True
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            return False

    @asynccontextmanager
    async def session(self):
        """Isolated browser context for one crawl job, closed on exit."""
        if not self.browser:
            raise RuntimeError("Browser not launched")
        context = await self.browser.new_context(**_context_options(self.user_agent))
        context.set_default_navigation_timeout(self.timeout)
        try:
            yield context
        finally:
            await context.close()

    async def close(self):
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()


@asynccontextmanager
async def get_browser(headless: bool = True):
    """Context manager for a shared crawl browser."""
    browser = CrawlBrowser(headless=headless)
    try:
        if not await browser.launch():
            raise RuntimeError("Failed to launch crawl browser")
        yield browser
    finally:
        await browser.close()
