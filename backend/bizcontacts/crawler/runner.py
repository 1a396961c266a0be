"""Crawl job execution: claim, crawl, persist pages, finish, re-arm extraction.

A worker batch shares one browser (or one HTTP client); each job gets its
own fetcher session. Concurrency inside a batch is bounded by a semaphore.
"""

import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager

import httpx

from bizcontacts.config import get_settings
from bizcontacts.crawler.fetchers import BrowserPageFetcher, HttpPageFetcher
from bizcontacts.crawler.robots import RobotsChecker
from bizcontacts.crawler.site_crawler import CrawlOutcome, SiteCrawler
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.crawl_page import CrawlPage
from bizcontacts.models.job_status import CrawlJobStatus
from bizcontacts.services import job_store
from bizcontacts.services.job_store import dialect_insert

logger = logging.getLogger(__name__)

NO_PAGES_MESSAGE = "No pages could be fetched"


def save_pages(db, job_id: uuid.UUID, outcome: CrawlOutcome) -> None:
    """Insert crawled pages; a (job, url) pair that already exists is ignored."""
    for page in outcome.pages:
        db.execute(
            dialect_insert(db, CrawlPage)
            .values(
                id=uuid.uuid4(),
                crawl_job_id=job_id,
                url=page.url,
                final_url=page.final_url,
                status_code=page.status_code,
                content_type=(page.content_type or "")[:100] or None,
                page_type=page.page_type,
                html=page.html,
                hash=page.hash,
            )
            .on_conflict_do_nothing(index_elements=["crawl_job_id", "url"])
        )
    db.commit()


async def process_crawl_job(session_factory, job_id: uuid.UUID, fetcher, robots=None,
                            max_pages: int | None = None) -> CrawlJobStatus | None:
    """Run one crawl job to a terminal state. None when another worker claimed it."""
    db = session_factory()
    try:
        if not job_store.claim_crawl_job(db, job_id):
            logger.debug(f"[crawl {job_id}] Not claimable, skipping")
            return None

        job = db.get(CrawlJob, job_id)
        business_id = job.business_id
        pages_limit = job.pages_limit

        crawler = SiteCrawler(fetcher, robots=robots, max_pages=max_pages)
        try:
            outcome = await crawler.crawl(job.website_url, pages_limit)
        except Exception as e:
            logger.error(f"[crawl {job_id}] Crawl of {job.website_url} failed: {e}")
            outcome = CrawlOutcome(error=str(e)[:2000] or e.__class__.__name__)

        try:
            save_pages(db, job_id, outcome)
        except Exception as e:
            db.rollback()
            logger.error(f"[crawl {job_id}] Could not store pages: {e}")
            outcome = CrawlOutcome(error=f"Storing pages failed: {e}"[:2000])

        pages = min(outcome.pages_crawled, pages_limit)
        if pages > 0:
            status = CrawlJobStatus.SUCCESS
            error = outcome.error
        else:
            status = CrawlJobStatus.FAILED
            error = outcome.error or NO_PAGES_MESSAGE

        job_store.finish_crawl_job(db, job_id, status, pages, error)
        job_store.reset_extraction_job(db, business_id)
        db.commit()

        logger.info(f"[crawl {job_id}] {status.value}: {pages} pages")
        return status
    finally:
        db.close()


def _http_sessions(client: httpx.AsyncClient):
    @asynccontextmanager
    async def session():
        yield HttpPageFetcher(client)
    return session


def _browser_sessions(browser):
    @asynccontextmanager
    async def session():
        async with browser.session() as context:
            yield BrowserPageFetcher(context)
    return session


async def run_crawl_batch(session_factory, job_ids: list[uuid.UUID], use_browser: bool | None = None,
                          concurrency: int | None = None, fetcher_session=None,
                          robots_factory=None) -> dict:
    """Process a batch of crawl jobs with bounded concurrency.

    fetcher_session is a callable returning an async context manager that
    yields a page fetcher; by default one browser is launched for the whole
    batch (or an httpx fetcher when the browser is disabled).
    """
    settings = get_settings()
    if use_browser is None:
        use_browser = settings.crawler_use_browser
    semaphore = asyncio.Semaphore(concurrency or settings.crawler_concurrency)
    counts = {"claimed": 0, "success": 0, "failed": 0, "errors": 0}

    async with AsyncExitStack() as stack:
        client = await stack.enter_async_context(httpx.AsyncClient())
        robots = robots_factory(client) if robots_factory else RobotsChecker(client, settings.crawler_user_agent)

        if fetcher_session is None:
            if use_browser:
                from bizcontacts.crawler.browser import get_browser
                browser = await stack.enter_async_context(get_browser())
                fetcher_session = _browser_sessions(browser)
            else:
                fetcher_session = _http_sessions(client)

        async def one(job_id):
            async with semaphore:
                async with fetcher_session() as fetcher:
                    return await process_crawl_job(session_factory, job_id, fetcher, robots)

        results = await asyncio.gather(*(one(job_id) for job_id in job_ids), return_exceptions=True)

    for job_id, result in zip(job_ids, results):
        if isinstance(result, Exception):
            counts["errors"] += 1
            logger.error(f"[crawl {job_id}] Worker error: {result}")
        elif result is not None:
            counts["claimed"] += 1
            counts[result.value] += 1
    return counts
