import asyncio

import httpx

from bizcontacts.config import get_settings
from bizcontacts.crawler.fetchers import FetchedPage
from bizcontacts.crawler.robots import RobotsChecker
from bizcontacts.crawler.runner import process_crawl_job, run_crawl_batch
from bizcontacts.crawler.site_crawler import (
    DISALLOWED_MESSAGE,
    SiteCrawler,
    harvest_links,
    normalize_site_url,
    page_type_for_path,
)
from bizcontacts.errors import PageFetchError
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.crawl_page import CrawlPage
from bizcontacts.models.extraction_job import ExtractionJob
from bizcontacts.models.job_status import CrawlJobStatus, ExtractionJobStatus
from bizcontacts.services import job_store

HOMEPAGE = """
<html><body>
  <nav><a href="/menu">Menu</a><a href="/epikoinonia-mas">Επικοινωνία</a></nav>
  <footer><a href="/privacy">Privacy</a><a href="https://other.gr/x">Partner</a></footer>
</body></html>
"""


class FakeFetcher:
    """Serves HOMEPAGE for '/', plain pages elsewhere; chosen URLs fail or 404."""

    def __init__(self, failing=(), missing_all_but_home=False, fatal=()):
        self.failing = set(failing)
        self.fatal = set(fatal)
        self.missing_all_but_home = missing_all_but_home
        self.requested = []

    async def fetch(self, url):
        self.requested.append(url)
        if url in self.failing:
            raise PageFetchError(f"Timeout after 20000ms loading {url}")
        if url in self.fatal:
            raise RuntimeError("browser crashed")
        if url.endswith(".gr/"):
            return FetchedPage(url, url, 200, "text/html", HOMEPAGE)
        if self.missing_all_but_home:
            return FetchedPage(url, url, 404, "text/html", "")
        return FetchedPage(url, url, 200, "text/html", f"<html><body>{url}</body></html>")


class DenyAll:
    async def allowed(self, url):
        return False


def crawl(crawler, url, limit):
    return asyncio.run(crawler.crawl(url, limit))


def test_url_helpers():
    assert normalize_site_url("cafe.gr") == "https://cafe.gr/"
    assert normalize_site_url("http://cafe.gr/el") == "http://cafe.gr/el"
    assert page_type_for_path("/about-us") == "about"
    assert page_type_for_path("/σχετικά-μας") == "about"
    assert page_type_for_path("/company") == "company"
    assert page_type_for_path("/epikoinonia") == "contact"


def test_harvest_footer_and_contact_links_same_site_only():
    links = harvest_links(HOMEPAGE, "https://cafe.gr/")
    assert ("https://cafe.gr/privacy", "footer") in links
    assert ("https://cafe.gr/epikoinonia-mas", "contact") in links
    assert all("other.gr" not in url for url, _ in links)
    assert all(not url.endswith("/menu") for url, _ in links)


def test_crawl_is_bounded_by_limit():
    fetcher = FakeFetcher()
    outcome = crawl(SiteCrawler(fetcher, max_pages=10), "cafe.gr", 3)
    assert outcome.pages_crawled == 3
    assert outcome.pages[0].page_type == "homepage"
    assert outcome.pages[1].url == "https://cafe.gr/contact"
    assert outcome.error is None


def test_crawl_limit_never_exceeds_max_pages():
    outcome = crawl(SiteCrawler(FakeFetcher(), max_pages=4), "cafe.gr", 25)
    assert outcome.pages_crawled == 4


def test_partial_crawl_keeps_pages_and_records_error():
    fetcher = FakeFetcher(failing={"https://cafe.gr/contact"}, missing_all_but_home=True)
    outcome = crawl(SiteCrawler(fetcher, max_pages=10), "https://cafe.gr/", 10)

    assert outcome.pages_crawled == 1
    assert "Timeout" in outcome.error
    # harvested links are still visited after the seeds
    assert "https://cafe.gr/epikoinonia-mas" in fetcher.requested


def test_fatal_error_stops_the_queue():
    fetcher = FakeFetcher(fatal={"https://cafe.gr/contacts"})
    outcome = crawl(SiteCrawler(fetcher, max_pages=10), "cafe.gr", 10)
    assert outcome.pages_crawled == 2
    assert outcome.error.startswith("Crawl aborted at https://cafe.gr/contacts")


def test_robots_disallow():
    fetcher = FakeFetcher()
    outcome = crawl(SiteCrawler(fetcher, robots=DenyAll()), "cafe.gr", 10)
    assert outcome.disallowed is True
    assert outcome.error == DISALLOWED_MESSAGE
    assert fetcher.requested == []


ROBOTS_TXT = """
User-agent: bizcontacts-crawler
Disallow: /contact

User-agent: *
Disallow: /
"""


def robots_checker():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=ROBOTS_TXT)))
    return RobotsChecker(client, get_settings().crawler_user_agent)


def test_robots_groups_match_the_crawler_user_agent():
    async def check():
        robots = robots_checker()
        return [await robots.allowed(url) for url in ("https://cafe.gr/", "https://cafe.gr/contact-us")]

    assert asyncio.run(check()) == [True, False]


def test_robots_is_checked_for_every_page():
    fetcher = FakeFetcher()

    async def run():
        return await SiteCrawler(fetcher, robots=robots_checker(), max_pages=10).crawl("cafe.gr", 10)

    outcome = asyncio.run(run())

    assert outcome.disallowed is False
    assert fetcher.requested[0] == "https://cafe.gr/"
    assert not any(url.startswith("https://cafe.gr/contact") for url in fetcher.requested)
    assert "https://cafe.gr/about" in fetcher.requested


def queue_job(db, business, url="https://cafe.gr/", pages_limit=None):
    job = job_store.enqueue_crawl_job(db, business, url, pages_limit=pages_limit)
    db.commit()
    return job.id


def test_partial_crawl_job_succeeds_with_error_message(db, session_factory, make_business):
    business = make_business(website_url="https://cafe.gr/")
    job_id = queue_job(db, business)
    fetcher = FakeFetcher(failing={"https://cafe.gr/contact"}, missing_all_but_home=True)

    status = asyncio.run(process_crawl_job(session_factory, job_id, fetcher, max_pages=10))

    db.expire_all()
    job = db.get(CrawlJob, job_id)
    assert status == CrawlJobStatus.SUCCESS
    assert job.status == CrawlJobStatus.SUCCESS
    assert job.pages_crawled == 1
    assert "Timeout" in job.error_message
    assert db.query(CrawlPage).filter(CrawlPage.crawl_job_id == job_id).count() == 1
    extraction = db.query(ExtractionJob).filter(ExtractionJob.business_id == business.id).one()
    assert extraction.status == ExtractionJobStatus.PENDING


def test_disallowed_crawl_job_fails_and_rearms_extraction(db, session_factory, make_business):
    business = make_business(website_url="https://cafe.gr/")
    job_id = queue_job(db, business)

    status = asyncio.run(process_crawl_job(session_factory, job_id, FakeFetcher(), robots=DenyAll()))

    db.expire_all()
    job = db.get(CrawlJob, job_id)
    assert status == CrawlJobStatus.FAILED
    assert job.pages_crawled == 0
    assert job.error_message == DISALLOWED_MESSAGE
    assert db.query(ExtractionJob).filter(ExtractionJob.business_id == business.id).one().status == ExtractionJobStatus.PENDING


def test_crawl_job_pages_stay_within_job_limit(db, session_factory, make_business):
    business = make_business(website_url="https://cafe.gr/")
    job_id = queue_job(db, business, pages_limit=2)

    asyncio.run(process_crawl_job(session_factory, job_id, FakeFetcher(), max_pages=10))

    db.expire_all()
    job = db.get(CrawlJob, job_id)
    assert job.pages_crawled == 2
    assert job.pages_crawled <= job.pages_limit


def test_batch_skips_jobs_it_cannot_claim(db, session_factory, make_business):
    first = make_business(website_url="https://one.gr/")
    second = make_business(website_url="https://two.gr/")
    ids = [queue_job(db, first, "https://one.gr/"), queue_job(db, second, "https://two.gr/")]
    job_store.claim_crawl_job(db, ids[1])

    class Session:
        async def __aenter__(self):
            return FakeFetcher()

        async def __aexit__(self, *exc):
            return False

    counts = asyncio.run(run_crawl_batch(
        session_factory, ids, concurrency=2,
        fetcher_session=Session, robots_factory=lambda client: None,
    ))

    assert counts["claimed"] == 1
    assert counts["success"] == 1
