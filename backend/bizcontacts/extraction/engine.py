"""Extraction engine: crawl pages -> deduplicated contacts with provenance.

One ExtractionJob covers one business. The engine reads the pages of the
business's latest crawls, runs the HTML extractor on each, keeps the best
sighting per (type, value), and writes Contact / ContactSource /
SocialProfile rows. When the pages leave gaps it asks the place-detail API
for a website and phone.
"""

import logging
import uuid
from datetime import datetime, timezone

import httpx
from sqlalchemy import select

from bizcontacts.config import get_settings
from bizcontacts.extraction.html_extractor import ExtractedContact, extract_from_html
from bizcontacts.models.business import Business
from bizcontacts.models.contact import Contact, ContactSource
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.crawl_page import CrawlPage
from bizcontacts.models.extraction_job import ExtractionJob
from bizcontacts.models.job_status import ExtractionJobStatus
from bizcontacts.models.social_profile import SocialProfile
from bizcontacts.services import job_store
from bizcontacts.services.contact_normalizer import is_generic_email, is_junk_email, normalize_phone
from bizcontacts.services.job_store import dialect_insert

logger = logging.getLogger(__name__)

PLACE_SOURCE_URL = "https://maps.google.com/?cid={place_id}"


def best_sightings(items: list[ExtractedContact]) -> list[ExtractedContact]:
    """One sighting per (type, value): highest confidence, then first seen."""
    best: dict[tuple[str, str], ExtractedContact] = {}
    for item in items:
        key = (item.contact_type, item.value)
        if key not in best or item.confidence > best[key].confidence:
            best[key] = item
    return list(best.values())


class ExtractionEngine:
    """Runs extraction jobs against one session."""

    def __init__(self, db, places_client=None, region_code: str | None = None):
        self.db = db
        self.places_client = places_client
        self.region_code = region_code or get_settings().phone_region

    # --- job lifecycle --------------------------------------------------

    def run_job(self, job_id: uuid.UUID) -> bool:
        """Claim, process and finish one job. False when another worker got it."""
        if not job_store.claim_extraction_job(self.db, job_id):
            logger.debug(f"[extract {job_id}] Not claimable, skipping")
            return False

        job = self.db.get(ExtractionJob, job_id)
        business_id = job.business_id
        try:
            summary = self.process(job)
            job_store.finish_extraction_job(self.db, job_id, ExtractionJobStatus.SUCCESS)
            logger.info(f"[extract {job_id}] Done: {summary}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"[extract {job_id}] Failed: {e}")
            job_store.finish_extraction_job(self.db, job_id, ExtractionJobStatus.FAILED, str(e)[:2000])

        run_id = self.db.execute(
            select(Business.discovery_run_id).where(Business.id == business_id)
        ).scalar_one_or_none()
        if run_id:
            job_store.complete_discovery_run_if_done(self.db, run_id)
        return True

    def process(self, job: ExtractionJob) -> dict:
        business = self.db.get(Business, job.business_id)
        tag = f"[extract {business.name[:40]}]"

        if self._has_contact(business.id, "email") and self._has_contact(business.id, "phone"):
            logger.info(f"{tag} Email and phone already known, nothing to do")
            return {"skipped": True}

        pages = self._load_pages(business.id)
        items: list[ExtractedContact] = []
        page_types: dict[str, tuple[str, str]] = {}
        social: dict[str, str] = {}

        for page in pages:
            result = extract_from_html(page.html, page.final_url or page.url, self.region_code)
            for item in result.contacts:
                page_types.setdefault(item.source_url, (page.page_type, page.hash))
            items.extend(result.contacts)
            for platform, url in result.social.items():
                social.setdefault(platform, url)

        contacts = [
            c for c in best_sightings(items)
            if not (c.contact_type == "email" and is_junk_email(c.value))
        ]
        contacts.sort(key=lambda c: c.confidence, reverse=True)

        for item in contacts:
            page_type, html_hash = page_types[item.source_url]
            if item.region == "footer":
                page_type = "footer"
            self._save_contact(business, item.contact_type, item.value, item.source_url, page_type, html_hash)

        for platform, url in social.items():
            self._save_social(business.id, platform, url)

        emails = [c.value for c in contacts if c.contact_type == "email"]
        phones = [c.value for c in contacts if c.contact_type == "phone"]
        if emails and not business.email:
            business.email = emails[0]
        if phones and not business.phone:
            business.phone = phones[0]
        self.db.commit()

        fallback = self._place_fallback(business, no_pages=not pages, found_phone=bool(phones))

        logger.info(
            f"{tag} {len(pages)} pages, {len(emails)} emails, {len(phones)} phones, "
            f"{len(social)} social profiles"
        )
        return {
            "pages": len(pages),
            "emails": len(emails),
            "phones": len(phones),
            "social": len(social),
            "fallback": fallback,
        }

    # --- reads ----------------------------------------------------------

    def _has_contact(self, business_id: uuid.UUID, contact_type: str) -> bool:
        return self.db.execute(
            select(ContactSource.id)
            .join(Contact, Contact.id == ContactSource.contact_id)
            .where(ContactSource.business_id == business_id, Contact.contact_type == contact_type)
            .limit(1)
        ).scalar_one_or_none() is not None

    def _load_pages(self, business_id: uuid.UUID) -> list[CrawlPage]:
        """Pages from the business's crawls; the newest crawl wins per URL."""
        rows = self.db.execute(
            select(CrawlPage)
            .join(CrawlJob, CrawlJob.id == CrawlPage.crawl_job_id)
            .where(CrawlJob.business_id == business_id)
            .order_by(CrawlJob.created_at.desc(), CrawlPage.fetched_at)
        ).scalars().all()
        pages: dict[str, CrawlPage] = {}
        for page in rows:
            pages.setdefault(page.url, page)
        return list(pages.values())

    # --- writes ---------------------------------------------------------

    def _save_contact(self, business: Business, contact_type: str, value: str,
                      source_url: str, page_type: str, html_hash: str) -> None:
        self.db.execute(
            dialect_insert(self.db, Contact)
            .values(
                id=uuid.uuid4(),
                contact_type=contact_type,
                value=value,
                is_generic=contact_type == "email" and is_generic_email(value),
            )
            .on_conflict_do_nothing(index_elements=["contact_type", "value"])
        )
        contact_id = self.db.execute(
            select(Contact.id).where(Contact.contact_type == contact_type, Contact.value == value)
        ).scalar_one()

        self.db.execute(
            dialect_insert(self.db, ContactSource)
            .values(
                id=uuid.uuid4(),
                contact_id=contact_id,
                business_id=business.id,
                source_url=source_url,
                page_type=page_type,
                html_hash=html_hash or "",
                found_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["contact_id", "business_id", "source_url"])
        )

    def _save_social(self, business_id: uuid.UUID, platform: str, url: str) -> None:
        stmt = dialect_insert(self.db, SocialProfile).values(
            id=uuid.uuid4(),
            business_id=business_id,
            platform=platform,
            url=url,
        )
        self.db.execute(stmt.on_conflict_do_update(
            index_elements=["business_id", "platform"],
            set_={"url": url, "updated_at": datetime.now(timezone.utc)},
        ))

    # --- place-detail fallback ------------------------------------------

    def _places(self):
        if self.places_client is None and get_settings().places_api_key:
            from bizcontacts.services.places_client import PlacesClient
            self.places_client = PlacesClient()
        return self.places_client

    def _place_fallback(self, business: Business, no_pages: bool, found_phone: bool) -> dict | None:
        """Backfill website and phone from place details. Never sets an email."""
        has_phone = found_phone or bool(business.phone) or self._has_contact(business.id, "phone")
        if not business.place_id or not (no_pages or not has_phone or not business.website_url):
            return None

        client = self._places()
        if client is None:
            logger.debug(f"[extract {business.name[:40]}] No place API key, skipping place-detail fallback")
            return None

        try:
            details = client.get_place_details(business.place_id)
        except httpx.HTTPError as e:
            logger.warning(f"[extract {business.name[:40]}] Place-detail lookup failed: {e}")
            return {"error": str(e)[:200]}
        if details is None:
            return {"found": False}

        result = {"found": True, "website": False, "phone": False}

        if details.website and not business.website_url:
            business.website_url = details.website
            if job_store.enqueue_crawl_job(self.db, business, details.website):
                logger.info(f"[extract {business.name[:40]}] New website {details.website}, crawl queued")
            result["website"] = True

        phone = normalize_phone(details.phone, self.region_code)
        if phone and not has_phone:
            self._save_contact(
                business, "phone", phone,
                PLACE_SOURCE_URL.format(place_id=business.place_id),
                "homepage", "",
            )
            if not business.phone:
                business.phone = phone
            result["phone"] = True

        self.db.commit()
        return result
