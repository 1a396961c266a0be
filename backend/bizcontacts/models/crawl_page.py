"""Crawl page model: raw snapshot of one fetched page."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, UUIDMixin


class CrawlPage(UUIDMixin, Base):
    __tablename__ = "crawl_pages"

    crawl_job_id = Column(Uuid(as_uuid=True), ForeignKey("crawl_jobs.id"), nullable=False, index=True)

    url = Column(Text, nullable=False)
    final_url = Column(Text)
    status_code = Column(Integer)
    content_type = Column(String(100))
    page_type = Column(String(20), nullable=False, default="homepage")  # homepage, contact, about, company, footer

    html = Column(Text, nullable=False)
    hash = Column(String(64), nullable=False)  # sha256 of html
    fetched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    crawl_job = relationship("CrawlJob", back_populates="pages")

    __table_args__ = (
        UniqueConstraint("crawl_job_id", "url", name="uq_crawl_page_job_url"),
    )
