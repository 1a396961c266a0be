"""Crawl job model: fetch a bounded set of pages from one website."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin
from bizcontacts.models.job_status import CrawlJobStatus, status_column_type


class CrawlJob(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "crawl_jobs"

    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    website_url = Column(String(500), nullable=False)

    status = Column(status_column_type(CrawlJobStatus), nullable=False, default=CrawlJobStatus.QUEUED)
    pages_crawled = Column(Integer, nullable=False, default=0)
    pages_limit = Column(Integer, nullable=False, default=25)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    business = relationship("Business", back_populates="crawl_jobs")
    pages = relationship("CrawlPage", back_populates="crawl_job")

    __table_args__ = (
        CheckConstraint("pages_crawled <= pages_limit", name="ck_crawl_pages_within_limit"),
        Index("idx_crawl_status_created", "status", "created_at"),
        Index("idx_crawl_business_url", "business_id", "website_url"),
    )
