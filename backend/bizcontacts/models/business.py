"""Business model: canonical record, one row per external identifier."""

from sqlalchemy import Column, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin
from bizcontacts.models.dataset import dataset_businesses


class Business(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "businesses"

    # Dedup: registry number, place id, or a synthetic name+location key
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    source = Column(String(20), nullable=False, default="registry")  # registry, places, synthetic

    # Core
    name = Column(Text, nullable=False)
    address = Column(Text)
    postal_code = Column(String(20))

    # Location
    municipality_id = Column(Integer, index=True)
    prefecture_id = Column(Integer, index=True)
    city_id = Column(String(64), index=True)
    latitude = Column(Float)
    longitude = Column(Float)

    # Contact data known at discovery time (or backfilled by extraction)
    website_url = Column(String(500))
    phone = Column(String(32))
    email = Column(String(320))

    activity_id = Column(Integer, index=True)

    # Place id for the place-detail fallback (equals external_id for places results)
    place_id = Column(String(255), index=True)

    discovery_run_id = Column(Uuid(as_uuid=True), ForeignKey("discovery_runs.id"), index=True)

    # Relationships
    discovery_run = relationship("DiscoveryRun", back_populates="businesses")
    datasets = relationship("Dataset", secondary=dataset_businesses, back_populates="businesses")
    crawl_jobs = relationship("CrawlJob", back_populates="business")
    extraction_job = relationship("ExtractionJob", back_populates="business", uselist=False)
    social_profiles = relationship("SocialProfile", back_populates="business")

    __table_args__ = (
        Index("idx_business_municipality_activity", "municipality_id", "activity_id"),
    )
