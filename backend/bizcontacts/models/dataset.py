"""Dataset model: a user's named collection of discovered businesses."""

from sqlalchemy import Column, ForeignKey, Index, String, Table, Text, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin

dataset_businesses = Table(
    "dataset_businesses",
    Base.metadata,
    Column("dataset_id", Uuid(as_uuid=True), ForeignKey("datasets.id", ondelete="CASCADE"), primary_key=True),
    Column("business_id", Uuid(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
)


class Dataset(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "datasets"

    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Reuse key: one dataset per (user, location, industry). Keys list every
    # id of the request, so they are unbounded text
    location_key = Column(Text)
    industry_key = Column(Text)

    # Relationships
    businesses = relationship("Business", secondary=dataset_businesses, back_populates="datasets")
    discovery_runs = relationship("DiscoveryRun", back_populates="dataset")

    __table_args__ = (
        Index("idx_dataset_reuse", "user_id", "location_key", "industry_key"),
    )
