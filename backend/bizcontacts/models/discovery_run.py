"""Discovery run model: one tracked discovery request, end to end."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, JSONType, TimestampMixin, UUIDMixin
from bizcontacts.models.job_status import RunStatus, status_column_type


class DiscoveryRun(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "discovery_runs"

    dataset_id = Column(Uuid(as_uuid=True), ForeignKey("datasets.id"), nullable=False, index=True)
    user_id = Column(String(64), index=True)
    industry_group_id = Column(Uuid(as_uuid=True), ForeignKey("industry_groups.id", ondelete="SET NULL"))

    status = Column(status_column_type(RunStatus), nullable=False, default=RunStatus.PENDING, index=True)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    # Completeness + coarse export/refresh sizing, see services/cost_estimates.py
    cost_estimates = Column(JSONType)

    # Relationships
    dataset = relationship("Dataset", back_populates="discovery_runs")
    industry_group = relationship("IndustryGroup")
    businesses = relationship("Business", back_populates="discovery_run")
