"""Extraction job model: derive contacts for one business."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin
from bizcontacts.models.job_status import ExtractionJobStatus, status_column_type


class ExtractionJob(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "extraction_jobs"

    # One job per business; re-running resets it instead of adding rows
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), unique=True, nullable=False)

    status = Column(status_column_type(ExtractionJobStatus), nullable=False, default=ExtractionJobStatus.PENDING)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    business = relationship("Business", back_populates="extraction_job")

    __table_args__ = (
        Index("idx_extraction_status_created", "status", "created_at"),
    )
