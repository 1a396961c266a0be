"""Social profile model: canonical profile URL per business and platform."""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin


class SocialProfile(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "social_profiles"

    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    platform = Column(String(20), nullable=False)  # facebook, instagram, linkedin, twitter, youtube
    url = Column(String(500), nullable=False)

    # Relationships
    business = relationship("Business", back_populates="social_profiles")

    __table_args__ = (
        UniqueConstraint("business_id", "platform", name="uq_social_business_platform"),
    )
