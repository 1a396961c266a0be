"""Contact and contact source models: normalized values plus provenance."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, TimestampMixin, UUIDMixin


class Contact(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "contacts"

    contact_type = Column(String(10), nullable=False)  # email, phone
    value = Column(String(320), nullable=False)
    is_generic = Column(Boolean, nullable=False, default=False)

    # Relationships
    sources = relationship("ContactSource", back_populates="contact")

    __table_args__ = (
        UniqueConstraint("contact_type", "value", name="uq_contact_type_value"),
    )


class ContactSource(UUIDMixin, Base):
    __tablename__ = "contact_sources"

    contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.id"), nullable=False, index=True)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)

    source_url = Column(Text, nullable=False)
    page_type = Column(String(20), nullable=False)  # homepage, contact, about, company, footer
    html_hash = Column(String(64), nullable=False, default="")
    found_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    contact = relationship("Contact", back_populates="sources")

    __table_args__ = (
        UniqueConstraint("contact_id", "business_id", "source_url", name="uq_contact_source"),
    )
