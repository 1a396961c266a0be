"""Industry and industry group models.

An industry maps a product category to a registry activity code and the
keywords used for search-based discovery. A group bundles related
industries so one request can cover all of them.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from bizcontacts.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class IndustryGroup(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "industry_groups"

    name = Column(String(255), nullable=False, unique=True)

    # Relationships
    industries = relationship("Industry", back_populates="group", order_by="Industry.name")


class Industry(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "industries"

    name = Column(String(255), nullable=False)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("industry_groups.id", ondelete="SET NULL"), index=True)
    activity_id = Column(Integer, unique=True)  # registry activity code
    discovery_keywords = Column(JSONType)  # list of search keywords

    # Relationships
    group = relationship("IndustryGroup", back_populates="industries")
