"""
Roof Lead Model - Map-captured roof leads and their images
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, DateTime, Float, Integer, Text, Uuid, ForeignKey, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid
import enum

from roof_finder.db.base import Base, TimestampMixin, utcnow


class ConditionLabel(str, enum.Enum):
    DIRTY = "dirty"
    AGED = "aged"
    PATCHED = "patched"
    PONDING = "ponding"
    DAMAGED = "damaged"
    OTHER = "other"


class RoofLeadStatus(str, enum.Enum):
    NEW = "new"
    ASSESSED = "assessed"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    REJECTED = "rejected"


TERMINAL_STATUSES = {RoofLeadStatus.CONVERTED, RoofLeadStatus.REJECTED}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RoofLead(Base, TimestampMixin):
    """
    A roof spotted on the map, pending qualification.

    ``geometry`` holds the store's WKT text; the envelope columns mirror its
    bounding box so viewport queries can filter without a spatial index.
    """
    __tablename__ = "roof_leads"
    __table_args__ = (
        CheckConstraint("condition_score BETWEEN 1 AND 5", name="ck_roof_leads_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Geometry
    geometry: Mapped[str] = mapped_column(Text, nullable=False)
    geometry_type: Mapped[str] = mapped_column(String(16), nullable=False)
    min_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    min_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    max_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    max_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)

    # Assessment
    condition_label: Mapped[ConditionLabel] = mapped_column(
        SQLEnum(ConditionLabel, name="roof_condition_label", values_callable=_enum_values),
        default=ConditionLabel.OTHER,
        nullable=False,
    )
    condition_score: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[RoofLeadStatus] = mapped_column(
        SQLEnum(RoofLeadStatus, name="roof_lead_status", values_callable=_enum_values),
        default=RoofLeadStatus.NEW,
        nullable=False,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Address
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Estimates
    estimated_sqft: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    estimated_repair_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Links to downstream CRM records (prospect/property are write-once)
    linked_prospect_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("prospects.id"), nullable=True)
    linked_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    linked_property_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("properties.id"), nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)

    # Relationships
    tag_rows: Mapped[List["RoofLeadTag"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="RoofLeadTag.position",
        lazy="selectin",
    )
    images: Mapped[List["RoofLeadImage"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by=lambda: RoofLeadImage.created_at.desc(),
    )
    linked_prospect = relationship("Prospect")
    linked_property = relationship("Property")

    @property
    def tags(self) -> List[str]:
        return [row.tag for row in self.tag_rows]

    @tags.setter
    def tags(self, values) -> None:
        seen = []
        for value in values or []:
            value = str(value).strip()
            if value and value not in seen:
                seen.append(value)
        existing = {row.tag: row for row in self.tag_rows}
        rows = []
        for position, tag in enumerate(seen):
            row = existing.get(tag) or RoofLeadTag(tag=tag)
            row.position = position
            rows.append(row)
        self.tag_rows = rows


class RoofLeadTag(Base):
    __tablename__ = "roof_lead_tags"

    roof_lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roof_leads.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(100), primary_key=True, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    lead: Mapped["RoofLead"] = relationship(back_populates="tag_rows")


class RoofLeadImage(Base):
    """Photo of a roof, stored in a private bucket and owned by its lead"""
    __tablename__ = "roof_lead_images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    roof_lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roof_leads.id", ondelete="CASCADE"), nullable=False, index=True
    )

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lead: Mapped["RoofLead"] = relationship(back_populates="images")
