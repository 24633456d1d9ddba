from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.utcnow()


class WorkProgressEntry(Base):
    __tablename__ = "work_progress_entries"
    __table_args__ = (Index("ix_work_progress_entries_org_date", "organization_id", "work_date"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    site_name = Column(String(255), nullable=True)
    work_type = Column(String(64), nullable=False)
    work_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(32), nullable=False)
    total_quantity = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    materials = relationship(
        "WorkProgressMaterial",
        back_populates="entry",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class WorkProgressMaterial(Base):
    """Material consumed by one work entry, optionally tied to a purchase."""

    __tablename__ = "work_progress_materials"
    __table_args__ = (
        Index("ix_work_progress_materials_purchase", "purchase_id"),
        Index("ix_work_progress_materials_material", "organization_id", "material_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_progress_id = Column(
        String(36),
        ForeignKey("work_progress_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    material_id = Column(String(36), ForeignKey("material_masters.id", ondelete="SET NULL"), nullable=True)
    purchase_id = Column(String(36), ForeignKey("material_purchases.id", ondelete="SET NULL"), nullable=True)
    material_name = Column(String(255), nullable=False)
    unit = Column(String(32), nullable=True)
    quantity = Column(Float, nullable=False, default=0.0)
    balance_quantity = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    entry = relationship("WorkProgressEntry", back_populates="materials")
