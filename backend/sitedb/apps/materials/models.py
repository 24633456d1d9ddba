from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.utcnow()


def normalize_material_name(name: str) -> str:
    return (name or "").strip().lower()


class MaterialMaster(Base):
    """
    Canonical per-tenant record of a material.

    `quantity` is cumulative procured quantity. `opening_balance` is the
    sum of the site allocations when the material is tracked per site,
    and is adjusted directly otherwise.
    """

    __tablename__ = "material_masters"
    __table_args__ = (
        UniqueConstraint("organization_id", "normalized_name", name="uq_material_masters_org_name"),
        Index("ix_material_masters_org_name", "organization_id", "normalized_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    normalized_name = Column(String(255), nullable=False)
    category = Column(String(64), nullable=True)
    unit = Column(String(32), nullable=True)

    quantity = Column(Float, nullable=False, default=0.0)
    consumed_quantity = Column(Float, nullable=False, default=0.0)
    standard_rate = Column(Float, nullable=False, default=0.0)
    opening_balance = Column(Float, nullable=False, default=0.0)

    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    site_name = Column(String(255), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    allocations = relationship(
        "MaterialSiteAllocation",
        back_populates="material",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class MaterialSiteAllocation(Base):
    __tablename__ = "material_site_allocations"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "material_id",
            "site_id",
            name="uq_material_site_allocations_org_material_site",
        ),
        Index("ix_material_site_allocations_material", "material_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id = Column(String(36), ForeignKey("material_masters.id", ondelete="CASCADE"), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)

    opening_balance = Column(Float, nullable=False, default=0.0)
    inward_qty = Column(Float, nullable=False, default=0.0)
    utilization_qty = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    material = relationship("MaterialMaster", back_populates="allocations")
    site = relationship("Site", lazy="joined")

    @property
    def site_name(self):
        return self.site.name if self.site is not None else None

    @property
    def available_qty(self) -> float:
        return max(0.0, (self.opening_balance or 0) + (self.inward_qty or 0) - (self.utilization_qty or 0))
