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
)

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.utcnow()


class MaterialPurchase(Base):
    """
    A procurement event.

    `consumed_quantity` / `remaining_quantity` are a cache: reads replace
    them with the live consumption aggregate and the reconciliation job
    writes that aggregate back.
    """

    __tablename__ = "material_purchases"
    __table_args__ = (
        Index("ix_material_purchases_org_date", "organization_id", "purchase_date"),
        Index("ix_material_purchases_material", "material_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id = Column(String(36), ForeignKey("material_masters.id", ondelete="SET NULL"), nullable=True)
    material_name = Column(String(255), nullable=False)
    category = Column(String(64), nullable=True)

    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True, index=True)
    site_name = Column(String(255), nullable=True)

    quantity = Column(Float, nullable=False)
    unit = Column(String(32), nullable=True)
    unit_rate = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, default=0.0)

    vendor_name = Column(String(255), nullable=True)
    vendor_invoice_number = Column(String(128), nullable=True)
    purchase_date = Column(Date, nullable=False)

    consumed_quantity = Column(Float, nullable=False, default=0.0)
    remaining_quantity = Column(Float, nullable=False, default=0.0)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
