from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
)

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.utcnow()


class OpeningBalanceStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"
    FAILED = "FAILED"


class MaterialReceipt(Base):
    __tablename__ = "material_receipts"
    __table_args__ = (
        Index("ix_material_receipts_org_date", "organization_id", "date"),
        Index("ix_material_receipts_material_site", "material_id", "site_id"),
        Index("ix_material_receipts_ob_status", "organization_id", "opening_balance_status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False)
    receipt_number = Column(String(64), nullable=True)
    vehicle_number = Column(String(64), nullable=False)

    material_id = Column(String(36), ForeignKey("material_masters.id", ondelete="CASCADE"), nullable=False)
    material_name = Column(String(255), nullable=False)

    filled_weight = Column(Float, nullable=False)
    empty_weight = Column(Float, nullable=False)
    net_weight = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)

    vendor_id = Column(String(36), nullable=True)
    vendor_name = Column(String(255), nullable=True)
    linked_purchase_id = Column(
        String(36),
        ForeignKey("material_purchases.id", ondelete="SET NULL"),
        nullable=True,
    )

    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    site_name = Column(String(255), nullable=True)

    # Outcome of the receipt's opening-balance push; FAILED/PENDING rows are retried.
    opening_balance_status = Column(
        SAEnum(OpeningBalanceStatusEnum, name="opening_balance_status_enum", native_enum=False),
        nullable=False,
        default=OpeningBalanceStatusEnum.PENDING,
    )
    opening_balance_error = Column(Text, nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
