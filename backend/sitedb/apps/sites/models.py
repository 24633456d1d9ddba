from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.utcnow()


class Site(Base):
    __tablename__ = "sites"
    __table_args__ = (Index("ix_sites_org_name", "organization_id", "name"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
