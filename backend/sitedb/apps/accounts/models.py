# backend/sitedb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_prefixed_id


def _utcnow() -> datetime:
    return datetime.utcnow()


def _organization_id() -> str:
    return generate_prefixed_id("ORG")


def _user_id() -> str:
    return generate_prefixed_id("USR")


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class OrganizationRole(str, enum.Enum):
    """Roles a member can hold inside one organization (tenant)."""

    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    PROJECT_MANAGER = "project-manager"
    MATERIALS_MANAGER = "materials-manager"
    SITE_SUPERVISOR = "site-supervisor"
    FINANCE_MANAGER = "finance-manager"
    EXECUTIVE = "executive"
    USER = "user"


# ---------------------------------------------------------------------------
# ORGANIZATION + USER
# ---------------------------------------------------------------------------


class Organization(Base):
    """
    A construction company using the platform.

    Every ledger row is scoped to exactly one organization.
    """

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=_organization_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(64), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    users = relationship("User", back_populates="organization", lazy="selectin")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_users_org_email"),
        Index("ix_users_org_role", "organization_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=_user_id)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(
        Enum(OrganizationRole, name="organization_role_enum", native_enum=False),
        nullable=False,
        default=OrganizationRole.USER,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    organization = relationship("Organization", back_populates="users", lazy="joined")
