"""
Site directory lookups used by the material ledgers.

Purchases accept a free-text site and proceed with a null site when it
does not match; receipts pick from the directory and must reference a
real site when one is given.
"""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

UNALLOCATED_SITE_ID = "unallocated"
UNALLOCATED_SITE_NAME = "Unallocated"


def is_unallocated(site_id: Optional[str], site_name: Optional[str] = None) -> bool:
    if site_id is not None and site_id.strip().lower() == UNALLOCATED_SITE_ID:
        return True
    if site_name is not None and site_name.strip().lower() == UNALLOCATED_SITE_NAME.lower():
        return True
    return False


def create_site(db: Session, *, organization_id: str, name: str, location: Optional[str] = None) -> models.Site:
    site = models.Site(organization_id=organization_id, name=name.strip(), location=location)
    db.add(site)
    db.flush()
    return site


def get_site(db: Session, *, organization_id: str, site_id: str) -> Optional[models.Site]:
    return (
        db.query(models.Site)
        .filter(models.Site.organization_id == organization_id, models.Site.id == site_id)
        .first()
    )


def resolve_site(db: Session, *, organization_id: str, site: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Resolve a site id or free-text name to `(site_id, site_name)` or `(None, None)`."""
    value = (site or "").strip()
    if not value or is_unallocated(value, value):
        return None, None

    match = get_site(db, organization_id=organization_id, site_id=value)
    if match is None:
        match = (
            db.query(models.Site)
            .filter(
                models.Site.organization_id == organization_id,
                func.lower(func.trim(models.Site.name)) == value.lower(),
            )
            .order_by(models.Site.created_at.asc())
            .first()
        )
    if match is None:
        return None, None
    return match.id, match.name


def require_site(db: Session, *, organization_id: str, site_id: str) -> models.Site:
    site = get_site(db, organization_id=organization_id, site_id=site_id)
    if not site:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid site selection.",
        )
    return site
