from __future__ import annotations

import math
from datetime import date
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from sitedb.apps.materials import services as material_services
from sitedb.apps.sites import services as site_services
from sitedb.apps.work_progress import usage as usage_helpers
from sitedb.schemas import DEFAULT_PAGE_SIZE, build_pagination, validate_page
from . import models, schemas


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _require_text(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _validate_create(payload: schemas.PurchaseCreate) -> None:
    if (
        not _require_text(payload.material_name)
        or not _require_text(payload.site)
        or not _is_number(payload.quantity)
        or not _is_number(payload.unit_rate)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="materialName, site, quantity and unitRate are required.",
        )
    if payload.quantity <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="quantity must be greater than zero.")
    if payload.unit_rate < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unitRate cannot be negative.")
    if payload.total_amount is not None and not _is_number(payload.total_amount):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="totalAmount must be numeric.")


def get_purchase(db: Session, *, organization_id: str, purchase_id: str) -> models.MaterialPurchase:
    purchase = (
        db.query(models.MaterialPurchase)
        .filter(
            models.MaterialPurchase.organization_id == organization_id,
            models.MaterialPurchase.id == purchase_id,
        )
        .first()
    )
    if not purchase:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase not found.")
    return purchase


def create_purchase(
    db: Session,
    *,
    organization_id: str,
    payload: schemas.PurchaseCreate,
    actor_user_id: Optional[str],
) -> models.MaterialPurchase:
    """
    Record a purchase and fold it into the material catalog.

    The catalog merge and the purchase insert share the caller's
    transaction; if either fails nothing is committed.
    """
    _validate_create(payload)

    site_id, site_name = site_services.resolve_site(db, organization_id=organization_id, site=payload.site)
    if site_id is None:
        site_name = payload.site.strip()

    material = material_services.merge_purchase(
        db,
        organization_id=organization_id,
        name=payload.material_name,
        unit=payload.unit,
        rate=payload.unit_rate,
        quantity=payload.quantity,
        category=payload.category,
        site_id=site_id,
        site_name=site_name,
    )

    total_amount = payload.total_amount
    if total_amount is None:
        total_amount = payload.quantity * payload.unit_rate

    purchase = models.MaterialPurchase(
        organization_id=organization_id,
        material_id=material.id,
        material_name=payload.material_name.strip(),
        category=payload.category,
        site_id=site_id,
        site_name=site_name,
        quantity=payload.quantity,
        unit=payload.unit,
        unit_rate=payload.unit_rate,
        total_amount=total_amount,
        vendor_name=payload.vendor_name,
        vendor_invoice_number=payload.vendor_invoice_number,
        purchase_date=payload.purchase_date or date.today(),
        consumed_quantity=0.0,
        remaining_quantity=payload.quantity,
        created_by_user_id=actor_user_id,
        updated_by_user_id=actor_user_id,
    )
    db.add(purchase)
    db.flush()
    return purchase


def update_purchase(
    db: Session,
    *,
    organization_id: str,
    purchase_id: str,
    payload: schemas.PurchaseUpdate,
    actor_user_id: Optional[str],
) -> models.MaterialPurchase:
    purchase = get_purchase(db, organization_id=organization_id, purchase_id=purchase_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided.")

    for field in ("quantity", "unit_rate", "total_amount"):
        if field in changes and not _is_number(changes[field]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be numeric.")
    if "purchase_date" in changes and changes["purchase_date"] is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="purchaseDate cannot be empty.")
    if "quantity" in changes and changes["quantity"] <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="quantity must be greater than zero.")

    if "site" in changes:
        site = changes.pop("site")
        site_id, site_name = site_services.resolve_site(db, organization_id=organization_id, site=site)
        purchase.site_id = site_id
        purchase.site_name = site_name if site_id else _require_text(site)

    if "material_name" in changes:
        name = _require_text(changes.pop("material_name"))
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="materialName cannot be empty.")
        purchase.material_name = name

    for field, value in changes.items():
        setattr(purchase, field, value)

    if "unit_rate" in changes and "total_amount" not in changes:
        purchase.total_amount = purchase.unit_rate * purchase.quantity
    if "quantity" in changes:
        purchase.remaining_quantity = usage_helpers.remaining_quantity(
            purchase.quantity, purchase.consumed_quantity
        )

    purchase.updated_by_user_id = actor_user_id
    db.flush()
    return purchase


def delete_purchase(db: Session, *, organization_id: str, purchase_id: str) -> None:
    purchase = get_purchase(db, organization_id=organization_id, purchase_id=purchase_id)
    db.delete(purchase)
    db.flush()


def _with_usage(purchase: models.MaterialPurchase, usage: Dict[str, float]) -> schemas.PurchaseRead:
    consumed, remaining = usage_helpers.effective_purchase_figures(purchase, usage)
    item = schemas.PurchaseRead.model_validate(purchase)
    item.consumed_quantity = consumed
    item.remaining_quantity = remaining
    return item


def read_purchase(
    db: Session,
    *,
    organization_id: str,
    purchase: models.MaterialPurchase,
    usage: Optional[Dict[str, float]] = None,
) -> schemas.PurchaseRead:
    """A single purchase with the same live consumption figures the listing shows."""
    if usage is None:
        from sitedb.apps.work_progress import services as work_progress_services

        usage = work_progress_services.load_purchase_usage(db, organization_id=organization_id)
    return _with_usage(purchase, usage)


def list_purchases(
    db: Session,
    *,
    organization_id: str,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    usage: Optional[Dict[str, float]] = None,
) -> schemas.PurchaseListResponse:
    """
    Page through purchases, newest first, with live consumption applied.

    Attribution runs over every purchase of the organization so a
    purchase's figures do not depend on which page it lands on. The
    stored counters are not written back here.
    """
    validate_page(page, limit)

    base = db.query(models.MaterialPurchase).filter(models.MaterialPurchase.organization_id == organization_id)
    total = base.count()
    rows: List[models.MaterialPurchase] = (
        base.order_by(models.MaterialPurchase.purchase_date.desc(), models.MaterialPurchase.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    if usage is None:
        from sitedb.apps.work_progress import services as work_progress_services

        usage = work_progress_services.load_purchase_usage(db, organization_id=organization_id)

    return schemas.PurchaseListResponse(
        purchases=[_with_usage(row, usage) for row in rows],
        pagination=build_pagination(page, limit, total),
    )
