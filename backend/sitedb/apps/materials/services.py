from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import and_, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitedb.apps.purchases import models as purchase_models
from sitedb.apps.sites import services as site_services
from sitedb.apps.work_progress import usage as usage_helpers
from sitedb.schemas import DEFAULT_PAGE_SIZE, build_pagination, validate_page
from . import models, schemas

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CATALOG
# ---------------------------------------------------------------------------


def find_material_by_name(db: Session, *, organization_id: str, name: str) -> Optional[models.MaterialMaster]:
    normalized = models.normalize_material_name(name)
    if not normalized:
        return None
    return (
        db.query(models.MaterialMaster)
        .filter(
            models.MaterialMaster.organization_id == organization_id,
            models.MaterialMaster.normalized_name == normalized,
        )
        .first()
    )


def get_material(db: Session, *, organization_id: str, material_id: str) -> models.MaterialMaster:
    material = (
        db.query(models.MaterialMaster)
        .filter(
            models.MaterialMaster.organization_id == organization_id,
            models.MaterialMaster.id == material_id,
        )
        .first()
    )
    if not material:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found.")
    return material


def _material_query(db: Session, *, organization_id: str, material_id: str):
    return db.query(models.MaterialMaster).filter(
        models.MaterialMaster.organization_id == organization_id,
        models.MaterialMaster.id == material_id,
    )


def _increment_purchased(
    db: Session,
    material: models.MaterialMaster,
    *,
    quantity: float,
    rate: float,
) -> models.MaterialMaster:
    rate_col = models.MaterialMaster.standard_rate
    _material_query(db, organization_id=material.organization_id, material_id=material.id).update(
        {
            models.MaterialMaster.quantity: models.MaterialMaster.quantity + quantity,
            models.MaterialMaster.standard_rate: case(
                (and_(rate_col > 0, rate_col > rate), rate_col),
                else_=rate,
            ),
        },
        synchronize_session=False,
    )
    db.refresh(material)
    return material


def merge_purchase(
    db: Session,
    *,
    organization_id: str,
    name: str,
    unit: Optional[str],
    rate: float,
    quantity: float,
    category: Optional[str] = None,
    site_id: Optional[str] = None,
    site_name: Optional[str] = None,
) -> models.MaterialMaster:
    """
    Fold a purchase into the catalog entry for `name`, creating it if needed.

    Existing entries get `quantity += quantity` and keep the higher of the
    stored and new rate (the new rate when none was stored). Both are single
    UPDATE statements, and a concurrent first insert of the same name hits
    the unique constraint and falls back to the update.
    """
    normalized = models.normalize_material_name(name)
    if not normalized:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material name is required.")

    material = find_material_by_name(db, organization_id=organization_id, name=name)
    if material:
        return _increment_purchased(db, material, quantity=quantity, rate=rate)

    material = models.MaterialMaster(
        organization_id=organization_id,
        name=name.strip(),
        normalized_name=normalized,
        category=category,
        unit=unit,
        quantity=quantity,
        consumed_quantity=0.0,
        standard_rate=rate,
        opening_balance=0.0,
        site_id=site_id,
        site_name=site_name,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(material)
            db.flush()
    except IntegrityError:
        existing = find_material_by_name(db, organization_id=organization_id, name=name)
        if existing is None:
            raise
        logger.info(
            "Material created concurrently; merging into existing entry",
            extra={"organization_id": organization_id, "material_id": existing.id},
        )
        return _increment_purchased(db, existing, quantity=quantity, rate=rate)
    return material


def apply_opening_balance_delta(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    delta: float,
) -> models.MaterialMaster:
    material = get_material(db, organization_id=organization_id, material_id=material_id)
    _material_query(db, organization_id=organization_id, material_id=material_id).update(
        {
            models.MaterialMaster.opening_balance: func.coalesce(models.MaterialMaster.opening_balance, 0) + delta,
        },
        synchronize_session=False,
    )
    db.refresh(material)
    return material


def set_opening_balance(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    value: float,
) -> models.MaterialMaster:
    material = get_material(db, organization_id=organization_id, material_id=material_id)
    material.opening_balance = value
    db.flush()
    return material


# ---------------------------------------------------------------------------
# SITE ALLOCATIONS
# ---------------------------------------------------------------------------


def _allocation_query(db: Session, *, organization_id: str, material_id: str, site_id: str):
    return db.query(models.MaterialSiteAllocation).filter(
        models.MaterialSiteAllocation.organization_id == organization_id,
        models.MaterialSiteAllocation.material_id == material_id,
        models.MaterialSiteAllocation.site_id == site_id,
    )


def get_allocation(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
) -> Optional[models.MaterialSiteAllocation]:
    return _allocation_query(db, organization_id=organization_id, material_id=material_id, site_id=site_id).first()


def list_allocations(db: Session, *, organization_id: str, material_id: str) -> List[models.MaterialSiteAllocation]:
    return (
        db.query(models.MaterialSiteAllocation)
        .filter(
            models.MaterialSiteAllocation.organization_id == organization_id,
            models.MaterialSiteAllocation.material_id == material_id,
        )
        .order_by(models.MaterialSiteAllocation.created_at.asc())
        .all()
    )


def add_site_opening_balance(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
    delta: float,
) -> models.MaterialSiteAllocation:
    """Add `delta` to the (material, site) allocation, creating the row on first use."""
    query = _allocation_query(db, organization_id=organization_id, material_id=material_id, site_id=site_id)
    updated = query.update(
        {
            models.MaterialSiteAllocation.opening_balance: models.MaterialSiteAllocation.opening_balance + delta,
        },
        synchronize_session=False,
    )
    if not updated:
        allocation = models.MaterialSiteAllocation(
            organization_id=organization_id,
            material_id=material_id,
            site_id=site_id,
            opening_balance=delta,
            inward_qty=0.0,
            utilization_qty=0.0,
        )
        try:
            with db.begin_nested():
                db.add(allocation)
                db.flush()
            return allocation
        except IntegrityError:
            query.update(
                {
                    models.MaterialSiteAllocation.opening_balance: models.MaterialSiteAllocation.opening_balance
                    + delta,
                },
                synchronize_session=False,
            )
    allocation = query.one()
    db.refresh(allocation)
    return allocation


def set_site_opening_balance(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
    value: float,
) -> models.MaterialSiteAllocation:
    """Overwrite the (material, site) opening balance, creating the row on first use."""
    allocation = get_allocation(db, organization_id=organization_id, material_id=material_id, site_id=site_id)
    if allocation is None:
        allocation = models.MaterialSiteAllocation(
            organization_id=organization_id,
            material_id=material_id,
            site_id=site_id,
            opening_balance=value,
            inward_qty=0.0,
            utilization_qty=0.0,
        )
        db.add(allocation)
    else:
        allocation.opening_balance = value
    db.flush()
    return allocation


def total_site_opening_balance(db: Session, *, organization_id: str, material_id: str) -> float:
    total = (
        db.query(func.coalesce(func.sum(models.MaterialSiteAllocation.opening_balance), 0.0))
        .filter(
            models.MaterialSiteAllocation.organization_id == organization_id,
            models.MaterialSiteAllocation.material_id == material_id,
        )
        .scalar()
    )
    return float(total or 0.0)


def resync_opening_balance_from_allocations(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
) -> models.MaterialMaster:
    total = total_site_opening_balance(db, organization_id=organization_id, material_id=material_id)
    return set_opening_balance(db, organization_id=organization_id, material_id=material_id, value=total)


def set_allocation_movement(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
    inward_qty: Optional[float] = None,
    utilization_qty: Optional[float] = None,
) -> Optional[models.MaterialSiteAllocation]:
    """
    Overwrite the inward/utilization totals of an allocation.

    A missing allocation is only created when there is something to record.
    """
    allocation = get_allocation(db, organization_id=organization_id, material_id=material_id, site_id=site_id)
    if allocation is None:
        if not (inward_qty or utilization_qty):
            return None
        allocation = models.MaterialSiteAllocation(
            organization_id=organization_id,
            material_id=material_id,
            site_id=site_id,
            opening_balance=0.0,
            inward_qty=0.0,
            utilization_qty=0.0,
        )
        db.add(allocation)
    if inward_qty is not None:
        allocation.inward_qty = inward_qty
    if utilization_qty is not None:
        allocation.utilization_qty = utilization_qty
    db.flush()
    return allocation


# ---------------------------------------------------------------------------
# CATALOG MAINTENANCE
# ---------------------------------------------------------------------------


def _apply_allocations(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    allocations: List[schemas.SiteAllocationInput],
) -> models.MaterialMaster:
    for item in allocations:
        site = site_services.require_site(db, organization_id=organization_id, site_id=item.site_id)
        set_site_opening_balance(
            db,
            organization_id=organization_id,
            material_id=material_id,
            site_id=site.id,
            value=item.opening_balance,
        )
    return resync_opening_balance_from_allocations(db, organization_id=organization_id, material_id=material_id)


def create_material(
    db: Session,
    *,
    organization_id: str,
    payload: schemas.MaterialCreate,
    actor_user_id: Optional[str],
) -> models.MaterialMaster:
    normalized = models.normalize_material_name(payload.name)
    if not normalized:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material name is required.")
    if find_material_by_name(db, organization_id=organization_id, name=payload.name):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material already exists.")

    material = models.MaterialMaster(
        organization_id=organization_id,
        name=payload.name.strip(),
        normalized_name=normalized,
        category=payload.category,
        unit=payload.unit,
        quantity=0.0,
        consumed_quantity=0.0,
        standard_rate=payload.standard_rate,
        opening_balance=payload.opening_balance or 0.0,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(material)
            db.flush()
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material already exists.")

    if payload.allocations:
        _apply_allocations(
            db, organization_id=organization_id, material_id=material.id, allocations=payload.allocations
        )
    logger.info(
        "Material created",
        extra={"organization_id": organization_id, "material_id": material.id, "actor_user_id": actor_user_id},
    )
    return material


def update_material(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    payload: schemas.MaterialUpdate,
    actor_user_id: Optional[str],
) -> models.MaterialMaster:
    """
    Patch catalog fields and per-site opening balances.

    Allocations are upserted with absolute values and the catalog opening
    balance is then resynced to their sum. A direct `opening_balance` is
    only accepted for materials without site allocations.
    """
    material = get_material(db, organization_id=organization_id, material_id=material_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided.")

    if "name" in changes:
        name = (changes.pop("name") or "").strip()
        normalized = models.normalize_material_name(name)
        if not normalized:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material name is required.")
        existing = find_material_by_name(db, organization_id=organization_id, name=name)
        if existing is not None and existing.id != material.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Material already exists.")
        material.name = name
        material.normalized_name = normalized

    for field in ("standard_rate", "is_active"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} cannot be empty.")

    allocations = changes.pop("allocations", None)
    opening_balance = changes.pop("opening_balance", None)
    for field, value in changes.items():
        setattr(material, field, value)
    db.flush()

    if allocations is not None:
        _apply_allocations(
            db, organization_id=organization_id, material_id=material.id, allocations=payload.allocations
        )
    elif opening_balance is not None:
        if list_allocations(db, organization_id=organization_id, material_id=material.id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Opening balance is tracked per site for this material.",
            )
        set_opening_balance(db, organization_id=organization_id, material_id=material.id, value=opening_balance)

    logger.info(
        "Material updated",
        extra={"organization_id": organization_id, "material_id": material.id, "actor_user_id": actor_user_id},
    )
    return material


# ---------------------------------------------------------------------------
# LISTING
# ---------------------------------------------------------------------------


def list_materials(
    db: Session,
    *,
    organization_id: str,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    usage: Optional[Dict[str, float]] = None,
) -> schemas.MaterialListResponse:
    validate_page(page, limit)

    base = db.query(models.MaterialMaster).filter(models.MaterialMaster.organization_id == organization_id)
    total = base.count()
    materials = (
        base.order_by(models.MaterialMaster.name.asc(), models.MaterialMaster.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    material_ids = [m.id for m in materials]
    purchases_by_material: Dict[str, List[purchase_models.MaterialPurchase]] = defaultdict(list)
    if material_ids:
        rows = (
            db.query(purchase_models.MaterialPurchase)
            .filter(
                purchase_models.MaterialPurchase.organization_id == organization_id,
                purchase_models.MaterialPurchase.material_id.in_(material_ids),
            )
            .all()
        )
        for purchase in rows:
            purchases_by_material[purchase.material_id].append(purchase)

    if usage is None:
        from sitedb.apps.work_progress import services as work_progress_services

        usage = work_progress_services.load_purchase_usage(db, organization_id=organization_id)

    items: List[schemas.MaterialListItem] = []
    for material in materials:
        purchases = purchases_by_material.get(material.id, [])
        if purchases:
            consumed = 0.0
            available = 0.0
            for purchase in purchases:
                purchase_consumed, purchase_remaining = usage_helpers.effective_purchase_figures(purchase, usage)
                consumed += purchase_consumed
                available += purchase_remaining
        else:
            consumed = usage_helpers.to_non_negative(material.consumed_quantity)
            available = usage_helpers.remaining_quantity(material.quantity, consumed)

        data = schemas.MaterialRead.model_validate(material).model_dump()
        data["consumed_quantity"] = consumed
        items.append(
            schemas.MaterialListItem(
                **data,
                available_quantity=available,
                allocations=[schemas.SiteAllocationRead.model_validate(a) for a in material.allocations],
            )
        )

    return schemas.MaterialListResponse(
        materials=items,
        pagination=build_pagination(page, limit, total),
    )
