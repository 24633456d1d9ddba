from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from sitedb.apps.materials import models as material_models
from sitedb.apps.materials import services as material_services
from sitedb.apps.purchases import models as purchase_models
from sitedb.apps.sites import services as site_services
from . import models, schemas, usage

logger = logging.getLogger(__name__)


def list_consumption_rows(db: Session, *, organization_id: str) -> List[models.WorkProgressMaterial]:
    return (
        db.query(models.WorkProgressMaterial)
        .filter(models.WorkProgressMaterial.organization_id == organization_id)
        .order_by(models.WorkProgressMaterial.created_at.asc(), models.WorkProgressMaterial.id.asc())
        .all()
    )


def load_purchase_usage(
    db: Session,
    *,
    organization_id: str,
    strategy: Optional[usage.AttributionStrategy] = None,
) -> Dict[str, float]:
    """Live `{purchase_id: consumed}` for every purchase of the organization."""
    purchases = (
        db.query(purchase_models.MaterialPurchase)
        .filter(purchase_models.MaterialPurchase.organization_id == organization_id)
        .all()
    )
    rows = list_consumption_rows(db, organization_id=organization_id)
    return usage.build_purchase_usage_map(purchases, rows, strategy=strategy)


def recalculate_utilization_quantity(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
) -> None:
    """Best-effort: set the allocation's utilization to the material's usage on that site."""
    try:
        with db.begin_nested():
            total = (
                db.query(func.coalesce(func.sum(models.WorkProgressMaterial.quantity), 0.0))
                .join(
                    models.WorkProgressEntry,
                    models.WorkProgressEntry.id == models.WorkProgressMaterial.work_progress_id,
                )
                .filter(
                    models.WorkProgressMaterial.organization_id == organization_id,
                    models.WorkProgressMaterial.material_id == material_id,
                    models.WorkProgressEntry.site_id == site_id,
                )
                .scalar()
            )
            material_services.set_allocation_movement(
                db,
                organization_id=organization_id,
                material_id=material_id,
                site_id=site_id,
                utilization_qty=float(total or 0.0),
            )
    except Exception:
        logger.warning(
            "Failed to recalculate site utilization",
            extra={"organization_id": organization_id, "material_id": material_id, "site_id": site_id},
        )


def _entry_site_id(db: Session, *, organization_id: str, site_id: Optional[str]) -> Optional[str]:
    if not site_id or site_services.is_unallocated(site_id):
        return None
    return site_services.require_site(db, organization_id=organization_id, site_id=site_id).id


def _build_material_line(
    db: Session,
    *,
    organization_id: str,
    line: schemas.WorkProgressMaterialCreate,
) -> models.WorkProgressMaterial:
    material_id = line.material_id
    if line.purchase_id:
        purchase = (
            db.query(purchase_models.MaterialPurchase)
            .filter(
                purchase_models.MaterialPurchase.organization_id == organization_id,
                purchase_models.MaterialPurchase.id == line.purchase_id,
            )
            .first()
        )
        if not purchase:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid purchase reference.")
        material_id = material_id or purchase.material_id
    if material_id:
        exists = (
            db.query(material_models.MaterialMaster.id)
            .filter(
                material_models.MaterialMaster.organization_id == organization_id,
                material_models.MaterialMaster.id == material_id,
            )
            .first()
        )
        if not exists:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid material reference.")
    return models.WorkProgressMaterial(
        organization_id=organization_id,
        material_id=material_id,
        purchase_id=line.purchase_id,
        material_name=line.material_name,
        unit=line.unit,
        quantity=line.quantity,
        balance_quantity=line.balance_quantity,
    )


def _utilization_pairs(entry: models.WorkProgressEntry) -> Set[Tuple[str, str]]:
    if not entry.site_id:
        return set()
    return {(m.material_id, entry.site_id) for m in entry.materials if m.material_id}


def _recalculate_pairs(db: Session, *, organization_id: str, pairs: Set[Tuple[str, str]]) -> None:
    for material_id, site_id in sorted(pairs):
        recalculate_utilization_quantity(
            db,
            organization_id=organization_id,
            material_id=material_id,
            site_id=site_id,
        )


def record_work_progress(
    db: Session,
    *,
    organization_id: str,
    payload: schemas.WorkProgressCreate,
    actor_user_id: Optional[str],
) -> models.WorkProgressEntry:
    if not payload.site_name.strip() or not payload.work_type.strip() or not payload.unit.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required work progress fields.",
        )

    entry = models.WorkProgressEntry(
        organization_id=organization_id,
        site_id=_entry_site_id(db, organization_id=organization_id, site_id=payload.site_id),
        site_name=payload.site_name.strip(),
        work_type=payload.work_type.strip(),
        work_date=payload.work_date,
        unit=payload.unit.strip(),
        total_quantity=payload.total_quantity,
        description=payload.description,
        notes=payload.notes,
        created_by_user_id=actor_user_id,
    )
    for line in payload.materials:
        entry.materials.append(_build_material_line(db, organization_id=organization_id, line=line))

    db.add(entry)
    db.flush()

    _recalculate_pairs(db, organization_id=organization_id, pairs=_utilization_pairs(entry))
    return entry


def update_work_progress(
    db: Session,
    *,
    organization_id: str,
    entry_id: str,
    payload: schemas.WorkProgressUpdate,
    actor_user_id: Optional[str],
) -> models.WorkProgressEntry:
    """
    Patch an entry, replacing its material lines when `materials` is sent.

    Site utilization is recomputed for every (material, site) pair the
    entry touched before or after the change, so moving an entry to
    another site or dropping a line releases the old allocation too.
    """
    entry = get_work_progress(db, organization_id=organization_id, entry_id=entry_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided.")

    for field in ("site_name", "work_type", "unit"):
        if field in changes:
            value = (changes[field] or "").strip()
            if not value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Missing required work progress fields.",
                )
            changes[field] = value
    for field in ("work_date", "total_quantity"):
        if field in changes and changes[field] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing required work progress fields.",
            )

    before = _utilization_pairs(entry)

    if "site_id" in changes:
        entry.site_id = _entry_site_id(db, organization_id=organization_id, site_id=changes.pop("site_id"))

    if "materials" in changes:
        changes.pop("materials")
        lines = [
            _build_material_line(db, organization_id=organization_id, line=line)
            for line in payload.materials or []
        ]
        entry.materials.clear()
        entry.materials.extend(lines)

    for field, value in changes.items():
        setattr(entry, field, value)
    db.flush()

    logger.info(
        "Work progress entry updated",
        extra={"organization_id": organization_id, "entry_id": entry.id, "actor_user_id": actor_user_id},
    )
    _recalculate_pairs(db, organization_id=organization_id, pairs=before | _utilization_pairs(entry))
    return entry


def delete_work_progress(db: Session, *, organization_id: str, entry_id: str) -> None:
    entry = get_work_progress(db, organization_id=organization_id, entry_id=entry_id)
    pairs = _utilization_pairs(entry)
    db.delete(entry)
    db.flush()
    _recalculate_pairs(db, organization_id=organization_id, pairs=pairs)


def get_work_progress(db: Session, *, organization_id: str, entry_id: str) -> models.WorkProgressEntry:
    entry = (
        db.query(models.WorkProgressEntry)
        .filter(
            models.WorkProgressEntry.organization_id == organization_id,
            models.WorkProgressEntry.id == entry_id,
        )
        .first()
    )
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work progress entry not found.")
    return entry


def list_work_progress(db: Session, *, organization_id: str, skip: int = 0, limit: int = 100):
    return (
        db.query(models.WorkProgressEntry)
        .filter(models.WorkProgressEntry.organization_id == organization_id)
        .order_by(models.WorkProgressEntry.work_date.desc(), models.WorkProgressEntry.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
