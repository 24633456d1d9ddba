"""
Goods receipts and the opening-balance push they trigger.

Creating a receipt is two steps with different failure policies:

1. Every record of the request is validated and the whole batch is
   inserted, or nothing is.
2. Each inserted receipt then pushes its quantity into the material's
   opening balance (the catalog entry directly when the receipt has no
   site, the site allocation otherwise). A push runs in its own SAVEPOINT;
   a failure is logged and recorded on the receipt as FAILED but never
   removes the receipt. `retry_failed_opening_balance_pushes` replays them.

Deleting or editing a receipt does not reverse its opening-balance push.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from sitedb.apps.materials import models as material_models
from sitedb.apps.materials import services as material_services
from sitedb.apps.purchases import models as purchase_models
from sitedb.apps.sites import services as site_services
from . import models, schemas

logger = logging.getLogger(__name__)

NEGATIVE_NET_WEIGHT = "Invalid weight values. Net weight cannot be negative."
MISSING_FIELDS = "Missing required receipt fields."


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _text(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _bad_request(detail: str, index: Optional[int] = None) -> HTTPException:
    if index is not None:
        detail = f"Receipt {index + 1}: {detail}"
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def compute_net_weight(filled_weight: float, empty_weight: float, net_weight: Optional[float] = None) -> float:
    """Explicit net weight wins; otherwise filled minus empty. Negative or non-finite is rejected."""
    value = net_weight if net_weight is not None else filled_weight - empty_weight
    if not _is_number(value) or value < 0:
        raise _bad_request(NEGATIVE_NET_WEIGHT)
    return float(value)


def _material_exists(db: Session, *, organization_id: str, material_id: str) -> bool:
    return (
        db.query(material_models.MaterialMaster.id)
        .filter(
            material_models.MaterialMaster.organization_id == organization_id,
            material_models.MaterialMaster.id == material_id,
        )
        .first()
        is not None
    )


def _purchase_exists(db: Session, *, organization_id: str, purchase_id: str) -> bool:
    return (
        db.query(purchase_models.MaterialPurchase.id)
        .filter(
            purchase_models.MaterialPurchase.organization_id == organization_id,
            purchase_models.MaterialPurchase.id == purchase_id,
        )
        .first()
        is not None
    )


def _resolve_receipt_site(
    db: Session,
    *,
    organization_id: str,
    site_id: Optional[str],
    site_name: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    if site_services.is_unallocated(site_id, site_name):
        return None, None
    if not _text(site_id) and not _text(site_name):
        return None, None
    resolved_id, resolved_name = site_services.resolve_site(
        db,
        organization_id=organization_id,
        site=_text(site_id) or site_name,
    )
    if resolved_id is None:
        return None, _text(site_name)
    return resolved_id, resolved_name


def _validate_receipt(
    db: Session,
    *,
    organization_id: str,
    payload: schemas.ReceiptCreate,
    index: Optional[int],
) -> dict:
    if (
        payload.date is None
        or not _text(payload.vehicle_number)
        or not _text(payload.material_id)
        or not _text(payload.material_name)
        or not _is_number(payload.filled_weight)
        or not _is_number(payload.empty_weight)
        or not _is_number(payload.quantity)
    ):
        raise _bad_request(MISSING_FIELDS, index)
    if payload.quantity < 0:
        raise _bad_request("Quantity cannot be negative.", index)
    try:
        net_weight = compute_net_weight(payload.filled_weight, payload.empty_weight, payload.net_weight)
    except HTTPException:
        raise _bad_request(NEGATIVE_NET_WEIGHT, index)

    if not _material_exists(db, organization_id=organization_id, material_id=payload.material_id):
        raise _bad_request("Invalid material selection.", index)
    linked_purchase_id = _text(payload.linked_purchase_id)
    if linked_purchase_id and not _purchase_exists(
        db, organization_id=organization_id, purchase_id=linked_purchase_id
    ):
        raise _bad_request("Invalid purchase reference.", index)

    site_id, site_name = _resolve_receipt_site(
        db,
        organization_id=organization_id,
        site_id=payload.site_id,
        site_name=payload.site_name,
    )
    return {
        "date": payload.date,
        "receipt_number": _text(payload.receipt_number),
        "vehicle_number": payload.vehicle_number.strip(),
        "material_id": payload.material_id,
        "material_name": payload.material_name.strip(),
        "filled_weight": payload.filled_weight,
        "empty_weight": payload.empty_weight,
        "net_weight": net_weight,
        "quantity": payload.quantity,
        "vendor_id": payload.vendor_id,
        "vendor_name": payload.vendor_name,
        "linked_purchase_id": linked_purchase_id,
        "site_id": site_id,
        "site_name": site_name,
    }


# ---------------------------------------------------------------------------
# OPENING BALANCE PUSH
# ---------------------------------------------------------------------------


def push_opening_balance(db: Session, *, receipt: models.MaterialReceipt) -> None:
    """Credit the receipt quantity to the catalog (no site) or to its site allocation."""
    if receipt.site_id is None:
        material_services.apply_opening_balance_delta(
            db,
            organization_id=receipt.organization_id,
            material_id=receipt.material_id,
            delta=receipt.quantity,
        )
        return

    material_services.add_site_opening_balance(
        db,
        organization_id=receipt.organization_id,
        material_id=receipt.material_id,
        site_id=receipt.site_id,
        delta=receipt.quantity,
    )
    total = material_services.total_site_opening_balance(
        db,
        organization_id=receipt.organization_id,
        material_id=receipt.material_id,
    )
    material_services.set_opening_balance(
        db,
        organization_id=receipt.organization_id,
        material_id=receipt.material_id,
        value=total,
    )


def _apply_opening_balance(db: Session, receipt: models.MaterialReceipt) -> bool:
    try:
        with db.begin_nested():
            push_opening_balance(db, receipt=receipt)
    except Exception as exc:
        logger.warning(
            "Failed to apply receipt opening balance",
            extra={
                "organization_id": receipt.organization_id,
                "receipt_id": receipt.id,
                "material_id": receipt.material_id,
                "site_id": receipt.site_id,
            },
        )
        receipt.opening_balance_status = models.OpeningBalanceStatusEnum.FAILED
        receipt.opening_balance_error = str(exc)[:500] or exc.__class__.__name__
        return False
    receipt.opening_balance_status = models.OpeningBalanceStatusEnum.APPLIED
    receipt.opening_balance_error = None
    return True


# ---------------------------------------------------------------------------
# INWARD QUANTITY
# ---------------------------------------------------------------------------


def recalculate_inward_quantity(
    db: Session,
    *,
    organization_id: str,
    material_id: str,
    site_id: str,
) -> None:
    """Best-effort: set the allocation's inward quantity to the sum of its receipts."""
    try:
        with db.begin_nested():
            total = (
                db.query(func.coalesce(func.sum(models.MaterialReceipt.quantity), 0.0))
                .filter(
                    models.MaterialReceipt.organization_id == organization_id,
                    models.MaterialReceipt.material_id == material_id,
                    models.MaterialReceipt.site_id == site_id,
                )
                .scalar()
            )
            material_services.set_allocation_movement(
                db,
                organization_id=organization_id,
                material_id=material_id,
                site_id=site_id,
                inward_qty=float(total or 0.0),
            )
    except Exception:
        logger.warning(
            "Failed to recalculate site inward quantity",
            extra={"organization_id": organization_id, "material_id": material_id, "site_id": site_id},
        )


def _recalculate_pairs(db: Session, *, organization_id: str, pairs: Set[Tuple[str, Optional[str]]]) -> None:
    for material_id, site_id in pairs:
        if material_id and site_id:
            recalculate_inward_quantity(db, organization_id=organization_id, material_id=material_id, site_id=site_id)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def create_receipts(
    db: Session,
    *,
    organization_id: str,
    payloads: Sequence[schemas.ReceiptCreate],
    actor_user_id: Optional[str],
) -> List[models.MaterialReceipt]:
    if not payloads:
        raise _bad_request("At least one receipt is required.")

    batch = len(payloads) > 1
    rows = [
        _validate_receipt(db, organization_id=organization_id, payload=payload, index=i if batch else None)
        for i, payload in enumerate(payloads)
    ]

    receipts = [
        models.MaterialReceipt(
            organization_id=organization_id,
            opening_balance_status=models.OpeningBalanceStatusEnum.PENDING,
            created_by_user_id=actor_user_id,
            updated_by_user_id=actor_user_id,
            **row,
        )
        for row in rows
    ]
    db.add_all(receipts)
    db.flush()

    for receipt in receipts:
        _apply_opening_balance(db, receipt)
    db.flush()
    return receipts


def get_receipt(db: Session, *, organization_id: str, receipt_id: str) -> models.MaterialReceipt:
    receipt = (
        db.query(models.MaterialReceipt)
        .filter(
            models.MaterialReceipt.organization_id == organization_id,
            models.MaterialReceipt.id == receipt_id,
        )
        .first()
    )
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found.")
    return receipt


def list_receipts(db: Session, *, organization_id: str, skip: int = 0, limit: int = 100) -> List[models.MaterialReceipt]:
    return (
        db.query(models.MaterialReceipt)
        .filter(models.MaterialReceipt.organization_id == organization_id)
        .order_by(models.MaterialReceipt.date.desc(), models.MaterialReceipt.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def update_receipt(
    db: Session,
    *,
    organization_id: str,
    receipt_id: str,
    payload: schemas.ReceiptUpdate,
    actor_user_id: Optional[str],
) -> models.MaterialReceipt:
    receipt = get_receipt(db, organization_id=organization_id, receipt_id=receipt_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise _bad_request("No changes provided.")

    for field in ("date", "vehicle_number", "material_id", "material_name"):
        if field not in changes:
            continue
        value = changes[field]
        if value is None or (isinstance(value, str) and not value.strip()):
            raise _bad_request(f"{field} cannot be empty.")
    for field in ("filled_weight", "empty_weight", "quantity"):
        if field in changes and not _is_number(changes[field]):
            raise _bad_request(f"{field} must be numeric.")
    if "quantity" in changes and changes["quantity"] < 0:
        raise _bad_request("Quantity cannot be negative.")

    if "material_id" in changes and changes["material_id"] != receipt.material_id:
        if not _material_exists(db, organization_id=organization_id, material_id=changes["material_id"]):
            raise _bad_request("Invalid material selection.")
    if "linked_purchase_id" in changes:
        changes["linked_purchase_id"] = _text(changes["linked_purchase_id"])
        if changes["linked_purchase_id"] and not _purchase_exists(
            db, organization_id=organization_id, purchase_id=changes["linked_purchase_id"]
        ):
            raise _bad_request("Invalid purchase reference.")

    previous_pair = (receipt.material_id, receipt.site_id)

    explicit_net = changes.pop("net_weight", None)
    if explicit_net is not None:
        receipt.net_weight = compute_net_weight(0.0, 0.0, explicit_net)
    elif "filled_weight" in changes or "empty_weight" in changes:
        receipt.net_weight = compute_net_weight(
            changes.get("filled_weight", receipt.filled_weight),
            changes.get("empty_weight", receipt.empty_weight),
        )

    if "site_id" in changes or "site_name" in changes:
        site_id, site_name = _resolve_receipt_site(
            db,
            organization_id=organization_id,
            site_id=changes.pop("site_id", None),
            site_name=changes.pop("site_name", None),
        )
        receipt.site_id = site_id
        receipt.site_name = site_name

    for field, value in changes.items():
        if isinstance(value, str):
            value = value.strip()
        setattr(receipt, field, value)

    receipt.updated_by_user_id = actor_user_id
    db.flush()

    _recalculate_pairs(
        db,
        organization_id=organization_id,
        pairs={previous_pair, (receipt.material_id, receipt.site_id)},
    )
    return receipt


def delete_receipt(db: Session, *, organization_id: str, receipt_id: str) -> None:
    receipt = get_receipt(db, organization_id=organization_id, receipt_id=receipt_id)
    pair = (receipt.material_id, receipt.site_id)
    db.delete(receipt)
    db.flush()
    _recalculate_pairs(db, organization_id=organization_id, pairs={pair})


def retry_failed_opening_balance_pushes(db: Session, *, organization_id: str) -> dict:
    pending = (
        db.query(models.MaterialReceipt)
        .filter(
            models.MaterialReceipt.organization_id == organization_id,
            models.MaterialReceipt.opening_balance_status.in_(
                [models.OpeningBalanceStatusEnum.FAILED, models.OpeningBalanceStatusEnum.PENDING]
            ),
        )
        .order_by(models.MaterialReceipt.created_at.asc())
        .all()
    )
    applied = 0
    for receipt in pending:
        if _apply_opening_balance(db, receipt):
            applied += 1
    db.flush()
    summary = {"retried": len(pending), "applied": applied, "failed": len(pending) - applied}
    if pending:
        logger.info("Replayed receipt opening balances", extra={"organization_id": organization_id, **summary})
    return summary
