"""
Bring the cached inventory counters back in line with their sources.

- Replays receipt opening-balance pushes that failed.
- Resets each site-allocated material's opening balance to the sum of
  its allocations.
- Writes live per-purchase consumption into the purchase counters and
  rolls it up into the catalog's consumed quantity.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List

from sqlalchemy.orm import Session

from sitedb.apps.accounts import models as account_models
from sitedb.apps.purchases import models as purchase_models
from sitedb.apps.receipts import services as receipt_services
from sitedb.apps.work_progress import services as work_progress_services
from sitedb.apps.work_progress import usage as usage_helpers
from . import models, services

logger = logging.getLogger(__name__)


def _resync_allocated_materials(db: Session, *, organization_id: str) -> int:
    material_ids = [
        row[0]
        for row in db.query(models.MaterialSiteAllocation.material_id)
        .filter(models.MaterialSiteAllocation.organization_id == organization_id)
        .distinct()
        .all()
    ]
    changed = 0
    for material_id in material_ids:
        material = services.get_material(db, organization_id=organization_id, material_id=material_id)
        total = services.total_site_opening_balance(db, organization_id=organization_id, material_id=material_id)
        if abs((material.opening_balance or 0.0) - total) > 1e-9:
            services.set_opening_balance(db, organization_id=organization_id, material_id=material_id, value=total)
            changed += 1
    return changed


def _persist_consumption(db: Session, *, organization_id: str) -> int:
    usage = work_progress_services.load_purchase_usage(db, organization_id=organization_id)
    purchases: List[purchase_models.MaterialPurchase] = (
        db.query(purchase_models.MaterialPurchase)
        .filter(purchase_models.MaterialPurchase.organization_id == organization_id)
        .all()
    )
    consumed_by_material: Dict[str, float] = defaultdict(float)
    changed = 0
    for purchase in purchases:
        consumed, remaining = usage_helpers.effective_purchase_figures(purchase, usage)
        if purchase.id in usage and (
            purchase.consumed_quantity != consumed or purchase.remaining_quantity != remaining
        ):
            purchase.consumed_quantity = consumed
            purchase.remaining_quantity = remaining
            changed += 1
        if purchase.material_id:
            consumed_by_material[purchase.material_id] += consumed

    for material_id, consumed in consumed_by_material.items():
        material = services.get_material(db, organization_id=organization_id, material_id=material_id)
        material.consumed_quantity = consumed
    db.flush()
    return changed


def reconcile_organization(db: Session, *, organization_id: str) -> dict:
    retry = receipt_services.retry_failed_opening_balance_pushes(db, organization_id=organization_id)
    summary = {
        "organization_id": organization_id,
        "opening_balance_retries": retry,
        "materials_resynced": _resync_allocated_materials(db, organization_id=organization_id),
        "purchases_updated": _persist_consumption(db, organization_id=organization_id),
    }
    logger.info("Inventory reconciliation finished", extra=summary)
    return summary


def reconcile_all(db: Session) -> dict:
    organizations = (
        db.query(account_models.Organization)
        .filter(account_models.Organization.is_active.is_(True))
        .order_by(account_models.Organization.id.asc())
        .all()
    )
    results = []
    for organization in organizations:
        results.append(reconcile_organization(db, organization_id=organization.id))
    return {"organizations": len(results), "results": results}
