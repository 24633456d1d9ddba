from __future__ import annotations

from typing import List, Union

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.schemas import SuccessResponse
from sitedb.security import get_current_active_user, require_roles
from sitedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="/receipts", tags=["receipts"])

RECEIPT_MUTATION_ROLES = [
    account_models.OrganizationRole.OWNER,
    account_models.OrganizationRole.ADMIN,
    account_models.OrganizationRole.MANAGER,
    account_models.OrganizationRole.PROJECT_MANAGER,
    account_models.OrganizationRole.MATERIALS_MANAGER,
    account_models.OrganizationRole.SITE_SUPERVISOR,
    account_models.OrganizationRole.FINANCE_MANAGER,
    account_models.OrganizationRole.EXECUTIVE,
    account_models.OrganizationRole.USER,
]

OPENING_BALANCE_ADMIN_ROLES = [
    account_models.OrganizationRole.OWNER,
    account_models.OrganizationRole.ADMIN,
    account_models.OrganizationRole.MATERIALS_MANAGER,
]


@router.post(
    "",
    response_model=Union[schemas.ReceiptRead, List[schemas.ReceiptRead]],
    status_code=status.HTTP_201_CREATED,
)
def create_receipts(
    payload: Union[schemas.ReceiptBatchCreate, schemas.ReceiptCreate],
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*RECEIPT_MUTATION_ROLES)),
):
    batch = isinstance(payload, schemas.ReceiptBatchCreate)
    receipts = services.create_receipts(
        db,
        organization_id=current_user.organization_id,
        payloads=payload.receipts if batch else [payload],
        actor_user_id=current_user.id,
    )
    db.commit()
    for receipt in receipts:
        db.refresh(receipt)
    return receipts if batch else receipts[0]


@router.post(
    "/opening-balance/retry",
    response_model=schemas.OpeningBalanceRetrySummary,
)
def retry_opening_balances(
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*OPENING_BALANCE_ADMIN_ROLES)),
):
    summary = services.retry_failed_opening_balance_pushes(db, organization_id=current_user.organization_id)
    db.commit()
    return summary


@router.get("", response_model=List[schemas.ReceiptRead])
def list_receipts(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_receipts(db, organization_id=current_user.organization_id, skip=skip, limit=limit)


@router.get("/{receipt_id}", response_model=schemas.ReceiptRead)
def get_receipt(
    receipt_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_receipt(db, organization_id=current_user.organization_id, receipt_id=receipt_id)


@router.patch("/{receipt_id}", response_model=schemas.ReceiptRead)
def update_receipt(
    receipt_id: str,
    payload: schemas.ReceiptUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*RECEIPT_MUTATION_ROLES)),
):
    receipt = services.update_receipt(
        db,
        organization_id=current_user.organization_id,
        receipt_id=receipt_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(receipt)
    return receipt


@router.delete("/{receipt_id}", response_model=SuccessResponse)
def delete_receipt(
    receipt_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*RECEIPT_MUTATION_ROLES)),
):
    services.delete_receipt(db, organization_id=current_user.organization_id, receipt_id=receipt_id)
    db.commit()
    return SuccessResponse()
