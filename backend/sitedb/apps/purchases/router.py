from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.schemas import DEFAULT_PAGE_SIZE, SuccessResponse
from sitedb.security import get_current_active_user, require_roles
from sitedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="/purchases", tags=["purchases"])

PURCHASE_CREATE_ROLES = [
    account_models.OrganizationRole.OWNER,
    account_models.OrganizationRole.ADMIN,
    account_models.OrganizationRole.MANAGER,
    account_models.OrganizationRole.PROJECT_MANAGER,
    account_models.OrganizationRole.MATERIALS_MANAGER,
]

PURCHASE_EDIT_ROLES = PURCHASE_CREATE_ROLES + [account_models.OrganizationRole.USER]


@router.post(
    "",
    response_model=schemas.PurchaseRead,
    status_code=status.HTTP_201_CREATED,
)
def create_purchase(
    payload: schemas.PurchaseCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*PURCHASE_CREATE_ROLES)),
):
    purchase = services.create_purchase(
        db,
        organization_id=current_user.organization_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(purchase)
    return purchase


@router.get("", response_model=schemas.PurchaseListResponse)
def list_purchases(
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_purchases(db, organization_id=current_user.organization_id, page=page, limit=limit)


@router.get("/{purchase_id}", response_model=schemas.PurchaseRead)
def get_purchase(
    purchase_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    purchase = services.get_purchase(db, organization_id=current_user.organization_id, purchase_id=purchase_id)
    return services.read_purchase(db, organization_id=current_user.organization_id, purchase=purchase)


@router.patch("/{purchase_id}", response_model=schemas.PurchaseRead)
def update_purchase(
    purchase_id: str,
    payload: schemas.PurchaseUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*PURCHASE_EDIT_ROLES)),
):
    purchase = services.update_purchase(
        db,
        organization_id=current_user.organization_id,
        purchase_id=purchase_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(purchase)
    return services.read_purchase(db, organization_id=current_user.organization_id, purchase=purchase)


@router.delete("/{purchase_id}", response_model=SuccessResponse)
def delete_purchase(
    purchase_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*PURCHASE_EDIT_ROLES)),
):
    services.delete_purchase(db, organization_id=current_user.organization_id, purchase_id=purchase_id)
    db.commit()
    return SuccessResponse()
