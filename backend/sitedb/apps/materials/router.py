from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.schemas import DEFAULT_PAGE_SIZE
from sitedb.security import get_current_active_user, require_roles
from sitedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="/materials", tags=["materials"])

MATERIAL_EDIT_ROLES = [
    account_models.OrganizationRole.OWNER,
    account_models.OrganizationRole.ADMIN,
    account_models.OrganizationRole.MANAGER,
    account_models.OrganizationRole.PROJECT_MANAGER,
    account_models.OrganizationRole.MATERIALS_MANAGER,
]


@router.get("", response_model=schemas.MaterialListResponse)
def list_materials(
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_materials(
        db,
        organization_id=current_user.organization_id,
        page=page,
        limit=limit,
    )


@router.post(
    "",
    response_model=schemas.MaterialDetail,
    status_code=status.HTTP_201_CREATED,
)
def create_material(
    payload: schemas.MaterialCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*MATERIAL_EDIT_ROLES)),
):
    material = services.create_material(
        db,
        organization_id=current_user.organization_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(material)
    return material


@router.patch("/{material_id}", response_model=schemas.MaterialDetail)
def update_material(
    material_id: str,
    payload: schemas.MaterialUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*MATERIAL_EDIT_ROLES)),
):
    material = services.update_material(
        db,
        organization_id=current_user.organization_id,
        material_id=material_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(material)
    return material
