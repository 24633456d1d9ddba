from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.schemas import SuccessResponse
from sitedb.security import get_current_active_user, require_roles
from sitedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="/work-progress", tags=["work-progress"])

WORK_PROGRESS_WRITE_ROLES = [
    account_models.OrganizationRole.OWNER,
    account_models.OrganizationRole.ADMIN,
    account_models.OrganizationRole.MANAGER,
    account_models.OrganizationRole.PROJECT_MANAGER,
    account_models.OrganizationRole.SITE_SUPERVISOR,
    account_models.OrganizationRole.MATERIALS_MANAGER,
    account_models.OrganizationRole.FINANCE_MANAGER,
    account_models.OrganizationRole.EXECUTIVE,
    account_models.OrganizationRole.USER,
]


@router.post(
    "",
    response_model=schemas.WorkProgressRead,
    status_code=status.HTTP_201_CREATED,
)
def record_work_progress(
    payload: schemas.WorkProgressCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*WORK_PROGRESS_WRITE_ROLES)),
):
    entry = services.record_work_progress(
        db,
        organization_id=current_user.organization_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(entry)
    return entry


@router.get("", response_model=List[schemas.WorkProgressRead])
def list_work_progress(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_work_progress(db, organization_id=current_user.organization_id, skip=skip, limit=limit)


@router.get("/{entry_id}", response_model=schemas.WorkProgressRead)
def get_work_progress(
    entry_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_work_progress(db, organization_id=current_user.organization_id, entry_id=entry_id)


@router.patch("/{entry_id}", response_model=schemas.WorkProgressRead)
def update_work_progress(
    entry_id: str,
    payload: schemas.WorkProgressUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*WORK_PROGRESS_WRITE_ROLES)),
):
    entry = services.update_work_progress(
        db,
        organization_id=current_user.organization_id,
        entry_id=entry_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/{entry_id}", response_model=SuccessResponse)
def delete_work_progress(
    entry_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*WORK_PROGRESS_WRITE_ROLES)),
):
    services.delete_work_progress(db, organization_id=current_user.organization_id, entry_id=entry_id)
    db.commit()
    return SuccessResponse()
