from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class WorkProgressMaterialCreate(BaseModel):
    material_id: Optional[str] = None
    purchase_id: Optional[str] = None
    material_name: str
    unit: Optional[str] = None
    quantity: float = Field(..., ge=0)
    balance_quantity: Optional[float] = None


class WorkProgressCreate(BaseModel):
    site_id: Optional[str] = None
    site_name: str
    work_type: str
    work_date: date
    unit: str
    total_quantity: float
    description: Optional[str] = None
    notes: Optional[str] = None
    materials: List[WorkProgressMaterialCreate] = []


class WorkProgressUpdate(BaseModel):
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    work_type: Optional[str] = None
    work_date: Optional[date] = None
    unit: Optional[str] = None
    total_quantity: Optional[float] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    materials: Optional[List[WorkProgressMaterialCreate]] = None


class WorkProgressMaterialRead(BaseModel):
    id: str
    work_progress_id: str
    material_id: Optional[str] = None
    purchase_id: Optional[str] = None
    material_name: str
    unit: Optional[str] = None
    quantity: float
    balance_quantity: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WorkProgressRead(BaseModel):
    id: str
    organization_id: str
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    work_type: str
    work_date: date
    unit: str
    total_quantity: float
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    materials: List[WorkProgressMaterialRead] = []

    class Config:
        from_attributes = True
