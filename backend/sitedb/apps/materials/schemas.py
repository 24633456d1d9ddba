from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from sitedb.schemas import Pagination


class SiteAllocationRead(BaseModel):
    id: str
    material_id: str
    site_id: str
    site_name: Optional[str] = None
    opening_balance: float
    inward_qty: float
    utilization_qty: float
    available_qty: float

    class Config:
        from_attributes = True


class SiteAllocationInput(BaseModel):
    site_id: str
    opening_balance: float = Field(..., ge=0)


class MaterialCreate(BaseModel):
    name: str
    unit: Optional[str] = None
    category: Optional[str] = None
    standard_rate: float = Field(0.0, ge=0)
    opening_balance: Optional[float] = Field(None, ge=0)
    allocations: List[SiteAllocationInput] = []


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    category: Optional[str] = None
    standard_rate: Optional[float] = Field(None, ge=0)
    opening_balance: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    allocations: Optional[List[SiteAllocationInput]] = None


class MaterialRead(BaseModel):
    id: str
    organization_id: str
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    quantity: float
    consumed_quantity: float
    standard_rate: float
    opening_balance: float
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MaterialDetail(MaterialRead):
    allocations: List[SiteAllocationRead] = []


class MaterialListItem(MaterialDetail):
    """Catalog entry with consumption figures taken from live usage."""

    available_quantity: float


class MaterialListResponse(BaseModel):
    materials: List[MaterialListItem]
    pagination: Pagination
