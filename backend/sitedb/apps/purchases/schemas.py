from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from sitedb.schemas import Pagination


class PurchaseCreate(BaseModel):
    # Required fields are checked in the service so every omission maps to a 400.
    material_name: Optional[str] = None
    site: Optional[str] = None
    quantity: Optional[float] = None
    unit_rate: Optional[float] = None
    unit: Optional[str] = None
    total_amount: Optional[float] = None
    vendor_name: Optional[str] = None
    vendor_invoice_number: Optional[str] = None
    purchase_date: Optional[date] = None
    category: Optional[str] = None


class PurchaseUpdate(BaseModel):
    material_name: Optional[str] = None
    site: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    unit_rate: Optional[float] = None
    total_amount: Optional[float] = None
    vendor_name: Optional[str] = None
    vendor_invoice_number: Optional[str] = None
    purchase_date: Optional[date] = None
    category: Optional[str] = None


class PurchaseRead(BaseModel):
    id: str
    organization_id: str
    material_id: Optional[str] = None
    material_name: str
    category: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    unit_rate: float
    total_amount: float
    vendor_name: Optional[str] = None
    vendor_invoice_number: Optional[str] = None
    purchase_date: date
    consumed_quantity: float
    remaining_quantity: float
    created_by_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PurchaseListResponse(BaseModel):
    purchases: List[PurchaseRead]
    pagination: Pagination
