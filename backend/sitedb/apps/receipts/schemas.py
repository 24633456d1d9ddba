from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

from . import models


class ReceiptCreate(BaseModel):
    # Presence of required fields is validated per record by the service so a
    # bad record rejects the whole batch with one 400.
    date: Optional[dt.date] = None
    receipt_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    filled_weight: Optional[float] = None
    empty_weight: Optional[float] = None
    net_weight: Optional[float] = None
    quantity: Optional[float] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    linked_purchase_id: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None


class ReceiptBatchCreate(BaseModel):
    receipts: List[ReceiptCreate]


class ReceiptUpdate(BaseModel):
    date: Optional[dt.date] = None
    receipt_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    filled_weight: Optional[float] = None
    empty_weight: Optional[float] = None
    net_weight: Optional[float] = None
    quantity: Optional[float] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    linked_purchase_id: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None


class ReceiptRead(BaseModel):
    id: str
    organization_id: str
    date: dt.date
    receipt_number: Optional[str] = None
    vehicle_number: str
    material_id: str
    material_name: str
    filled_weight: float
    empty_weight: float
    net_weight: float
    quantity: float
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    linked_purchase_id: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    opening_balance_status: models.OpeningBalanceStatusEnum
    created_by_user_id: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True


class OpeningBalanceRetrySummary(BaseModel):
    retried: int
    applied: int
    failed: int
