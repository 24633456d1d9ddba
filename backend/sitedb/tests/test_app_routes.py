from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.main import app
from sitedb.schemas import DEFAULT_PAGE_SIZE
from sitedb.apps.materials import router as materials_router
from sitedb.apps.purchases import router as purchases_router
from sitedb.apps.purchases import schemas as purchase_schemas
from sitedb.apps.receipts import router as receipts_router
from sitedb.apps.receipts import schemas as receipt_schemas


def _routes():
    paths = app.openapi()["paths"]
    return {(path, method.upper()) for path, operations in paths.items() for method in operations}


def test_ledger_routes_are_registered():
    routes = _routes()

    for expected in (
        ("/materials", "GET"),
        ("/materials", "POST"),
        ("/materials/{material_id}", "PATCH"),
        ("/purchases", "POST"),
        ("/purchases", "GET"),
        ("/purchases/{purchase_id}", "GET"),
        ("/purchases/{purchase_id}", "PATCH"),
        ("/purchases/{purchase_id}", "DELETE"),
        ("/receipts", "POST"),
        ("/receipts/{receipt_id}", "PATCH"),
        ("/receipts/opening-balance/retry", "POST"),
        ("/work-progress", "POST"),
        ("/work-progress/{entry_id}", "PATCH"),
        ("/work-progress/{entry_id}", "DELETE"),
        ("/health", "GET"),
    ):
        assert expected in routes


def test_listing_routes_default_to_shared_page_size():
    paths = app.openapi()["paths"]

    for path in ("/materials", "/purchases"):
        params = {param["name"]: param for param in paths[path]["get"]["parameters"]}
        assert params["limit"]["schema"]["default"] == DEFAULT_PAGE_SIZE


def test_purchase_then_receipt_flow_through_route_handlers(db_session, org, user):
    purchase = purchases_router.create_purchase(
        payload=purchase_schemas.PurchaseCreate(
            material_name="Aggregate 20mm",
            site="Tower A",
            quantity=40,
            unit_rate=1200,
            purchase_date=date(2024, 4, 1),
        ),
        db=db_session,
        current_user=user,
    )

    receipts = receipts_router.create_receipts(
        payload=receipt_schemas.ReceiptBatchCreate(
            receipts=[
                receipt_schemas.ReceiptCreate(
                    date=date(2024, 4, 2),
                    vehicle_number="TN-09-1111",
                    material_id=purchase.material_id,
                    material_name="Aggregate 20mm",
                    filled_weight=12000,
                    empty_weight=4000,
                    quantity=8,
                )
            ]
        ),
        db=db_session,
        current_user=user,
    )
    listing = materials_router.list_materials(page=1, limit=50, db=db_session, current_user=user)

    assert isinstance(receipts, list)
    assert receipts[0].net_weight == 8000
    [material] = listing.materials
    assert material.quantity == 40
    assert material.opening_balance == 8
    assert material.available_quantity == 40


def test_purchase_delete_handler_reports_success(db_session, org, user):
    purchase = purchases_router.create_purchase(
        payload=purchase_schemas.PurchaseCreate(material_name="Cement", site="Yard", quantity=1, unit_rate=1),
        db=db_session,
        current_user=user,
    )

    response = purchases_router.delete_purchase(purchase_id=purchase.id, db=db_session, current_user=user)

    assert response.success is True
    with pytest.raises(HTTPException):
        purchases_router.get_purchase(purchase_id=purchase.id, db=db_session, current_user=user)
