from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.apps.materials import models as material_models
from sitedb.apps.materials import services as material_services
from sitedb.apps.purchases import schemas as purchase_schemas
from sitedb.apps.purchases import services as purchase_services
from sitedb.apps.receipts import models as receipt_models
from sitedb.apps.receipts import schemas as receipt_schemas
from sitedb.apps.receipts import services as receipt_services
from sitedb.apps.sites import services as site_services


def _material(db, org_id, name="River Sand"):
    material = material_services.merge_purchase(
        db, organization_id=org_id, name=name, unit="tonne", rate=900, quantity=0
    )
    db.commit()
    return material


def _purchase(db, org):
    purchase = purchase_services.create_purchase(
        db,
        organization_id=org.id,
        payload=purchase_schemas.PurchaseCreate(
            material_name="River Sand", site="Yard", quantity=40, unit_rate=900, purchase_date=date(2024, 4, 1)
        ),
        actor_user_id=None,
    )
    db.commit()
    return purchase


def _payload(material, **overrides) -> receipt_schemas.ReceiptCreate:
    data = {
        "date": date(2024, 5, 1),
        "vehicle_number": "KA-01-AB-1234",
        "material_id": material.id,
        "material_name": material.name,
        "filled_weight": 5500,
        "empty_weight": 50,
        "quantity": 20,
        "vendor_name": "Sri Sand Suppliers",
    }
    data.update(overrides)
    return receipt_schemas.ReceiptCreate(**data)


def _create(db, org, user, *payloads):
    receipts = receipt_services.create_receipts(
        db,
        organization_id=org.id,
        payloads=list(payloads),
        actor_user_id=user.id,
    )
    db.commit()
    return receipts


def test_net_weight_is_derived_from_filled_and_empty(db_session, org, user):
    material = _material(db_session, org.id)

    [receipt] = _create(db_session, org, user, _payload(material))

    assert receipt.net_weight == 5450
    assert receipt.created_by_user_id == user.id


def test_explicit_net_weight_wins(db_session, org, user):
    material = _material(db_session, org.id)

    [receipt] = _create(db_session, org, user, _payload(material, net_weight=5000))

    assert receipt.net_weight == 5000


def test_negative_net_weight_is_rejected(db_session, org, user):
    material = _material(db_session, org.id)

    with pytest.raises(HTTPException) as exc:
        _create(db_session, org, user, _payload(material, filled_weight=40, empty_weight=50))

    assert exc.value.status_code == 400
    assert exc.value.detail == receipt_services.NEGATIVE_NET_WEIGHT
    assert db_session.query(receipt_models.MaterialReceipt).count() == 0


def test_missing_fields_are_rejected(db_session, org, user):
    material = _material(db_session, org.id)

    with pytest.raises(HTTPException) as exc:
        _create(db_session, org, user, _payload(material, vehicle_number="  "))

    assert exc.value.status_code == 400
    assert exc.value.detail == receipt_services.MISSING_FIELDS


def test_material_from_another_tenant_is_rejected(db_session, org, other_org, user):
    foreign = _material(db_session, other_org.id)

    with pytest.raises(HTTPException) as exc:
        _create(db_session, org, user, _payload(foreign))

    assert exc.value.detail == "Invalid material selection."


def test_site_receipts_accumulate_into_allocation_and_catalog(db_session, org, user):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    material = _material(db_session, org.id)

    receipts = _create(
        db_session,
        org,
        user,
        _payload(material, site_id=site.id, quantity=20),
        _payload(material, site_name="tower a ", quantity=30),
    )

    allocation = material_services.get_allocation(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id
    )
    db_session.refresh(material)
    assert allocation.opening_balance == 50
    assert material.opening_balance == 50
    assert {r.site_id for r in receipts} == {site.id}
    assert {r.opening_balance_status for r in receipts} == {receipt_models.OpeningBalanceStatusEnum.APPLIED}


def test_unallocated_receipt_credits_catalog_directly(db_session, org, user):
    material = _material(db_session, org.id)

    [receipt] = _create(
        db_session, org, user, _payload(material, site_id="unallocated", site_name="Unallocated", quantity=12)
    )

    db_session.refresh(material)
    assert receipt.site_id is None
    assert material.opening_balance == 12
    assert db_session.query(material_models.MaterialSiteAllocation).count() == 0


def test_unknown_site_name_is_kept_without_allocation(db_session, org, user):
    material = _material(db_session, org.id)

    [receipt] = _create(db_session, org, user, _payload(material, site_name="Phase 9", quantity=4))

    db_session.refresh(material)
    assert receipt.site_id is None
    assert receipt.site_name == "Phase 9"
    assert material.opening_balance == 4


def test_failed_push_keeps_receipt_and_can_be_retried(db_session, org, user, monkeypatch):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    material = _material(db_session, org.id)

    def _boom(*args, **kwargs):
        raise RuntimeError("allocation store unavailable")

    with monkeypatch.context() as patch:
        patch.setattr(material_services, "add_site_opening_balance", _boom)
        [receipt] = _create(db_session, org, user, _payload(material, site_id=site.id, quantity=20))

    assert receipt.opening_balance_status == receipt_models.OpeningBalanceStatusEnum.FAILED
    assert "allocation store unavailable" in receipt.opening_balance_error
    assert db_session.query(receipt_models.MaterialReceipt).count() == 1
    assert db_session.query(material_models.MaterialSiteAllocation).count() == 0

    summary = receipt_services.retry_failed_opening_balance_pushes(db_session, organization_id=org.id)
    db_session.commit()

    assert summary == {"retried": 1, "applied": 1, "failed": 0}
    assert receipt.opening_balance_status == receipt_models.OpeningBalanceStatusEnum.APPLIED
    assert receipt.opening_balance_error is None
    allocation = material_services.get_allocation(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id
    )
    assert allocation.opening_balance == 20


def test_invalid_record_rejects_whole_batch(db_session, org, user):
    material = _material(db_session, org.id)

    with pytest.raises(HTTPException) as exc:
        _create(
            db_session,
            org,
            user,
            _payload(material, quantity=5),
            _payload(material, filled_weight=10, empty_weight=20),
            _payload(material, quantity=7),
        )

    assert exc.value.status_code == 400
    assert exc.value.detail.startswith("Receipt 2: ")
    db_session.rollback()
    assert db_session.query(receipt_models.MaterialReceipt).count() == 0
    db_session.refresh(material)
    assert material.opening_balance == 0


def test_missing_field_in_batch_rejects_every_record(db_session, org, user):
    material = _material(db_session, org.id)

    with pytest.raises(HTTPException) as exc:
        _create(
            db_session,
            org,
            user,
            _payload(material, vehicle_number="KA-01-AB-0001"),
            _payload(material, vehicle_number=None),
            _payload(material, vehicle_number="KA-01-AB-0003"),
        )

    assert exc.value.status_code == 400
    assert exc.value.detail == f"Receipt 2: {receipt_services.MISSING_FIELDS}"
    db_session.rollback()
    assert db_session.query(receipt_models.MaterialReceipt).count() == 0


def test_linked_purchase_must_belong_to_the_organization(db_session, org, other_org, user):
    material = _material(db_session, org.id)
    ours = _purchase(db_session, org)
    theirs = _purchase(db_session, other_org)

    with pytest.raises(HTTPException) as exc:
        _create(db_session, org, user, _payload(material), _payload(material, linked_purchase_id=theirs.id))
    assert exc.value.status_code == 400
    assert exc.value.detail == "Receipt 2: Invalid purchase reference."
    db_session.rollback()
    assert db_session.query(receipt_models.MaterialReceipt).count() == 0

    [receipt] = _create(db_session, org, user, _payload(material, linked_purchase_id=ours.id))
    assert receipt.linked_purchase_id == ours.id

    with pytest.raises(HTTPException) as exc:
        receipt_services.update_receipt(
            db_session,
            organization_id=org.id,
            receipt_id=receipt.id,
            payload=receipt_schemas.ReceiptUpdate(linked_purchase_id=theirs.id),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "Invalid purchase reference."


def test_empty_batch_is_rejected(db_session, org, user):
    with pytest.raises(HTTPException) as exc:
        receipt_services.create_receipts(db_session, organization_id=org.id, payloads=[], actor_user_id=user.id)
    assert exc.value.status_code == 400


def test_update_recomputes_net_weight_and_rejects_negative(db_session, org, user):
    material = _material(db_session, org.id)
    [receipt] = _create(db_session, org, user, _payload(material))

    updated = receipt_services.update_receipt(
        db_session,
        organization_id=org.id,
        receipt_id=receipt.id,
        payload=receipt_schemas.ReceiptUpdate(empty_weight=500),
        actor_user_id=user.id,
    )
    assert updated.net_weight == 5000

    with pytest.raises(HTTPException) as exc:
        receipt_services.update_receipt(
            db_session,
            organization_id=org.id,
            receipt_id=receipt.id,
            payload=receipt_schemas.ReceiptUpdate(filled_weight=40, empty_weight=50),
            actor_user_id=user.id,
        )
    assert exc.value.detail == receipt_services.NEGATIVE_NET_WEIGHT


def test_update_without_changes_is_rejected(db_session, org, user):
    material = _material(db_session, org.id)
    [receipt] = _create(db_session, org, user, _payload(material))

    with pytest.raises(HTTPException) as exc:
        receipt_services.update_receipt(
            db_session,
            organization_id=org.id,
            receipt_id=receipt.id,
            payload=receipt_schemas.ReceiptUpdate(),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "No changes provided."


def test_update_and_delete_recompute_site_inward_without_reversing_opening_balance(db_session, org, user):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    material = _material(db_session, org.id)
    [receipt] = _create(db_session, org, user, _payload(material, site_id=site.id, quantity=20))

    receipt_services.update_receipt(
        db_session,
        organization_id=org.id,
        receipt_id=receipt.id,
        payload=receipt_schemas.ReceiptUpdate(quantity=25),
        actor_user_id=user.id,
    )
    db_session.commit()
    allocation = material_services.get_allocation(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id
    )
    assert allocation.inward_qty == 25
    assert allocation.opening_balance == 20

    receipt_services.delete_receipt(db_session, organization_id=org.id, receipt_id=receipt.id)
    db_session.commit()
    db_session.refresh(allocation)
    assert allocation.inward_qty == 0
    assert allocation.opening_balance == 20


def test_receipts_are_tenant_scoped(db_session, org, other_org, user):
    material = _material(db_session, org.id)
    [receipt] = _create(db_session, org, user, _payload(material))

    with pytest.raises(HTTPException) as exc:
        receipt_services.get_receipt(db_session, organization_id=other_org.id, receipt_id=receipt.id)
    assert exc.value.status_code == 404

    assert receipt_services.list_receipts(db_session, organization_id=other_org.id) == []
    assert [r.id for r in receipt_services.list_receipts(db_session, organization_id=org.id)] == [receipt.id]


def test_compute_net_weight_rejects_non_finite():
    with pytest.raises(HTTPException):
        receipt_services.compute_net_weight(float("inf"), 0)
    assert receipt_services.compute_net_weight(10, 10) == 0.0
