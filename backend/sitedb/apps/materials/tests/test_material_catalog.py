from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.apps.materials import models as material_models
from sitedb.apps.materials import router as materials_router
from sitedb.apps.materials import schemas as material_schemas
from sitedb.apps.materials import services as material_services
from sitedb.apps.purchases import schemas as purchase_schemas
from sitedb.apps.purchases import services as purchase_services
from sitedb.apps.sites import services as site_services
from sitedb.apps.work_progress import models as work_progress_models


def _merge(db, org_id, name, quantity, rate, unit="bags"):
    return material_services.merge_purchase(
        db,
        organization_id=org_id,
        name=name,
        unit=unit,
        rate=rate,
        quantity=quantity,
    )


def test_merge_purchase_collapses_case_and_whitespace_variants(db_session, org):
    first = _merge(db_session, org.id, "Cement", 10, 350)
    second = _merge(db_session, org.id, "cement ", 5, 350)
    db_session.commit()

    assert first.id == second.id
    materials = db_session.query(material_models.MaterialMaster).filter_by(organization_id=org.id).all()
    assert len(materials) == 1
    assert materials[0].quantity == 15
    assert materials[0].name == "Cement"
    assert materials[0].normalized_name == "cement"


def test_merge_purchase_keeps_the_higher_rate(db_session, org):
    _merge(db_session, org.id, "Steel Rod", 10, 100)
    material = _merge(db_session, org.id, "steel rod", 10, 80)
    assert material.standard_rate == 100

    material = _merge(db_session, org.id, "STEEL ROD", 10, 120)
    assert material.standard_rate == 120
    assert material.quantity == 30


def test_merge_purchase_takes_new_rate_when_none_stored(db_session, org):
    _merge(db_session, org.id, "Sand", 4, 0)
    material = _merge(db_session, org.id, "Sand", 4, 55)

    assert material.standard_rate == 55


def test_merge_purchase_is_tenant_scoped(db_session, org, other_org):
    ours = _merge(db_session, org.id, "Cement", 10, 350)
    theirs = _merge(db_session, other_org.id, "Cement", 7, 300)

    assert ours.id != theirs.id
    assert ours.quantity == 10
    assert theirs.quantity == 7


def test_merge_purchase_rejects_blank_name(db_session, org):
    with pytest.raises(HTTPException) as exc:
        _merge(db_session, org.id, "   ", 1, 1)
    assert exc.value.status_code == 400


def test_get_material_hides_other_tenants(db_session, org, other_org):
    material = _merge(db_session, org.id, "Cement", 10, 350)

    with pytest.raises(HTTPException) as exc:
        material_services.get_material(db_session, organization_id=other_org.id, material_id=material.id)
    assert exc.value.status_code == 404


def test_site_opening_balance_accumulates_and_resyncs_catalog(db_session, org):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    material = _merge(db_session, org.id, "Cement", 10, 350)

    material_services.add_site_opening_balance(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id, delta=20
    )
    allocation = material_services.add_site_opening_balance(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id, delta=30
    )
    material_services.resync_opening_balance_from_allocations(
        db_session, organization_id=org.id, material_id=material.id
    )
    db_session.commit()

    assert allocation.opening_balance == 50
    assert material_services.total_site_opening_balance(
        db_session, organization_id=org.id, material_id=material.id
    ) == 50
    assert material.opening_balance == 50
    assert db_session.query(material_models.MaterialSiteAllocation).count() == 1


def test_allocation_available_quantity_never_negative():
    allocation = material_models.MaterialSiteAllocation(opening_balance=10, inward_qty=5, utilization_qty=40)
    assert allocation.available_qty == 0.0

    allocation.utilization_qty = 6
    assert allocation.available_qty == 9.0


def test_set_allocation_movement_skips_empty_new_rows(db_session, org):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    material = _merge(db_session, org.id, "Cement", 10, 350)

    assert (
        material_services.set_allocation_movement(
            db_session, organization_id=org.id, material_id=material.id, site_id=site.id, inward_qty=0.0
        )
        is None
    )

    allocation = material_services.set_allocation_movement(
        db_session, organization_id=org.id, material_id=material.id, site_id=site.id, utilization_qty=12.5
    )
    assert allocation.utilization_qty == 12.5
    assert allocation.opening_balance == 0.0


def test_list_materials_rolls_up_live_purchase_usage(db_session, org, user):
    first = purchase_services.create_purchase(
        db_session,
        organization_id=org.id,
        payload=purchase_schemas.PurchaseCreate(
            material_name="Cement",
            site="Yard",
            quantity=100,
            unit_rate=350,
            unit="bags",
            purchase_date=date(2024, 1, 1),
        ),
        actor_user_id=user.id,
    )
    purchase_services.create_purchase(
        db_session,
        organization_id=org.id,
        payload=purchase_schemas.PurchaseCreate(
            material_name="cement",
            site="Yard",
            quantity=50,
            unit_rate=360,
            purchase_date=date(2024, 2, 1),
        ),
        actor_user_id=user.id,
    )
    _merge(db_session, org.id, "Bricks", 1000, 8, unit="nos")

    entry = work_progress_models.WorkProgressEntry(
        organization_id=org.id,
        site_name="Yard",
        work_type="Slab",
        work_date=date(2024, 3, 1),
        unit="sqm",
        total_quantity=40,
    )
    entry.materials.append(
        work_progress_models.WorkProgressMaterial(
            organization_id=org.id,
            material_id=first.material_id,
            material_name="Cement",
            quantity=120,
        )
    )
    db_session.add(entry)
    db_session.commit()

    result = material_services.list_materials(db_session, organization_id=org.id, page=1, limit=10)

    by_name = {item.name: item for item in result.materials}
    assert [item.name for item in result.materials] == ["Bricks", "Cement"]
    assert by_name["Cement"].quantity == 150
    assert by_name["Cement"].consumed_quantity == 120
    assert by_name["Cement"].available_quantity == 30
    assert by_name["Cement"].standard_rate == 360
    assert by_name["Bricks"].consumed_quantity == 0
    assert by_name["Bricks"].available_quantity == 1000
    assert result.pagination.total == 2
    assert result.pagination.total_pages == 1


def test_list_materials_rejects_out_of_range_limit(db_session, org):
    for limit in (0, 101):
        with pytest.raises(HTTPException) as exc:
            material_services.list_materials(db_session, organization_id=org.id, page=1, limit=limit)
        assert exc.value.status_code == 400


def test_create_material_with_site_allocations(db_session, org, user):
    tower = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    annex = site_services.create_site(db_session, organization_id=org.id, name="Annex")
    db_session.commit()

    material = materials_router.create_material(
        payload=material_schemas.MaterialCreate(
            name=" Fly Ash Bricks ",
            unit="nos",
            standard_rate=7.5,
            allocations=[
                material_schemas.SiteAllocationInput(site_id=tower.id, opening_balance=400),
                material_schemas.SiteAllocationInput(site_id=annex.id, opening_balance=150),
            ],
        ),
        db=db_session,
        current_user=user,
    )

    assert material.name == "Fly Ash Bricks"
    assert material.normalized_name == "fly ash bricks"
    assert material.quantity == 0
    assert material.opening_balance == 550
    assert sorted(a.opening_balance for a in material.allocations) == [150, 400]


def test_create_material_rejects_duplicates_and_unknown_sites(db_session, org, user):
    _merge(db_session, org.id, "Cement", 10, 350)

    with pytest.raises(HTTPException) as exc:
        material_services.create_material(
            db_session,
            organization_id=org.id,
            payload=material_schemas.MaterialCreate(name="CEMENT "),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "Material already exists."

    with pytest.raises(HTTPException) as exc:
        material_services.create_material(
            db_session,
            organization_id=org.id,
            payload=material_schemas.MaterialCreate(
                name="Sand",
                allocations=[material_schemas.SiteAllocationInput(site_id="missing-site", opening_balance=5)],
            ),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "Invalid site selection."


def test_update_material_upserts_allocations_and_resyncs(db_session, org, user):
    tower = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    annex = site_services.create_site(db_session, organization_id=org.id, name="Annex")
    material = _merge(db_session, org.id, "Cement", 10, 350)
    material_services.add_site_opening_balance(
        db_session, organization_id=org.id, material_id=material.id, site_id=tower.id, delta=20
    )
    db_session.commit()

    updated = materials_router.update_material(
        material_id=material.id,
        payload=material_schemas.MaterialUpdate(
            category="Binder",
            allocations=[
                material_schemas.SiteAllocationInput(site_id=tower.id, opening_balance=5),
                material_schemas.SiteAllocationInput(site_id=annex.id, opening_balance=12),
            ],
        ),
        db=db_session,
        current_user=user,
    )

    balances = {a.site_id: a.opening_balance for a in updated.allocations}
    assert balances == {tower.id: 5, annex.id: 12}
    assert updated.opening_balance == 17
    assert updated.category == "Binder"
    assert db_session.query(material_models.MaterialSiteAllocation).count() == 2


def test_update_material_rename_and_direct_opening_balance(db_session, org, user):
    site = site_services.create_site(db_session, organization_id=org.id, name="Tower A")
    cement = _merge(db_session, org.id, "Cement", 10, 350)
    sand = _merge(db_session, org.id, "Sand", 4, 55)

    renamed = material_services.update_material(
        db_session,
        organization_id=org.id,
        material_id=cement.id,
        payload=material_schemas.MaterialUpdate(name="Cement OPC 53", opening_balance=8),
        actor_user_id=user.id,
    )
    assert renamed.normalized_name == "cement opc 53"
    assert renamed.opening_balance == 8

    with pytest.raises(HTTPException) as exc:
        material_services.update_material(
            db_session,
            organization_id=org.id,
            material_id=sand.id,
            payload=material_schemas.MaterialUpdate(name="cement opc 53"),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "Material already exists."

    material_services.add_site_opening_balance(
        db_session, organization_id=org.id, material_id=sand.id, site_id=site.id, delta=3
    )
    with pytest.raises(HTTPException) as exc:
        material_services.update_material(
            db_session,
            organization_id=org.id,
            material_id=sand.id,
            payload=material_schemas.MaterialUpdate(opening_balance=9),
            actor_user_id=user.id,
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        material_services.update_material(
            db_session,
            organization_id=org.id,
            material_id=sand.id,
            payload=material_schemas.MaterialUpdate(),
            actor_user_id=user.id,
        )
    assert exc.value.detail == "No changes provided."
