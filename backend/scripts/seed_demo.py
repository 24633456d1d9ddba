from __future__ import annotations

from datetime import date, timedelta

from sitedb.database import WriteSessionLocal
from sitedb.apps.accounts import models as account_models
from sitedb.apps.materials import models as material_models
from sitedb.apps.materials import services as material_services
from sitedb.apps.purchases import schemas as purchase_schemas
from sitedb.apps.purchases import services as purchase_services
from sitedb.apps.receipts import models as receipt_models
from sitedb.apps.receipts import schemas as receipt_schemas
from sitedb.apps.receipts import services as receipt_services
from sitedb.apps.sites import models as site_models
from sitedb.apps.sites import services as site_services
from sitedb.apps.work_progress import schemas as wp_schemas
from sitedb.apps.work_progress import services as wp_services


def _get_or_create_organization(db) -> account_models.Organization:
    organization = (
        db.query(account_models.Organization)
        .filter(account_models.Organization.slug == "demo-builders")
        .first()
    )
    if organization:
        return organization
    organization = account_models.Organization(name="Demo Builders", slug="demo-builders", is_active=True)
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


def _get_or_create_manager(db, organization: account_models.Organization) -> account_models.User:
    user = (
        db.query(account_models.User)
        .filter(
            account_models.User.organization_id == organization.id,
            account_models.User.email == "materials@demo-builders.example",
        )
        .first()
    )
    if user:
        return user
    user = account_models.User(
        organization_id=organization.id,
        email="materials@demo-builders.example",
        full_name="Demo Materials Manager",
        role=account_models.OrganizationRole.MATERIALS_MANAGER,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _get_or_create_site(db, organization: account_models.Organization, name: str) -> site_models.Site:
    site_id, _ = site_services.resolve_site(db, organization_id=organization.id, site=name)
    if site_id:
        return site_services.get_site(db, organization_id=organization.id, site_id=site_id)
    site = site_services.create_site(db, organization_id=organization.id, name=name, location="Demo City")
    db.commit()
    return site


def _seed_purchases(db, organization, site, actor) -> None:
    if (
        db.query(material_models.MaterialMaster)
        .filter(material_models.MaterialMaster.organization_id == organization.id)
        .first()
    ):
        return
    start = date.today() - timedelta(days=30)
    for offset, (name, unit, quantity, rate) in enumerate(
        [
            ("Cement OPC 53", "bags", 400, 380),
            ("River Sand", "tonne", 60, 950),
            ("TMT Bar 12mm", "kg", 2500, 68),
            ("cement opc 53 ", "bags", 200, 372),
        ]
    ):
        purchase_services.create_purchase(
            db,
            organization_id=organization.id,
            payload=purchase_schemas.PurchaseCreate(
                material_name=name,
                site=site.name,
                quantity=quantity,
                unit_rate=rate,
                unit=unit,
                vendor_name="Demo Traders",
                purchase_date=start + timedelta(days=offset * 5),
            ),
            actor_user_id=actor.id,
        )
    db.commit()


def _seed_receipts(db, organization, site, actor) -> None:
    if (
        db.query(receipt_models.MaterialReceipt)
        .filter(receipt_models.MaterialReceipt.organization_id == organization.id)
        .first()
    ):
        return
    sand = material_services.find_material_by_name(
        db, organization_id=organization.id, name="River Sand"
    )
    receipt_services.create_receipts(
        db,
        organization_id=organization.id,
        payloads=[
            receipt_schemas.ReceiptCreate(
                date=date.today() - timedelta(days=day),
                vehicle_number=f"DEMO-{day:04d}",
                material_id=sand.id,
                material_name=sand.name,
                filled_weight=18500,
                empty_weight=6500,
                quantity=12,
                vendor_name="Demo Traders",
                site_id=site.id,
            )
            for day in (10, 6, 2)
        ],
        actor_user_id=actor.id,
    )
    db.commit()


def _seed_work_progress(db, organization, site, actor) -> None:
    if wp_services.list_work_progress(db, organization_id=organization.id, limit=1):
        return
    cement = material_services.find_material_by_name(
        db, organization_id=organization.id, name="Cement OPC 53"
    )
    wp_services.record_work_progress(
        db,
        organization_id=organization.id,
        payload=wp_schemas.WorkProgressCreate(
            site_id=site.id,
            site_name=site.name,
            work_type="Slab casting",
            work_date=date.today() - timedelta(days=1),
            unit="cum",
            total_quantity=18,
            description="Level 2 slab",
            materials=[
                wp_schemas.WorkProgressMaterialCreate(
                    material_id=cement.id,
                    material_name=cement.name,
                    unit="bags",
                    quantity=450,
                )
            ],
        ),
        actor_user_id=actor.id,
    )
    db.commit()


def main() -> None:
    db = WriteSessionLocal()
    try:
        organization = _get_or_create_organization(db)
        manager = _get_or_create_manager(db, organization)
        site = _get_or_create_site(db, organization, "Tower A")
        _seed_purchases(db, organization, site, manager)
        _seed_receipts(db, organization, site, manager)
        _seed_work_progress(db, organization, site, manager)
    finally:
        db.close()


if __name__ == "__main__":
    main()
