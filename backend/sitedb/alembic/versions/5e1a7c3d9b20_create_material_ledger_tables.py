"""Create organization, site and material ledger tables.

Revision ID: 5e1a7c3d9b20
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "5e1a7c3d9b20"
down_revision = None
branch_labels = None
depends_on = None


ROLE_VALUES = (
    "OWNER",
    "ADMIN",
    "MANAGER",
    "PROJECT_MANAGER",
    "MATERIALS_MANAGER",
    "SITE_SUPERVISOR",
    "FINANCE_MANAGER",
    "EXECUTIVE",
    "USER",
)
OB_STATUS_VALUES = ("PENDING", "APPLIED", "FAILED")


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return bool(insp.has_table(table_name))


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _org_fk():
    return sa.Column(
        "organization_id",
        sa.String(length=36),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def upgrade() -> None:
    if not _table_exists("organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=64), nullable=False, unique=True, index=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )

    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column("email", sa.String(length=255), nullable=False, index=True),
            sa.Column("full_name", sa.String(length=255), nullable=False),
            sa.Column(
                "role",
                sa.Enum(*ROLE_VALUES, name="organization_role_enum", native_enum=False),
                nullable=False,
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("organization_id", "email", name="uq_users_org_email"),
        )
        op.create_index("ix_users_org_role", "users", ["organization_id", "role"])

    if not _table_exists("sites"):
        op.create_table(
            "sites",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("location", sa.String(length=255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_sites_org_name", "sites", ["organization_id", "name"])

    if not _table_exists("material_masters"):
        op.create_table(
            "material_masters",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("normalized_name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=64), nullable=True),
            sa.Column("unit", sa.String(length=32), nullable=True),
            sa.Column("quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("consumed_quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("standard_rate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("opening_balance", sa.Float(), nullable=False, server_default="0"),
            sa.Column("site_id", sa.String(length=36), sa.ForeignKey("sites.id", ondelete="SET NULL"), nullable=True),
            sa.Column("site_name", sa.String(length=255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("organization_id", "normalized_name", name="uq_material_masters_org_name"),
        )
        op.create_index("ix_material_masters_org_name", "material_masters", ["organization_id", "normalized_name"])

    if not _table_exists("material_site_allocations"):
        op.create_table(
            "material_site_allocations",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column(
                "material_id",
                sa.String(length=36),
                sa.ForeignKey("material_masters.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "site_id",
                sa.String(length=36),
                sa.ForeignKey("sites.id", ondelete="CASCADE"),
                nullable=False,
                index=True,
            ),
            sa.Column("opening_balance", sa.Float(), nullable=False, server_default="0"),
            sa.Column("inward_qty", sa.Float(), nullable=False, server_default="0"),
            sa.Column("utilization_qty", sa.Float(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint(
                "organization_id",
                "material_id",
                "site_id",
                name="uq_material_site_allocations_org_material_site",
            ),
        )
        op.create_index("ix_material_site_allocations_material", "material_site_allocations", ["material_id"])

    if not _table_exists("material_purchases"):
        op.create_table(
            "material_purchases",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column(
                "material_id",
                sa.String(length=36),
                sa.ForeignKey("material_masters.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("material_name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=64), nullable=True),
            sa.Column(
                "site_id",
                sa.String(length=36),
                sa.ForeignKey("sites.id", ondelete="SET NULL"),
                nullable=True,
                index=True,
            ),
            sa.Column("site_name", sa.String(length=255), nullable=True),
            sa.Column("quantity", sa.Float(), nullable=False),
            sa.Column("unit", sa.String(length=32), nullable=True),
            sa.Column("unit_rate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("vendor_name", sa.String(length=255), nullable=True),
            sa.Column("vendor_invoice_number", sa.String(length=128), nullable=True),
            sa.Column("purchase_date", sa.Date(), nullable=False),
            sa.Column("consumed_quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("remaining_quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("created_by_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL")),
            sa.Column("updated_by_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL")),
            *_timestamps(),
        )
        op.create_index("ix_material_purchases_org_date", "material_purchases", ["organization_id", "purchase_date"])
        op.create_index("ix_material_purchases_material", "material_purchases", ["material_id"])

    if not _table_exists("material_receipts"):
        op.create_table(
            "material_receipts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("receipt_number", sa.String(length=64), nullable=True),
            sa.Column("vehicle_number", sa.String(length=64), nullable=False),
            sa.Column(
                "material_id",
                sa.String(length=36),
                sa.ForeignKey("material_masters.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("material_name", sa.String(length=255), nullable=False),
            sa.Column("filled_weight", sa.Float(), nullable=False),
            sa.Column("empty_weight", sa.Float(), nullable=False),
            sa.Column("net_weight", sa.Float(), nullable=False),
            sa.Column("quantity", sa.Float(), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("vendor_name", sa.String(length=255), nullable=True),
            sa.Column(
                "linked_purchase_id",
                sa.String(length=36),
                sa.ForeignKey("material_purchases.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("site_id", sa.String(length=36), sa.ForeignKey("sites.id", ondelete="SET NULL"), nullable=True),
            sa.Column("site_name", sa.String(length=255), nullable=True),
            sa.Column(
                "opening_balance_status",
                sa.Enum(*OB_STATUS_VALUES, name="opening_balance_status_enum", native_enum=False),
                nullable=False,
                server_default="PENDING",
            ),
            sa.Column("opening_balance_error", sa.Text(), nullable=True),
            sa.Column("created_by_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL")),
            sa.Column("updated_by_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL")),
            *_timestamps(),
            sa.CheckConstraint("net_weight >= 0", name="ck_material_receipts_net_weight_non_negative"),
        )
        op.create_index("ix_material_receipts_org_date", "material_receipts", ["organization_id", "date"])
        op.create_index("ix_material_receipts_material_site", "material_receipts", ["material_id", "site_id"])
        op.create_index(
            "ix_material_receipts_ob_status",
            "material_receipts",
            ["organization_id", "opening_balance_status"],
        )

    if not _table_exists("work_progress_entries"):
        op.create_table(
            "work_progress_entries",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column("site_id", sa.String(length=36), sa.ForeignKey("sites.id", ondelete="SET NULL"), nullable=True),
            sa.Column("site_name", sa.String(length=255), nullable=True),
            sa.Column("work_type", sa.String(length=64), nullable=False),
            sa.Column("work_date", sa.Date(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("unit", sa.String(length=32), nullable=False),
            sa.Column("total_quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(
            "ix_work_progress_entries_org_date",
            "work_progress_entries",
            ["organization_id", "work_date"],
        )

    if not _table_exists("work_progress_materials"):
        op.create_table(
            "work_progress_materials",
            sa.Column("id", sa.String(length=36), primary_key=True),
            _org_fk(),
            sa.Column(
                "work_progress_id",
                sa.String(length=36),
                sa.ForeignKey("work_progress_entries.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "material_id",
                sa.String(length=36),
                sa.ForeignKey("material_masters.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column(
                "purchase_id",
                sa.String(length=36),
                sa.ForeignKey("material_purchases.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("material_name", sa.String(length=255), nullable=False),
            sa.Column("unit", sa.String(length=32), nullable=True),
            sa.Column("quantity", sa.Float(), nullable=False, server_default="0"),
            sa.Column("balance_quantity", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_work_progress_materials_purchase", "work_progress_materials", ["purchase_id"])
        op.create_index(
            "ix_work_progress_materials_material",
            "work_progress_materials",
            ["organization_id", "material_id"],
        )


def downgrade() -> None:
    for table in (
        "work_progress_materials",
        "work_progress_entries",
        "material_receipts",
        "material_purchases",
        "material_site_allocations",
        "material_masters",
        "sites",
        "users",
        "organizations",
    ):
        if _table_exists(table):
            op.drop_table(table)
