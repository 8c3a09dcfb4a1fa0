"""initial purchase-order ledger schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PO_STATUS = sa.Enum("draft", "approved", "received", "cancelled", name="purchase_order_status")
MOVEMENT_TYPE = sa.Enum("stock_in", "stock_out", "transfer", "adjustment", name="movement_type")
SOURCE_ORDER_TYPE = sa.Enum("purchase", "sale", "transfer", "return", name="source_order_type")
PRODUCT_STATE = sa.Enum("active", "inactive", "archived", name="product_state")

MONEY = sa.Numeric(14, 2)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        _ts("created_at"),
    )

    op.create_table(
        "stores",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_stores_organization_id", "stores", ["organization_id"])

    op.create_table(
        "inventory_locations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="SET NULL")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(64)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("organization_id", "name", name="uq_location_org_name"),
    )
    op.create_index("ix_inventory_locations_organization_id", "inventory_locations", ["organization_id"])

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("organization_id", "name", name="uq_supplier_org_name"),
    )
    op.create_index("ix_suppliers_organization_id", "suppliers", ["organization_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64)),
        sa.Column("description", sa.Text()),
        sa.Column("base_price", MONEY, nullable=False, server_default="0"),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("state", PRODUCT_STATE, nullable=False, server_default="active"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("store_id", "slug", name="uq_product_store_slug"),
        sa.UniqueConstraint("store_id", "sku", name="uq_product_store_sku"),
        sa.CheckConstraint("base_price >= 0", name="ck_product_base_price_nonneg"),
    )
    op.create_index("ix_products_store_id", "products", ["store_id"])

    op.create_table(
        "product_variants",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku", sa.String(64)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_product_variants_product_id", "product_variants", ["product_id"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("inventory_locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", PO_STATUS, nullable=False, server_default="draft"),
        sa.Column("subtotal_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("discount_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("shipping_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        _ts("order_date"),
        sa.Column("expected_date", sa.Date()),
        _ts("approved_date", nullable=True),
        _ts("cancelled_date", nullable=True),
        _ts("received_date", nullable=True),
        sa.Column("internal_reference", sa.String(128)),
        sa.Column("supplier_reference", sa.String(128)),
        sa.Column("payment_terms", sa.String(128)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by_user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("approved_by_user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("subtotal_amount >= 0", name="ck_po_subtotal_nonneg"),
        sa.CheckConstraint("discount_amount >= 0", name="ck_po_discount_nonneg"),
        sa.CheckConstraint("tax_amount >= 0", name="ck_po_tax_nonneg"),
        sa.CheckConstraint("shipping_cost >= 0", name="ck_po_shipping_nonneg"),
    )
    op.create_index("ix_purchase_orders_organization_id", "purchase_orders", ["organization_id"])
    op.create_index("ix_purchase_orders_org_date", "purchase_orders", ["organization_id", "order_date"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("purchase_order_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_variant_id", sa.BigInteger(), sa.ForeignKey("product_variants.id", ondelete="RESTRICT")),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", MONEY, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("batch_number", sa.String(64)),
        sa.Column("manufacturing_date", sa.Date()),
        sa.Column("expiration_date", sa.Date()),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_item_qty_ordered_pos"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_po_item_qty_received_nonneg"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_po_item_unit_cost_nonneg"),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])

    op.create_table(
        "order_number_sequences",
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_variant_id", sa.BigInteger(), sa.ForeignKey("product_variants.id", ondelete="RESTRICT")),
        sa.Column("from_location_id", sa.BigInteger(), sa.ForeignKey("inventory_locations.id", ondelete="RESTRICT")),
        sa.Column("to_location_id", sa.BigInteger(), sa.ForeignKey("inventory_locations.id", ondelete="RESTRICT")),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("source_order_type", SOURCE_ORDER_TYPE),
        sa.Column("source_order_id", sa.BigInteger()),
        sa.Column("reason", sa.String(255)),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        _ts("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_movement_qty_pos"),
    )
    op.create_index("ix_inventory_movements_product_id", "inventory_movements", ["product_id"])
    op.create_index("ix_inventory_movements_source", "inventory_movements", ["source_order_type", "source_order_id"])
    op.create_index("ix_inventory_movements_product_time", "inventory_movements", ["product_id", "created_at"])

    op.create_table(
        "stock_levels",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_variant_id", sa.BigInteger(), sa.ForeignKey("product_variants.id", ondelete="RESTRICT")),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("inventory_locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at"),
        sa.UniqueConstraint("product_id", "product_variant_id", "location_id", name="uq_stock_level_key"),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        sa.CheckConstraint("quantity_reserved >= 0", name="ck_stock_reserved_nonneg"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("organization_id", sa.BigInteger(), sa.ForeignKey("organizations.id", ondelete="SET NULL")),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("stock_levels")
    op.drop_index("ix_inventory_movements_product_time", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_source", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_product_id", table_name="inventory_movements")
    op.drop_table("inventory_movements")
    op.drop_table("order_number_sequences")
    op.drop_index("ix_purchase_order_items_purchase_order_id", table_name="purchase_order_items")
    op.drop_table("purchase_order_items")
    op.drop_index("ix_purchase_orders_org_date", table_name="purchase_orders")
    op.drop_index("ix_purchase_orders_organization_id", table_name="purchase_orders")
    op.drop_table("purchase_orders")
    op.drop_index("ix_product_variants_product_id", table_name="product_variants")
    op.drop_table("product_variants")
    op.drop_index("ix_products_store_id", table_name="products")
    op.drop_table("products")
    op.drop_table("users")
    op.drop_index("ix_suppliers_organization_id", table_name="suppliers")
    op.drop_table("suppliers")
    op.drop_index("ix_inventory_locations_organization_id", table_name="inventory_locations")
    op.drop_table("inventory_locations")
    op.drop_index("ix_stores_organization_id", table_name="stores")
    op.drop_table("stores")
    op.drop_table("organizations")

    bind = op.get_bind()
    for enum in (PRODUCT_STATE, SOURCE_ORDER_TYPE, MOVEMENT_TYPE, PO_STATUS):
        enum.drop(bind, checkfirst=True)
