"""initial fulfillment schema (orders, movements, warehouse stock)

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy persiste le NOM des membres d'enum
ROLE = postgresql.ENUM("admin", "manager", "operator", name="role", create_type=False)
ORDER_STATUS = postgresql.ENUM("pending", "partial", "completed", "cancelled", name="order_status", create_type=False)
ENTRY_TYPE = postgresql.ENUM("po_entry", "entry", "initial_load", name="entry_type", create_type=False)


def _timestamps() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _cancellation_table(name: str, fk_column: str, target: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(fk_column, sa.BigInteger(), sa.ForeignKey(f"{target}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("cancelled_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        _timestamps(),
        sa.UniqueConstraint(fk_column, name=f"uq_{name}_{fk_column}"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (ROLE, ORDER_STATUS, ENTRY_TYPE):
        enum_type.create(bind, checkfirst=True)

    # --- MASTER DATA
    op.create_table(
        "warehouses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("uom", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("barcode", sa.String(255), unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamps(),
    )

    # --- INBOUND
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("po_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="pending"),
        _timestamps(),
    )
    op.create_table(
        "purchase_order_lines",
        sa.Column("po_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("qty_ordered", sa.Integer(), nullable=False),
        sa.Column("qty_registered", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("qty_ordered > 0", name="ck_po_line_qty_pos"),
        sa.CheckConstraint("qty_registered >= 0", name="ck_po_line_registered_nonneg"),
    )
    op.create_table(
        "inventory_entries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("purchase_order_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT")),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("barcode_scanned", sa.String(255)),
        sa.Column("entry_type", ENTRY_TYPE, nullable=False),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        _timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_entry_qty_pos"),
    )
    op.create_index("ix_inventory_entries_purchase_order_id", "inventory_entries", ["purchase_order_id"])
    op.create_index("ix_inventory_entries_order_product", "inventory_entries", ["purchase_order_id", "product_id"])
    _cancellation_table("inventory_entry_cancellations", "entry_id", "inventory_entries")

    # --- OUTBOUND
    op.create_table(
        "delivery_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_number", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_id", sa.BigInteger(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="pending"),
        _timestamps(),
    )
    op.create_table(
        "delivery_order_lines",
        sa.Column(
            "delivery_order_id",
            sa.BigInteger(),
            sa.ForeignKey("delivery_orders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("warehouse_id", sa.BigInteger(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT")),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("delivered_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_do_line_qty_pos"),
        sa.CheckConstraint("delivered_quantity >= 0", name="ck_do_line_delivered_nonneg"),
    )
    op.create_table(
        "inventory_exits",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("delivery_order_id", sa.BigInteger(), sa.ForeignKey("delivery_orders.id", ondelete="RESTRICT")),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("barcode_scanned", sa.String(255)),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        _timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_exit_qty_pos"),
    )
    op.create_index("ix_inventory_exits_delivery_order_id", "inventory_exits", ["delivery_order_id"])
    op.create_index("ix_inventory_exits_order_product", "inventory_exits", ["delivery_order_id", "product_id"])
    _cancellation_table("inventory_exit_cancellations", "exit_id", "inventory_exits")

    # --- INVENTORY
    op.create_table(
        "warehouse_stock",
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("warehouse_id", sa.BigInteger(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_warehouse_stock_nonneg"),
    )


def downgrade() -> None:
    for table in (
        "warehouse_stock",
        "inventory_exit_cancellations",
        "inventory_exits",
        "delivery_order_lines",
        "delivery_orders",
        "inventory_entry_cancellations",
        "inventory_entries",
        "purchase_order_lines",
        "purchase_orders",
        "users",
        "customers",
        "suppliers",
        "products",
        "warehouses",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (ENTRY_TYPE, ORDER_STATUS, ROLE):
        enum_type.drop(bind, checkfirst=True)
