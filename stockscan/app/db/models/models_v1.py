from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockscan.app.db.base import Base, BigIntPK, utcnow
from stockscan.app.db.models.core_types import (
    Role,
    OrderStatus,
    EntryType,
)

# ---------- MASTER DATA ----------
class Warehouse(Base):
    __tablename__ = "warehouses"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    uom: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(255), unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


# ---------- ACTORS ----------
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# ---------- INBOUND ----------
# Les paires inbound/outbound partagent les mêmes noms d'attributs
# (order_id, party_id, qty_ordered, qty_registered, movement_id, ...)
# pour qu'un seul store serve les deux flux.
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column("po_number", String(64), unique=True, nullable=False)
    party_id: Mapped[int] = mapped_column(
        "supplier_id", ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), default=OrderStatus.pending, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier] = relationship()
    lines: Mapped[list["PurchaseOrderLine"]] = relationship(back_populates="order", cascade="all, delete-orphan")


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    order_id: Mapped[int] = mapped_column(
        "po_id", ForeignKey("purchase_orders.id", ondelete="CASCADE"), primary_key=True
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    qty_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    # compteur durable, écrit uniquement par apply_delivery
    qty_registered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("qty_ordered > 0", name="ck_po_line_qty_pos"),
        CheckConstraint("qty_registered >= 0", name="ck_po_line_registered_nonneg"),
    )

    @property
    def location_id(self) -> int | None:
        return None


class InventoryEntry(Base):
    __tablename__ = "inventory_entries"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int | None] = mapped_column(
        "purchase_order_id",
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    barcode_scanned: Mapped[str | None] = mapped_column(String(255))
    entry_type: Mapped[EntryType] = mapped_column(Enum(EntryType, name="entry_type"), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_entry_qty_pos"),
        Index("ix_inventory_entries_order_product", "purchase_order_id", "product_id"),
    )


class InventoryEntryCancellation(Base):
    __tablename__ = "inventory_entry_cancellations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    movement_id: Mapped[int] = mapped_column(
        "entry_id",
        ForeignKey("inventory_entries.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# ---------- OUTBOUND ----------
class DeliveryOrder(Base):
    __tablename__ = "delivery_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column("order_number", String(64), unique=True, nullable=False)
    party_id: Mapped[int] = mapped_column(
        "customer_id", ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), default=OrderStatus.pending, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    customer: Mapped[Customer] = relationship()
    lines: Mapped[list["DeliveryOrderLine"]] = relationship(back_populates="order", cascade="all, delete-orphan")


class DeliveryOrderLine(Base):
    __tablename__ = "delivery_order_lines"
    order_id: Mapped[int] = mapped_column(
        "delivery_order_id", ForeignKey("delivery_orders.id", ondelete="CASCADE"), primary_key=True
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    location_id: Mapped[int | None] = mapped_column(
        "warehouse_id", ForeignKey("warehouses.id", ondelete="RESTRICT")
    )
    qty_ordered: Mapped[int] = mapped_column("quantity", Integer, nullable=False)
    qty_registered: Mapped[int] = mapped_column("delivered_quantity", Integer, default=0, nullable=False)

    order: Mapped[DeliveryOrder] = relationship(back_populates="lines")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_do_line_qty_pos"),
        CheckConstraint("delivered_quantity >= 0", name="ck_do_line_delivered_nonneg"),
    )


class InventoryExit(Base):
    __tablename__ = "inventory_exits"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int | None] = mapped_column(
        "delivery_order_id",
        ForeignKey("delivery_orders.id", ondelete="RESTRICT"),
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    barcode_scanned: Mapped[str | None] = mapped_column(String(255))
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_exit_qty_pos"),
        Index("ix_inventory_exits_order_product", "delivery_order_id", "product_id"),
    )


class InventoryExitCancellation(Base):
    __tablename__ = "inventory_exit_cancellations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    movement_id: Mapped[int] = mapped_column(
        "exit_id",
        ForeignKey("inventory_exits.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# ---------- INVENTORY ----------
class WarehouseStock(Base):
    __tablename__ = "warehouse_stock"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_warehouse_stock_nonneg"),
    )
