import os

# Base en mémoire : jamais la DB locale pendant les tests
os.environ.setdefault("STOCKSCAN_DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("STOCKSCAN_LOG_JSON", "false")

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockscan.app.db.base import Base
from stockscan.app.db.models.models_v1 import (
    Customer,
    DeliveryOrder,
    DeliveryOrderLine,
    Product,
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
    User,
    Warehouse,
    WarehouseStock,
)
from stockscan.app.db.models.core_types import OrderKind, OrderStatus, Role
from stockscan.app.schemas.orders import (
    DeliveryApplied,
    MovementRow,
    OrderLineSnapshot,
    OrderSnapshot,
    ProductRead,
)
from stockscan.services.errors import StoreError
from stockscan.services.registered_cache import RegisteredQuantityCache


# ---------- SQL ----------
@pytest.fixture(scope="function")
def engine():
    """SQLite en mémoire partagée (StaticPool) : une seule connexion, schéma neuf par test."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def master_data(db_session):
    """
    Données de référence minimales.

    - 2 bodegas (une inactive)
    - 1 opérateur, 1 fournisseur, 1 client
    - 3 produits avec code-barres
    """
    wh = Warehouse(name="PRINCIPAL", is_active=True)
    wh_off = Warehouse(name="FERMEE", is_active=False)
    user = User(name="OPERATEUR", role=Role.operator, active=True)
    supplier = Supplier(name="FOURNISSEUR-1")
    customer = Customer(name="CLIENT-1")
    p1 = Product(sku="SKU-001", name="Produit 1", barcode="7501000000011")
    p2 = Product(sku="SKU-002", name="Produit 2", barcode="7501000000028")
    p3 = Product(sku="SKU-003", name="Produit 3", barcode="7501000000035")
    db_session.add_all([wh, wh_off, user, supplier, customer, p1, p2, p3])
    db_session.commit()

    return SimpleNamespace(
        warehouse_id=wh.id,
        inactive_warehouse_id=wh_off.id,
        user_id=user.id,
        supplier_id=supplier.id,
        customer_id=customer.id,
        p1=p1.id,
        p2=p2.id,
        p3=p3.id,
        barcodes={p1.id: p1.barcode, p2.id: p2.barcode, p3.id: p3.barcode},
    )


@pytest.fixture(scope="function")
def make_purchase_order(db_session, master_data):
    counter = {"n": 0}

    def _make(lines: dict[int, int], status: OrderStatus = OrderStatus.pending) -> int:
        counter["n"] += 1
        po = PurchaseOrder(number=f"PO-TEST-{counter['n']}", party_id=master_data.supplier_id, status=status)
        db_session.add(po)
        db_session.flush()
        for pid, qty in lines.items():
            db_session.add(PurchaseOrderLine(order_id=po.id, product_id=pid, qty_ordered=qty, qty_registered=0))
        db_session.commit()
        return po.id

    return _make


@pytest.fixture(scope="function")
def make_delivery_order(db_session, master_data):
    counter = {"n": 0}

    def _make(lines: dict[int, int], status: OrderStatus = OrderStatus.pending) -> int:
        counter["n"] += 1
        do = DeliveryOrder(number=f"DO-TEST-{counter['n']}", party_id=master_data.customer_id, status=status)
        db_session.add(do)
        db_session.flush()
        for pid, qty in lines.items():
            db_session.add(
                DeliveryOrderLine(
                    order_id=do.id,
                    product_id=pid,
                    location_id=master_data.warehouse_id,
                    qty_ordered=qty,
                    qty_registered=0,
                )
            )
        db_session.commit()
        return do.id

    return _make


@pytest.fixture(scope="function")
def set_stock(db_session, master_data):
    def _set(product_id: int, quantity: int, warehouse_id: int | None = None) -> None:
        wid = warehouse_id or master_data.warehouse_id
        ws = db_session.get(WarehouseStock, (product_id, wid))
        if ws is None:
            db_session.add(WarehouseStock(product_id=product_id, warehouse_id=wid, quantity=quantity))
        else:
            ws.quantity = quantity
        db_session.commit()

    return _set


# ---------- Store en mémoire ----------
class FakeOrderStore:
    """
    OrderStore en mémoire pour les tests du moteur.

    Injection de pannes :
    - insert_error : StoreError levée par insert_movements
    - insert_result : liste d'ids renvoyée telle quelle (rien n'est inséré)
    - apply_failures : produits dont apply_delivery échoue
    - new_total_override : new_total renvoyé par apply_delivery, par produit
    - movements_error : StoreError levée par list_movements
    - on_insert : appelé pendant insert_movements, avant l'écriture
    """

    WAREHOUSE_ID = 1

    def __init__(self, kind: OrderKind = OrderKind.inbound):
        self.kind = kind
        self.orders: dict[int, OrderSnapshot] = {}
        self.products: dict[int, ProductRead] = {}
        self.movements: list[MovementRow] = []
        self.cancelled: set[int] = set()
        self.registered: dict[tuple[int, int], int] = {}
        self.stock: dict[tuple[int, int], int] = {}
        self.active_warehouses: set[int] = {self.WAREHOUSE_ID}
        self.inactive_products: set[int] = set()

        self.insert_error: str | None = None
        self.insert_result: list[int] | None = None
        self.apply_failures: set[int] = set()
        self.load_error: str | None = None
        self.new_total_override: dict[int, int] = {}
        self.movements_error: str | None = None
        self.on_insert = None

        self.calls: list[str] = []
        self.inserted_batches: list[list] = []
        self._next_id = 1

    # ---------- setup ----------
    def add_product(self, product_id: int, barcode: str | None = None) -> ProductRead:
        p = ProductRead(
            id=product_id,
            sku=f"SKU-{product_id}",
            name=f"Produit {product_id}",
            barcode=barcode or f"BC-{product_id}",
        )
        self.products[product_id] = p
        return p

    def add_order(
        self,
        order_id: int,
        lines: dict[int, int],
        status: OrderStatus = OrderStatus.pending,
        party_id: int = 1,
    ) -> OrderSnapshot:
        location = self.WAREHOUSE_ID if self.kind is OrderKind.outbound else None
        for pid in lines:
            if pid not in self.products:
                self.add_product(pid)
        order = OrderSnapshot(
            id=order_id,
            kind=self.kind,
            number=f"ORD-{order_id}",
            party_id=party_id,
            status=status,
            lines=tuple(
                OrderLineSnapshot(
                    product_id=pid,
                    required_quantity=qty,
                    location_id=location,
                    product=self.products[pid],
                )
                for pid, qty in lines.items()
            ),
        )
        self.orders[order_id] = order
        return order

    def add_movement(self, order_id: int | None, product_id: int, quantity: int, cancelled: bool = False) -> int:
        mid = self._next_id
        self._next_id += 1
        self.movements.append(MovementRow(id=mid, order_id=order_id, product_id=product_id, quantity=quantity))
        if cancelled:
            self.cancelled.add(mid)
        elif order_id is not None:
            key = (order_id, product_id)
            self.registered[key] = self.registered.get(key, 0) + quantity
        return mid

    def product(self, product_id: int) -> ProductRead:
        return self.products[product_id]

    # ---------- OrderStore ----------
    def load_order(self, order_id: int):
        self.calls.append("load_order")
        if self.load_error:
            raise StoreError(self.load_error)
        return self.orders.get(order_id)

    def list_open_orders(self, party_id=None):
        self.calls.append("list_open_orders")
        return [
            o
            for o in self.orders.values()
            if o.is_open and (party_id is None or o.party_id == party_id)
        ]

    def get_order_status(self, order_id: int):
        self.calls.append("get_order_status")
        order = self.orders.get(order_id)
        return order.status if order else None

    def list_movements(self, order_ids):
        self.calls.append("list_movements")
        if self.movements_error:
            raise StoreError(self.movements_error)
        ids = set(order_ids)
        return [m for m in self.movements if m.order_id in ids]

    def list_cancelled_movement_ids(self, order_ids):
        self.calls.append("list_cancelled_movement_ids")
        ids = set(order_ids)
        return {m.id for m in self.movements if m.order_id in ids and m.id in self.cancelled}

    def insert_movements(self, movements):
        self.calls.append("insert_movements")
        if self.insert_error:
            raise StoreError(self.insert_error)
        if self.insert_result is not None:
            return list(self.insert_result)
        if self.on_insert is not None:
            self.on_insert()

        self.inserted_batches.append(list(movements))
        ids = []
        sign = 1 if self.kind is OrderKind.inbound else -1
        for new in movements:
            mid = self._next_id
            self._next_id += 1
            self.movements.append(
                MovementRow(id=mid, order_id=new.order_id, product_id=new.product_id, quantity=new.quantity)
            )
            key = (new.product_id, new.warehouse_id)
            self.stock[key] = self.stock.get(key, 0) + sign * new.quantity
            ids.append(mid)
        return ids

    def apply_delivery(self, order_id: int, product_id: int, quantity_delta: int):
        self.calls.append("apply_delivery")
        if product_id in self.apply_failures:
            raise StoreError(f"apply_delivery failed for product {product_id}")

        order = self.orders[order_id]
        key = (order_id, product_id)
        self.registered[key] = self.registered.get(key, 0) + quantity_delta
        order_complete = all(
            self.registered.get((order_id, ln.product_id), 0) >= ln.required_quantity for ln in order.lines
        )
        status = OrderStatus.completed if order_complete else OrderStatus.partial
        self.orders[order_id] = order.model_copy(update={"status": status})

        line = order.line_for(product_id)
        return DeliveryApplied(
            order_id=order_id,
            product_id=product_id,
            new_total=self.new_total_override.get(product_id, self.registered[key]),
            line_complete=self.registered[key] >= line.required_quantity,
            order_complete=order_complete,
        )

    def find_product_by_barcode(self, barcode: str):
        self.calls.append("find_product_by_barcode")
        for p in self.products.values():
            if p.barcode == barcode:
                return p
        return None

    def available_stock(self, product_id: int, warehouse_id: int) -> int:
        self.calls.append("available_stock")
        return self.stock.get((product_id, warehouse_id), 0)

    def is_warehouse_active(self, warehouse_id: int) -> bool:
        self.calls.append("is_warehouse_active")
        return warehouse_id in self.active_warehouses

    def inactive_product_ids(self, product_ids):
        self.calls.append("inactive_product_ids")
        return {pid for pid in product_ids if pid in self.inactive_products or pid not in self.products}


@pytest.fixture(scope="function")
def fake_store() -> FakeOrderStore:
    return FakeOrderStore(OrderKind.inbound)


@pytest.fixture(scope="function")
def fake_outbound_store() -> FakeOrderStore:
    return FakeOrderStore(OrderKind.outbound)


@pytest.fixture(scope="function")
def cache() -> RegisteredQuantityCache:
    return RegisteredQuantityCache()
