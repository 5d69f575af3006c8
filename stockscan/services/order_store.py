"""
Frontière avec le store persistant.

Le moteur ne parle qu'au protocole `OrderStore` ; chaque ligne qui traverse
la frontière est validée en DTO pydantic. Toute erreur SQL ou réponse mal
formée devient un `StoreError`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from stockscan.app.db.models.models_v1 import Product, Warehouse
from stockscan.app.db.models.core_types import OrderKind, OrderStatus, OPEN_ORDER_STATUSES
from stockscan.app.schemas.orders import (
    DeliveryApplied,
    MovementRow,
    NewMovement,
    OrderSnapshot,
    ProductRead,
)
from stockscan.services.errors import StoreError
from stockscan.services.flows import FLOW_MODELS
from stockscan.services.inventory import apply_stock_delta, get_available_stock

logger = structlog.get_logger(__name__)


class OrderStore(Protocol):
    kind: OrderKind

    def load_order(self, order_id: int) -> OrderSnapshot | None: ...

    def list_open_orders(self, party_id: int | None = None) -> list[OrderSnapshot]: ...

    def get_order_status(self, order_id: int) -> OrderStatus | None: ...

    def list_movements(self, order_ids: Sequence[int]) -> list[MovementRow]: ...

    def list_cancelled_movement_ids(self, order_ids: Sequence[int]) -> set[int]: ...

    def insert_movements(self, movements: Sequence[NewMovement]) -> list[int]: ...

    def apply_delivery(self, order_id: int, product_id: int, quantity_delta: int) -> DeliveryApplied: ...

    def find_product_by_barcode(self, barcode: str) -> ProductRead | None: ...

    def available_stock(self, product_id: int, warehouse_id: int) -> int: ...

    def is_warehouse_active(self, warehouse_id: int) -> bool: ...

    def inactive_product_ids(self, product_ids: Sequence[int]) -> set[int]: ...


class SqlOrderStore:
    """Implémentation SQLAlchemy, une session courte par appel."""

    def __init__(self, session_factory: sessionmaker, kind: OrderKind):
        self._session_factory = session_factory
        self.kind = kind
        self._models = FLOW_MODELS[kind]

    # ---------- Helpers ----------
    def _run(self, op: str, fn):
        db: Session = self._session_factory()
        try:
            result = fn(db)
            db.commit()
            return result
        except StoreError:
            db.rollback()
            raise
        except (SQLAlchemyError, ValidationError, ValueError) as e:
            db.rollback()
            logger.error("store_call_failed", op=op, kind=self.kind.value, error=str(e))
            raise StoreError(f"{op} failed: {e}") from e
        finally:
            db.close()

    def _snapshot(self, order) -> OrderSnapshot:
        return OrderSnapshot.model_validate(
            {
                "id": order.id,
                "kind": self.kind,
                "number": order.number,
                "party_id": order.party_id,
                "status": order.status,
                "created_at": order.created_at,
                "lines": list(order.lines),
            },
            from_attributes=True,
        )

    def _orders_query(self):
        m = self._models
        return select(m.order).options(selectinload(m.order.lines).selectinload(m.line.product))

    # ---------- Reads ----------
    def load_order(self, order_id: int) -> OrderSnapshot | None:
        def op(db: Session):
            order = db.execute(self._orders_query().where(self._models.order.id == order_id)).scalar_one_or_none()
            return self._snapshot(order) if order else None

        return self._run("load_order", op)

    def list_open_orders(self, party_id: int | None = None) -> list[OrderSnapshot]:
        m = self._models

        def op(db: Session):
            stmt = (
                self._orders_query()
                .where(m.order.status.in_(OPEN_ORDER_STATUSES))
                .order_by(m.order.created_at.desc(), m.order.id.desc())
            )
            if party_id is not None:
                stmt = stmt.where(m.order.party_id == party_id)
            return [self._snapshot(o) for o in db.execute(stmt).scalars().all()]

        return self._run("list_open_orders", op)

    def get_order_status(self, order_id: int) -> OrderStatus | None:
        def op(db: Session):
            return db.execute(
                select(self._models.order.status).where(self._models.order.id == order_id)
            ).scalar_one_or_none()

        return self._run("get_order_status", op)

    def list_movements(self, order_ids: Sequence[int]) -> list[MovementRow]:
        mv = self._models.movement
        ids = sorted({int(i) for i in order_ids})
        if not ids:
            return []

        def op(db: Session):
            rows = db.execute(select(mv).where(mv.order_id.in_(ids)).order_by(mv.id)).scalars().all()
            return [MovementRow.model_validate(r) for r in rows]

        return self._run("list_movements", op)

    def list_cancelled_movement_ids(self, order_ids: Sequence[int]) -> set[int]:
        m = self._models
        ids = sorted({int(i) for i in order_ids})
        if not ids:
            return set()

        def op(db: Session):
            rows = db.execute(
                select(m.cancellation.movement_id)
                .join(m.movement, m.movement.id == m.cancellation.movement_id)
                .where(m.movement.order_id.in_(ids))
            ).scalars().all()
            return {int(r) for r in rows}

        return self._run("list_cancelled_movement_ids", op)

    def find_product_by_barcode(self, barcode: str) -> ProductRead | None:
        def op(db: Session):
            p = db.execute(
                select(Product).where(Product.barcode == barcode).where(Product.active.is_(True))
            ).scalar_one_or_none()
            return ProductRead.model_validate(p) if p else None

        return self._run("find_product_by_barcode", op)

    def available_stock(self, product_id: int, warehouse_id: int) -> int:
        return self._run("available_stock", lambda db: get_available_stock(db, product_id, warehouse_id))

    def is_warehouse_active(self, warehouse_id: int) -> bool:
        def op(db: Session):
            wh = db.get(Warehouse, warehouse_id)
            return bool(wh and wh.is_active)

        return self._run("is_warehouse_active", op)

    def inactive_product_ids(self, product_ids: Sequence[int]) -> set[int]:
        """Produits désactivés ou supprimés parmi `product_ids`."""
        if not product_ids:
            return set()

        def op(db: Session):
            active = db.scalars(
                select(Product.id).where(Product.id.in_(product_ids), Product.active.is_(True))
            ).all()
            return set(product_ids) - set(active)

        return self._run("inactive_product_ids", op)

    # ---------- Writes ----------
    def insert_movements(self, movements: Sequence[NewMovement]) -> list[int]:
        """
        Insertion en lot, une seule transaction.

        Ajuste aussi warehouse_stock (+ entrée / - sortie) ; un stock négatif
        fait échouer tout le lot.
        """
        m = self._models

        def op(db: Session):
            rows = []
            for new in movements:
                data = new.model_dump(exclude_none=True)
                if self.kind is OrderKind.outbound:
                    data.pop("entry_type", None)
                row = m.movement(**data)
                db.add(row)
                rows.append(row)
                apply_stock_delta(
                    db,
                    product_id=new.product_id,
                    warehouse_id=new.warehouse_id,
                    delta=m.stock_sign * new.quantity,
                )
            db.flush()
            return [int(r.id) for r in rows]

        return self._run("insert_movements", op)

    def apply_delivery(self, order_id: int, product_id: int, quantity_delta: int) -> DeliveryApplied:
        """
        Incrément atomique du compteur durable d'une ligne.

        Verrouille la ligne (FOR UPDATE), incrémente, recalcule la complétude
        de la ligne et de la commande, met à jour le statut de la commande.
        """
        m = self._models

        def op(db: Session):
            line = db.execute(
                select(m.line)
                .where(m.line.order_id == order_id)
                .where(m.line.product_id == product_id)
                .with_for_update()
            ).scalar_one_or_none()
            if line is None:
                raise StoreError(f"apply_delivery failed: product {product_id} not in order {order_id}")

            line.qty_registered += int(quantity_delta)
            db.flush()

            lines = db.execute(select(m.line).where(m.line.order_id == order_id)).scalars().all()
            order_complete = all(ln.qty_registered >= ln.qty_ordered for ln in lines)

            order = db.get(m.order, order_id, with_for_update=True)
            order.status = OrderStatus.completed if order_complete else OrderStatus.partial

            return DeliveryApplied(
                order_id=order_id,
                product_id=product_id,
                new_total=line.qty_registered,
                line_complete=line.qty_registered >= line.qty_ordered,
                order_complete=order_complete,
            )

        return self._run("apply_delivery", op)
