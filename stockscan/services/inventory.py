from __future__ import annotations

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from stockscan.app.db.models.models_v1 import WarehouseStock
from stockscan.app.db.models.core_types import OrderKind, OrderStatus
from stockscan.services.flows import FLOW_MODELS


def get_or_create_stock(db: Session, product_id: int, warehouse_id: int) -> WarehouseStock:
    ws = (
        db.execute(
            select(WarehouseStock)
            .where(WarehouseStock.product_id == product_id)
            .where(WarehouseStock.warehouse_id == warehouse_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if ws:
        return ws

    ws = WarehouseStock(product_id=product_id, warehouse_id=warehouse_id, quantity=0)
    db.add(ws)
    db.flush()
    return ws


def get_available_stock(db: Session, product_id: int, warehouse_id: int) -> int:
    qty = db.execute(
        select(WarehouseStock.quantity)
        .where(WarehouseStock.product_id == product_id)
        .where(WarehouseStock.warehouse_id == warehouse_id)
    ).scalar_one_or_none()
    return int(qty or 0)


def apply_stock_delta(db: Session, *, product_id: int, warehouse_id: int, delta: int) -> int:
    """
    Ajuste le stock d'une bodega (+ entrée, - sortie).

    Refuse tout stock négatif : l'appelant doit rollback la transaction.
    """
    ws = get_or_create_stock(db, product_id, warehouse_id)
    new_qty = ws.quantity + delta
    if new_qty < 0:
        raise ValueError(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id} "
            f"(available={ws.quantity}, requested={-delta})"
        )
    ws.quantity = new_qty
    return new_qty


def rebuild_registered_quantities(db: Session, *, kind: OrderKind, order_id: int) -> dict[int, int]:
    """
    Rebuild qty_registered des lignes d'une commande à partir des sources de vérité.

    Règle métier :
        qty_registered = SUM(quantity des mouvements NON annulés de la commande)

    Propriétés :
    - déterministe
    - idempotent
    - verrouillage SQL (FOR UPDATE) sur les lignes

    Sert à réparer le compteur durable après un commit partiel
    (apply_delivery en échec sur certaines lignes).
    """
    models = FLOW_MODELS[kind]

    cancelled = select(models.cancellation.movement_id)

    rows = db.execute(
        select(
            models.movement.product_id,
            func.coalesce(func.sum(models.movement.quantity), 0).label("registered_qty"),
        )
        .where(models.movement.order_id == order_id)
        .where(models.movement.id.not_in(cancelled))
        .group_by(models.movement.product_id)
    ).all()
    registered = {int(pid): int(qty) for pid, qty in rows}

    lines = (
        db.execute(select(models.line).where(models.line.order_id == order_id).with_for_update())
        .scalars()
        .all()
    )
    for line in lines:
        line.qty_registered = registered.get(int(line.product_id), 0)

    order = db.get(models.order, order_id, with_for_update=True)
    if order is not None and order.status != OrderStatus.cancelled and lines:
        if all(ln.qty_registered >= ln.qty_ordered for ln in lines):
            order.status = OrderStatus.completed
        elif any(ln.qty_registered > 0 for ln in lines):
            order.status = OrderStatus.partial
        else:
            order.status = OrderStatus.pending

    db.flush()
    return {int(ln.product_id): int(ln.qty_registered) for ln in lines}
