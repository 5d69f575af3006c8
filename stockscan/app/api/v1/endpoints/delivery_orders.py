from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.models_v1 import (
    DeliveryOrder,
    DeliveryOrderLine,
    Customer,
    Product,
    Warehouse,
)
from stockscan.app.db.models.core_types import OrderKind, OrderStatus
from stockscan.services.inventory import rebuild_registered_quantities

router = APIRouter(prefix="/delivery-orders")


class DOLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    warehouse_id: int | None = None


class DOCreate(BaseModel):
    order_number: str = Field(min_length=1, max_length=64)
    customer_id: int
    lines: list[DOLineCreate] = Field(default_factory=list)


def _do_header(do: DeliveryOrder) -> dict:
    return {
        "id": do.id,
        "order_number": do.number,
        "customer_id": do.party_id,
        "status": do.status,
        "created_at": do.created_at,
    }


@router.get("")
def list_delivery_orders(
    status: OrderStatus | None = None,
    customer_id: int | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(DeliveryOrder).order_by(DeliveryOrder.id.desc())
    if status is not None:
        stmt = stmt.where(DeliveryOrder.status == status)
    if customer_id is not None:
        stmt = stmt.where(DeliveryOrder.party_id == customer_id)

    rows = db.execute(stmt).scalars().all()
    return [_do_header(do) for do in rows]


@router.get("/{order_id}")
def get_delivery_order(order_id: int, db: Session = Depends(get_db)):
    do = db.get(DeliveryOrder, order_id)
    if not do:
        raise HTTPException(status_code=404, detail="Delivery order not found")

    lines = (
        db.execute(select(DeliveryOrderLine).where(DeliveryOrderLine.order_id == order_id))
        .scalars()
        .all()
    )
    return {
        **_do_header(do),
        "lines": [
            {
                "product_id": l.product_id,
                "warehouse_id": l.location_id,
                "quantity": l.qty_ordered,
                "delivered_quantity": l.qty_registered,
            }
            for l in lines
        ],
    }


@router.post("")
def create_delivery_order(payload: DOCreate, db: Session = Depends(get_db)):
    exists = db.execute(
        select(DeliveryOrder).where(DeliveryOrder.number == payload.order_number)
    ).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Order number already exists")

    if not db.get(Customer, payload.customer_id):
        raise HTTPException(status_code=400, detail="Invalid customer_id")

    product_ids = [ln.product_id for ln in payload.lines]
    if len(set(product_ids)) != len(product_ids):
        raise HTTPException(status_code=400, detail="Duplicate product_id in lines")
    for ln in payload.lines:
        if not db.get(Product, ln.product_id):
            raise HTTPException(status_code=400, detail=f"Invalid product_id {ln.product_id}")
        if ln.warehouse_id is not None and not db.get(Warehouse, ln.warehouse_id):
            raise HTTPException(status_code=400, detail=f"Invalid warehouse_id {ln.warehouse_id}")

    do = DeliveryOrder(
        number=payload.order_number,
        party_id=payload.customer_id,
        status=OrderStatus.pending,
    )
    db.add(do)
    db.flush()

    for ln in payload.lines:
        db.add(
            DeliveryOrderLine(
                order_id=do.id,
                product_id=ln.product_id,
                location_id=ln.warehouse_id,
                qty_ordered=ln.quantity,
                qty_registered=0,
            )
        )

    db.commit()
    db.refresh(do)
    return {"id": do.id, "order_number": do.number}


@router.post("/{order_id}/reconcile")
def reconcile_delivery_order(order_id: int, db: Session = Depends(get_db)):
    """Recalcule delivered_quantity depuis les sorties non annulées."""
    if not db.get(DeliveryOrder, order_id):
        raise HTTPException(status_code=404, detail="Delivery order not found")

    registered = rebuild_registered_quantities(db, kind=OrderKind.outbound, order_id=order_id)
    db.commit()
    do = db.get(DeliveryOrder, order_id)
    return {"id": order_id, "status": do.status, "registered": registered}
