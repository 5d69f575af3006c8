from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.models_v1 import (
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
    Product,
)
from stockscan.app.db.models.core_types import OrderKind, OrderStatus
from stockscan.services.inventory import rebuild_registered_quantities

router = APIRouter(prefix="/purchase-orders")


class POLineCreate(BaseModel):
    product_id: int
    qty_ordered: int = Field(gt=0)


class POCreate(BaseModel):
    po_number: str = Field(min_length=1, max_length=64)
    supplier_id: int
    lines: list[POLineCreate] = Field(default_factory=list)


def _po_header(po: PurchaseOrder) -> dict:
    return {
        "id": po.id,
        "po_number": po.number,
        "supplier_id": po.party_id,
        "status": po.status,
        "created_at": po.created_at,
    }


@router.get("")
def list_pos(
    status: OrderStatus | None = None,
    supplier_id: int | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(PurchaseOrder).order_by(PurchaseOrder.id.desc())
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.party_id == supplier_id)

    rows = db.execute(stmt).scalars().all()
    return [_po_header(po) for po in rows]


@router.get("/{po_id}")
def get_po(po_id: int, db: Session = Depends(get_db)):
    po = db.get(PurchaseOrder, po_id)
    if not po:
        raise HTTPException(status_code=404, detail="PO not found")

    lines = (
        db.execute(select(PurchaseOrderLine).where(PurchaseOrderLine.order_id == po_id))
        .scalars()
        .all()
    )
    return {
        **_po_header(po),
        "lines": [
            {
                "product_id": l.product_id,
                "qty_ordered": l.qty_ordered,
                "qty_registered": l.qty_registered,
            }
            for l in lines
        ],
    }


@router.post("")
def create_po(payload: POCreate, db: Session = Depends(get_db)):
    # Unique PO number
    exists = db.execute(select(PurchaseOrder).where(PurchaseOrder.number == payload.po_number)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="PO number already exists")

    if not db.get(Supplier, payload.supplier_id):
        raise HTTPException(status_code=400, detail="Invalid supplier_id")

    # une ligne par produit
    product_ids = [ln.product_id for ln in payload.lines]
    if len(set(product_ids)) != len(product_ids):
        raise HTTPException(status_code=400, detail="Duplicate product_id in lines")
    for pid in product_ids:
        if not db.get(Product, pid):
            raise HTTPException(status_code=400, detail=f"Invalid product_id {pid}")

    po = PurchaseOrder(
        number=payload.po_number,
        party_id=payload.supplier_id,
        status=OrderStatus.pending,
    )
    db.add(po)
    db.flush()  # get po.id

    for ln in payload.lines:
        db.add(
            PurchaseOrderLine(
                order_id=po.id,
                product_id=ln.product_id,
                qty_ordered=ln.qty_ordered,
                qty_registered=0,
            )
        )

    db.commit()
    db.refresh(po)
    return {"id": po.id, "po_number": po.number}


@router.post("/{po_id}/reconcile")
def reconcile_po(po_id: int, db: Session = Depends(get_db)):
    """Recalcule qty_registered depuis les entrées non annulées (après un commit partiel)."""
    if not db.get(PurchaseOrder, po_id):
        raise HTTPException(status_code=404, detail="PO not found")

    registered = rebuild_registered_quantities(db, kind=OrderKind.inbound, order_id=po_id)
    db.commit()
    po = db.get(PurchaseOrder, po_id)
    return {"id": po_id, "status": po.status, "registered": registered}
