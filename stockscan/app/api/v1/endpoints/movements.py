from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.core_types import OrderKind
from stockscan.app.db.models.models_v1 import Product, User, Warehouse
from stockscan.app.schemas.movements import MovementPage, MovementRead
from stockscan.services.flows import FLOW_MODELS

router = APIRouter()


def _list_movements(
    db: Session,
    kind: OrderKind,
    *,
    order_id: int | None,
    warehouse_id: int | None,
    product_id: int | None,
    search: str | None,
    page: int,
    page_size: int,
) -> MovementPage:
    """
    Historique des mouvements d'un flux (READ ONLY), plus récents d'abord.

    Les mouvements annulés restent listés, marqués `is_cancelled`.
    """
    m = FLOW_MODELS[kind]
    mv, cancel = m.movement, m.cancellation

    stmt = (
        select(mv, Product, Warehouse, User, cancel)
        .join(Product, Product.id == mv.product_id)
        .join(Warehouse, Warehouse.id == mv.warehouse_id)
        .join(User, User.id == mv.created_by)
        .outerjoin(cancel, cancel.movement_id == mv.id)
    )

    if order_id is not None:
        stmt = stmt.where(mv.order_id == order_id)
    if warehouse_id is not None:
        stmt = stmt.where(mv.warehouse_id == warehouse_id)
    if product_id is not None:
        stmt = stmt.where(mv.product_id == product_id)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                mv.barcode_scanned.ilike(pattern),
            )
        )

    total = db.scalar(select(func.count()).select_from(stmt.subquery()))
    rows = db.execute(
        stmt.order_by(mv.created_at.desc(), mv.id.desc()).offset((page - 1) * page_size).limit(page_size)
    ).all()

    items = [
        MovementRead(
            id=row.id,
            order_id=row.order_id,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            product_barcode=product.barcode,
            warehouse_id=warehouse.id,
            warehouse_name=warehouse.name,
            quantity=row.quantity,
            barcode_scanned=row.barcode_scanned,
            entry_type=getattr(row, "entry_type", None),
            created_by=user.id,
            created_by_name=user.name,
            created_at=row.created_at,
            is_cancelled=cancellation is not None,
            cancellation_reason=cancellation.reason if cancellation else None,
            cancellation_created_at=cancellation.created_at if cancellation else None,
        )
        for row, product, warehouse, user, cancellation in rows
    ]
    return MovementPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


@router.get("/entries", response_model=MovementPage)
def list_entries(
    order_id: int | None = None,
    warehouse_id: int | None = None,
    product_id: int | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return _list_movements(
        db,
        OrderKind.inbound,
        order_id=order_id,
        warehouse_id=warehouse_id,
        product_id=product_id,
        search=search,
        page=page,
        page_size=page_size,
    )


@router.get("/exits", response_model=MovementPage)
def list_exits(
    order_id: int | None = None,
    warehouse_id: int | None = None,
    product_id: int | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return _list_movements(
        db,
        OrderKind.outbound,
        order_id=order_id,
        warehouse_id=warehouse_id,
        product_id=product_id,
        search=search,
        page=page,
        page_size=page_size,
    )
