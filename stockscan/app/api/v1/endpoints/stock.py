from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.models_v1 import WarehouseStock, Product
from stockscan.app.schemas.stock_level import WarehouseStockRead

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[WarehouseStockRead],
)
def get_stock(
    warehouse_id: int | None = None,
    product_id: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - maintenu uniquement par les entrées / sorties
    - exposition via schema Pydantic
    """

    stmt = (
        select(WarehouseStock)
        .join(Product, Product.id == WarehouseStock.product_id)
        .order_by(WarehouseStock.warehouse_id, Product.sku)
    )

    if warehouse_id is not None:
        stmt = stmt.where(WarehouseStock.warehouse_id == warehouse_id)

    if product_id is not None:
        stmt = stmt.where(WarehouseStock.product_id == product_id)

    return db.execute(stmt).scalars().all()
