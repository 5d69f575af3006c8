from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from stockscan.app.db.models.core_types import EntryType


class MovementRead(BaseModel):
    """Ligne d'historique (entrée ou sortie) avec ses libellés joints."""

    id: int
    order_id: int | None
    product_id: int
    product_name: str
    product_sku: str
    product_barcode: str | None
    warehouse_id: int
    warehouse_name: str
    quantity: int
    barcode_scanned: str | None
    entry_type: EntryType | None = None  # entrées uniquement
    created_by: int
    created_by_name: str
    created_at: datetime

    is_cancelled: bool = False
    cancellation_reason: str | None = None
    cancellation_created_at: datetime | None = None


class MovementPage(BaseModel):
    items: list[MovementRead]
    total: int
    page: int
    page_size: int
    has_more: bool
