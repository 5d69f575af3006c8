from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from stockscan.app.db.models.core_types import CommitState, EntryType, OrderKind
from stockscan.app.schemas.orders import ProductRead


class ScanSessionCreate(BaseModel):
    kind: OrderKind
    warehouse_id: int | None = None
    order_bound: bool = True
    entry_type: EntryType | None = None


class OrderSelect(BaseModel):
    order_id: int


class LineSelect(BaseModel):
    product_id: int | None = None


class BarcodeScan(BaseModel):
    barcode: str = Field(min_length=1, max_length=255)


class QuantityCheck(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CartAdd(BaseModel):
    product_id: int | None = None
    barcode: str | None = Field(default=None, max_length=255)
    quantity: int = 1


class CartUpdate(BaseModel):
    quantity: int


class FinalizeRequest(BaseModel):
    actor_id: int


class CartItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product: ProductRead
    quantity: int
    barcode: str
    location_id: int
    available_stock: int | None = None


class ScanSessionRead(BaseModel):
    id: str
    kind: OrderKind
    order_bound: bool
    entry_type: EntryType | None
    warehouse_id: int | None
    order_id: int | None
    selected_product_id: int | None
    scanning: bool
    commit_state: CommitState
    current_product: ProductRead | None
    cart: list[CartItemRead]
    session_progress: dict[int, int]
    error: str | None


class ValidationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    valid: bool
    reason: str | None = None
    max_allowed: int | None = None


class LineProgressRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    required: int
    registered: int
    session_scanned: int
    pending: int
    is_complete: bool
    overflow: bool


class OrderProgressRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    lines: list[LineProgressRead]
    total_required: int
    total_registered: int
    total_scanned: int
    total_completed: int
    percent: float
    is_complete: bool


class OrderSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    number: str
    total_required: int
    total_registered: int
    is_complete: bool


class FinalizeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: CommitState
    error: str | None = None
    code: str | None = None
    inserted: int = 0
    failed_product_ids: list[int] = Field(default_factory=list)
    order_complete: bool = False
