from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from stockscan.app.db.models.core_types import EntryType, OrderKind, OrderStatus, OPEN_ORDER_STATUSES


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sku: str
    name: str
    uom: str = "unit"
    barcode: str | None = None
    active: bool = True


class OrderLineSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    product_id: int
    required_quantity: int = Field(ge=0, validation_alias=AliasChoices("required_quantity", "qty_ordered"))
    location_id: int | None = None
    product: ProductRead | None = None


class OrderSnapshot(BaseModel):
    """
    Commande + lignes telle que chargée depuis le store.

    Immuable pendant une session (seul le statut peut être rechargé).
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    kind: OrderKind
    number: str
    party_id: int
    status: OrderStatus
    created_at: datetime | None = None
    lines: tuple[OrderLineSnapshot, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ORDER_STATUSES

    def line_for(self, product_id: int) -> OrderLineSnapshot | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None


class MovementRow(BaseModel):
    """Mouvement durable (entrée ou sortie) rattaché à une commande."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    order_id: int | None
    product_id: int
    quantity: int = Field(gt=0)
    created_at: datetime | None = None


class NewMovement(BaseModel):
    order_id: int | None = None
    product_id: int
    warehouse_id: int
    quantity: int = Field(gt=0)
    barcode_scanned: str | None = Field(default=None, max_length=255)
    entry_type: EntryType | None = None
    created_by: int


class DeliveryApplied(BaseModel):
    """Réponse de l'incrément atomique côté store."""

    order_id: int
    product_id: int
    new_total: int = Field(ge=0)
    line_complete: bool
    order_complete: bool
