from __future__ import annotations

from dataclasses import dataclass

from stockscan.app.db.models.models_v1 import (
    PurchaseOrder,
    PurchaseOrderLine,
    InventoryEntry,
    InventoryEntryCancellation,
    DeliveryOrder,
    DeliveryOrderLine,
    InventoryExit,
    InventoryExitCancellation,
)
from stockscan.app.db.models.core_types import OrderKind


@dataclass(frozen=True)
class FlowModels:
    order: type
    line: type
    movement: type
    cancellation: type
    stock_sign: int  # +1 entrée, -1 sortie


FLOW_MODELS: dict[OrderKind, FlowModels] = {
    OrderKind.inbound: FlowModels(
        order=PurchaseOrder,
        line=PurchaseOrderLine,
        movement=InventoryEntry,
        cancellation=InventoryEntryCancellation,
        stock_sign=1,
    ),
    OrderKind.outbound: FlowModels(
        order=DeliveryOrder,
        line=DeliveryOrderLine,
        movement=InventoryExit,
        cancellation=InventoryExitCancellation,
        stock_sign=-1,
    ),
}
