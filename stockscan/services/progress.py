from __future__ import annotations

from dataclasses import dataclass, field

from stockscan.app.schemas.orders import OrderSnapshot


@dataclass(frozen=True)
class LineProgress:
    product_id: int
    required: int
    registered: int
    session_scanned: int
    pending: int
    is_complete: bool
    overflow: bool = False


@dataclass(frozen=True)
class OrderProgress:
    order_id: int
    lines: list[LineProgress] = field(default_factory=list)
    total_required: int = 0
    total_registered: int = 0
    total_scanned: int = 0
    total_completed: int = 0
    percent: float = 100.0

    @property
    def is_complete(self) -> bool:
        return all(line.is_complete for line in self.lines)

    @property
    def nothing_pending_at_start(self) -> bool:
        return self.total_registered >= self.total_required


@dataclass(frozen=True)
class OrderSummary:
    order_id: int
    number: str
    total_required: int
    total_registered: int
    is_complete: bool


def calculate_progress(
    order: OrderSnapshot,
    registered_entry: dict[int, int],
    session_progress: dict[int, int],
    product_id: int | None = None,
    overflow_product_ids: set[int] | None = None,
) -> OrderProgress:
    """
    Vue dérivée, lecture seule : commandé / enregistré / scanné / restant.

    La contribution de session est bornée à ce qui reste après l'enregistré,
    une valeur de session périmée ne peut donc jamais dépasser 100 %.
    Le pourcentage est calculé sur ce qui restait au début de la session,
    pas sur la commande entière.
    """
    overflow_product_ids = overflow_product_ids or set()

    lines = order.lines
    if product_id is not None:
        lines = tuple(ln for ln in lines if ln.product_id == product_id)

    items: list[LineProgress] = []
    for line in lines:
        required = line.required_quantity
        registered = min(registered_entry.get(line.product_id, 0), required)
        max_pending_after_registered = max(required - registered, 0)
        session_scanned = min(session_progress.get(line.product_id, 0), max_pending_after_registered)
        pending = max(required - registered - session_scanned, 0)
        items.append(
            LineProgress(
                product_id=line.product_id,
                required=required,
                registered=registered,
                session_scanned=session_scanned,
                pending=pending,
                is_complete=pending == 0,
                overflow=line.product_id in overflow_product_ids,
            )
        )

    total_required = sum(x.required for x in items)
    total_registered = sum(x.registered for x in items)
    total_scanned = sum(x.session_scanned for x in items)
    total_completed = min(total_registered + total_scanned, total_required)

    pending_at_start = total_required - total_registered
    if pending_at_start <= 0:
        percent = 100.0
    else:
        percent = min(total_scanned / pending_at_start * 100, 100.0)

    return OrderProgress(
        order_id=order.id,
        lines=items,
        total_required=total_required,
        total_registered=total_registered,
        total_scanned=total_scanned,
        total_completed=total_completed,
        percent=percent,
    )


def summarize_order(order: OrderSnapshot, registered_entry: dict[int, int]) -> OrderSummary:
    total_required = 0
    total_registered = 0
    for line in order.lines:
        total_required += line.required_quantity
        total_registered += min(registered_entry.get(line.product_id, 0), line.required_quantity)

    return OrderSummary(
        order_id=order.id,
        number=order.number,
        total_required=total_required,
        total_registered=total_registered,
        is_complete=total_registered >= total_required and total_required > 0,
    )
