from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from stockscan.app.schemas.orders import MovementRow, OrderSnapshot

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RegisteredOverflow:
    """Somme brute des mouvements supérieure à la quantité commandée."""

    order_id: int
    product_id: int
    raw_total: int
    required: int


def aggregate_registered(
    order: OrderSnapshot,
    movements: Iterable[MovementRow],
    cancelled_ids: Iterable[int] = (),
) -> tuple[dict[int, int], list[RegisteredOverflow]]:
    """
    Agrège les mouvements non annulés par ligne de commande.

    Règle :
        registered = min(SUM(quantity non annulée), required)

    Les produits hors commande sont ignorés ; seuls les produits avec
    registered > 0 sont gardés dans l'entrée retournée.
    """
    cancelled = set(cancelled_ids)

    raw: dict[int, int] = {}
    for mv in movements:
        if mv.id in cancelled:
            continue
        if mv.order_id is not None and mv.order_id != order.id:
            continue
        raw[mv.product_id] = raw.get(mv.product_id, 0) + mv.quantity

    entry: dict[int, int] = {}
    overflows: list[RegisteredOverflow] = []
    for line in order.lines:
        total = raw.get(line.product_id, 0)
        if total > line.required_quantity:
            overflows.append(
                RegisteredOverflow(
                    order_id=order.id,
                    product_id=line.product_id,
                    raw_total=total,
                    required=line.required_quantity,
                )
            )
        registered = min(total, line.required_quantity)
        if registered > 0:
            entry[line.product_id] = registered

    return entry, overflows


class RegisteredQuantityCache:
    """
    order_id -> (product_id -> quantité durablement enregistrée).

    Appartient à la commande, pas à la session : jamais vidé par un reset
    de session. Une instance par flux, détenue par le contexte applicatif.
    """

    def __init__(self) -> None:
        self._entries: dict[int, dict[int, int]] = {}
        self._overflows: dict[int, list[RegisteredOverflow]] = {}

    def __contains__(self, order_id: int) -> bool:
        return order_id in self._entries

    def get(self, order_id: int, product_id: int) -> int:
        return self._entries.get(order_id, {}).get(product_id, 0)

    def entry(self, order_id: int) -> dict[int, int]:
        return dict(self._entries.get(order_id, {}))

    def replace(
        self,
        order_id: int,
        entry: Mapping[int, int],
        overflows: Iterable[RegisteredOverflow] = (),
    ) -> None:
        # REMPLACE (pas de merge) : les données précédentes sont périmées
        self._entries[order_id] = {int(pid): int(qty) for pid, qty in entry.items() if qty > 0}
        self._overflows[order_id] = list(overflows)
        for ov in self._overflows[order_id]:
            logger.warning(
                "registered_quantity_overflow",
                order_id=ov.order_id,
                product_id=ov.product_id,
                raw_total=ov.raw_total,
                required=ov.required,
            )

    def rebuild(
        self,
        order: OrderSnapshot,
        movements: Iterable[MovementRow],
        cancelled_ids: Iterable[int] = (),
    ) -> dict[int, int]:
        entry, overflows = aggregate_registered(order, movements, cancelled_ids)
        self.replace(order.id, entry, overflows)
        return self.entry(order.id)

    def set(self, order_id: int, product_id: int, quantity: int) -> None:
        bucket = self._entries.setdefault(order_id, {})
        if quantity > 0:
            bucket[product_id] = quantity
        else:
            bucket.pop(product_id, None)

    def overflows(self, order_id: int) -> list[RegisteredOverflow]:
        return list(self._overflows.get(order_id, []))


class SessionProgress:
    """product_id -> quantité ajoutée au panier, non encore confirmée."""

    def __init__(self) -> None:
        self._scanned: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._scanned)

    def get(self, product_id: int) -> int:
        return self._scanned.get(product_id, 0)

    def apply(self, product_id: int, delta: int) -> int:
        """Applique un delta, plancher à zéro ; la clé disparaît à zéro."""
        value = max(self.get(product_id) + delta, 0)
        if value == 0:
            self._scanned.pop(product_id, None)
        else:
            self._scanned[product_id] = value
        return value

    def clear(self) -> None:
        self._scanned.clear()

    def as_dict(self) -> dict[int, int]:
        return dict(self._scanned)
