from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from stockscan.app.schemas.orders import OrderSnapshot


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str | None = None
    max_allowed: int | None = None


VALID = ValidationResult(valid=True)


def validate_against_order(
    order: OrderSnapshot | None,
    registered_entry: dict[int, int],
    cart: Iterable[tuple[int, int]],
    product_id: int,
    quantity: int,
) -> ValidationResult:
    """
    Vérifie qu'ajouter `quantity` de `product_id` ne dépasse pas la ligne.

    `cart` : paires (product_id, quantity) déjà dans le panier ; toutes les
    entrées du produit comptent, pas seulement celle en cours d'édition.
    """
    if order is None:
        return ValidationResult(valid=False, reason="No order selected", max_allowed=0)

    line = order.line_for(product_id)
    if line is None:
        return ValidationResult(valid=False, reason="Product not in this order", max_allowed=0)

    required = line.required_quantity
    registered = registered_entry.get(product_id, 0)
    cart_total = sum(qty for pid, qty in cart if pid == product_id)

    max_allowed = max(required - registered - cart_total, 0)

    if quantity <= 0:
        return ValidationResult(valid=False, reason="Quantity must be greater than 0", max_allowed=max_allowed)

    if registered + cart_total + quantity > required:
        if max_allowed > 0:
            hint = f"maxAllowed: {max_allowed}"
        else:
            hint = "maxAllowed: 0 (nothing pending for this product)"
        return ValidationResult(
            valid=False,
            reason=(
                f"Quantity exceeds what the order allows for product {product_id} "
                f"(required={required}, registered={registered}, in_cart={cart_total}, "
                f"requested={quantity}); {hint}"
            ),
            max_allowed=max_allowed,
        )

    return VALID
