"""
Session de scan : moteur de réconciliation commande / panier.

Une instance = un acteur (un appareil) qui scanne des entrées (inbound,
contre un bon de commande) ou des sorties (outbound, contre un bon de
livraison). Les mutations sont sérialisées par l'interaction utilisateur :
pas de verrouillage interne sur le panier ni sur la progression de session.

Le cache des quantités enregistrées est partagé et injecté : il appartient
à la commande, jamais vidé par un reset de session.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import structlog

from stockscan.app.config import settings
from stockscan.app.db.models.core_types import CommitState, EntryType, OrderKind, OPEN_ORDER_STATUSES
from stockscan.app.schemas.orders import NewMovement, OrderSnapshot, ProductRead
from stockscan.services.errors import (
    FulfillmentError,
    InvalidQuantity,
    NotFound,
    OrderConstraintViolation,
    PartialRpcFailure,
    PersistenceFailure,
    PreconditionMissing,
    StoreError,
)
from stockscan.services.order_store import OrderStore
from stockscan.services.progress import OrderProgress, OrderSummary, calculate_progress, summarize_order
from stockscan.services.registered_cache import RegisteredQuantityCache, SessionProgress
from stockscan.services.validation import ValidationResult, validate_against_order

logger = structlog.get_logger(__name__)


@dataclass
class CartItem:
    product: ProductRead
    quantity: int
    barcode: str
    location_id: int
    available_stock: int | None = None  # outbound uniquement


@dataclass
class FinalizeResult:
    status: CommitState
    error: str | None = None
    code: str | None = None
    inserted: int = 0
    failed_product_ids: list[int] = field(default_factory=list)
    order_complete: bool = False


class FulfillmentSession:
    def __init__(
        self,
        store: OrderStore,
        cache: RegisteredQuantityCache,
        *,
        order_bound: bool = True,
        entry_type: EntryType | None = None,
        max_line_quantity: int | None = None,
        max_barcode_length: int | None = None,
    ):
        self.id = uuid.uuid4().hex
        self.store = store
        self.kind: OrderKind = store.kind
        self.cache = cache
        self.order_bound = order_bound
        self.entry_type = self._resolve_entry_type(store.kind, order_bound, entry_type)
        self.max_line_quantity = max_line_quantity or settings.max_line_quantity
        self.max_barcode_length = max_barcode_length or settings.max_barcode_length

        self.order: OrderSnapshot | None = None
        self.warehouse_id: int | None = None
        self.selected_product_id: int | None = None
        self.open_orders: list[OrderSummary] = []
        self.scanning = False

        self.cart: list[CartItem] = []
        self.progress = SessionProgress()

        self.current_product: ProductRead | None = None
        self.current_barcode: str | None = None
        self.current_available_stock: int | None = None

        self.commit_state = CommitState.idle
        self.last_error: FulfillmentError | None = None

        self.log = logger.bind(session_id=self.id, kind=self.kind.value)

    @staticmethod
    def _resolve_entry_type(kind: OrderKind, order_bound: bool, entry_type: EntryType | None) -> EntryType | None:
        if kind is OrderKind.outbound:
            if entry_type is not None:
                raise ValueError("entry_type only applies to inbound sessions")
            return None
        if order_bound:
            if entry_type not in (None, EntryType.po_entry):
                raise ValueError(f"Order-bound inbound sessions use {EntryType.po_entry.value}")
            return EntryType.po_entry
        if entry_type is EntryType.po_entry:
            raise ValueError(f"{EntryType.po_entry.value} requires an order-bound session")
        return entry_type or EntryType.entry

    # ---------- Errors ----------
    @property
    def error(self) -> str | None:
        return self.last_error.message if self.last_error else None

    def clear_error(self) -> None:
        self.last_error = None

    def _fail(self, exc: FulfillmentError) -> bool:
        self.last_error = exc
        self.log.info("scan_session_rejected", code=exc.code, reason=exc.message)
        return False

    # ---------- Setup ----------
    def set_warehouse(self, warehouse_id: int | None) -> None:
        self.warehouse_id = warehouse_id

    def select_order(self, order_id: int) -> bool:
        """
        Charge la commande et reconstruit son entrée de cache.

        Le panier et la progression de session repartent de zéro. En cas
        d'échec la commande n'est pas sélectionnée.
        """
        self._reset_scan_state()
        self.order = None

        if not self.order_bound:
            return self._fail(PreconditionMissing("This session is not bound to an order"))

        try:
            order = self.store.load_order(order_id)
            if order is None:
                return self._fail(NotFound(f"Order {order_id} not found"))
            movements = self.store.list_movements([order.id])
            cancelled = self.store.list_cancelled_movement_ids([order.id])
        except StoreError as e:
            return self._fail(PersistenceFailure(f"Could not load order {order_id}: {e}"))

        entry = self.cache.rebuild(order, movements, cancelled)
        self.order = order
        self.last_error = None
        self.log.info(
            "order_selected",
            order_id=order.id,
            number=order.number,
            lines=len(order.lines),
            registered=sum(entry.values()),
        )
        return True

    def load_open_orders(self, party_id: int | None = None) -> list[OrderSummary]:
        """Liste les commandes ouvertes et reconstruit le cache de chacune (une seule lecture des mouvements)."""
        try:
            orders = self.store.list_open_orders(party_id)
            ids = [o.id for o in orders]
            movements = self.store.list_movements(ids)
            cancelled = self.store.list_cancelled_movement_ids(ids)
        except StoreError as e:
            self._fail(PersistenceFailure(f"Could not load orders: {e}"))
            self.open_orders = []
            return []

        by_order: dict[int, list] = {}
        for mv in movements:
            by_order.setdefault(mv.order_id, []).append(mv)

        summaries = []
        for order in orders:
            entry = self.cache.rebuild(order, by_order.get(order.id, []), cancelled)
            summaries.append(summarize_order(order, entry))

        self.open_orders = summaries
        return summaries

    def select_line(self, product_id: int | None) -> bool:
        if product_id is not None:
            if self.order is None:
                return self._fail(PreconditionMissing("No order selected"))
            if self.order.line_for(product_id) is None:
                return self._fail(OrderConstraintViolation("Product not in this order", max_allowed=0))
        self.selected_product_id = product_id
        return True

    def start_scanning(self) -> bool:
        if self.warehouse_id is None:
            return self._fail(PreconditionMissing("A warehouse must be selected"))
        if self.order_bound:
            if self.order is None:
                return self._fail(PreconditionMissing("No order selected"))
            if not self.order.is_open:
                return self._fail(PreconditionMissing(f"Order {self.order.number} is {self.order.status.value}"))
            progress = self._order_progress(filtered=False)
            if progress.nothing_pending_at_start:
                return self._fail(OrderConstraintViolation("Order is already complete", max_allowed=0))
        self.scanning = True
        self.last_error = None
        return True

    # ---------- Derived views ----------
    def _registered_entry(self) -> dict[int, int]:
        return self.cache.entry(self.order.id) if self.order else {}

    def _order_progress(self, filtered: bool = True) -> OrderProgress:
        overflow_ids = {ov.product_id for ov in self.cache.overflows(self.order.id)}
        return calculate_progress(
            self.order,
            self._registered_entry(),
            self.progress.as_dict(),
            product_id=self.selected_product_id if filtered else None,
            overflow_product_ids=overflow_ids,
        )

    def get_progress(self) -> OrderProgress | None:
        if self.order is None:
            return None
        return self._order_progress()

    def validate(self, product_id: int, quantity: int) -> ValidationResult:
        return validate_against_order(
            self.order,
            self._registered_entry(),
            [(item.product.id, item.quantity) for item in self.cart],
            product_id,
            quantity,
        )

    def _check_against_order(self, product_id: int, quantity: int) -> None:
        result = self.validate(product_id, quantity)
        if not result.valid:
            raise OrderConstraintViolation(result.reason, max_allowed=result.max_allowed or 0)
        if self.selected_product_id is not None and self.selected_product_id != product_id:
            raise OrderConstraintViolation("Scan the product of the selected order line", max_allowed=0)

    def _location_for(self, product_id: int) -> int:
        if self.order is not None:
            line = self.order.line_for(product_id)
            if line is not None and line.location_id is not None:
                return line.location_id
        return self.warehouse_id

    def _cart_index(self, product_id: int) -> int | None:
        for i, item in enumerate(self.cart):
            if item.product.id == product_id:
                return i
        return None

    # ---------- Scanning ----------
    def reset_current_scan(self) -> None:
        self.current_product = None
        self.current_barcode = None
        self.current_available_stock = None

    def scan_barcode(self, barcode: str) -> ProductRead | None:
        """Résout un code-barres et le place dans le slot "produit courant" s'il est acceptable."""
        self.reset_current_scan()
        code = (barcode or "").strip()
        try:
            if not code:
                raise PreconditionMissing("Empty barcode")
            if self.warehouse_id is None:
                raise PreconditionMissing("A warehouse must be selected")
            if self.order_bound and self.order is None:
                raise PreconditionMissing("No order selected")

            product = self.store.find_product_by_barcode(code)
            if product is None:
                raise NotFound(f"No product registered for barcode {code}")

            if self.order_bound:
                self._check_against_order(product.id, 1)

            available = None
            if self.kind is OrderKind.outbound:
                available = self.store.available_stock(product.id, self._location_for(product.id))
                if available <= 0:
                    raise OrderConstraintViolation(
                        f"No stock available for this product in the selected warehouse (stock={available})",
                        max_allowed=0,
                    )
        except FulfillmentError as e:
            self._fail(e)
            return None
        except StoreError as e:
            self._fail(PersistenceFailure(f"Barcode lookup failed: {e}"))
            return None

        self.current_product = product
        self.current_barcode = code
        self.current_available_stock = available
        self.last_error = None
        self.log.info("barcode_scanned", barcode=code, product_id=product.id)
        return product

    # ---------- Cart ----------
    def _check_quantity(self, quantity: int) -> None:
        if quantity <= 0:
            raise InvalidQuantity("Quantity must be greater than 0")
        if quantity > self.max_line_quantity:
            raise InvalidQuantity(f"Quantity cannot exceed {self.max_line_quantity} units for a single product")

    def _cart_locked(self) -> bool:
        if self.commit_state is CommitState.committing:
            self._fail(PreconditionMissing("Finalize in progress, the cart is locked"))
            return True
        return False

    def add_to_cart(self, product: ProductRead, quantity: int, barcode: str | None = None) -> bool:
        if self._cart_locked():
            return False
        try:
            if self.warehouse_id is None:
                raise PreconditionMissing("A warehouse must be selected")
            if self.order_bound and self.order is None:
                raise PreconditionMissing("No order selected")
            self._check_quantity(quantity)

            if self.order_bound:
                self._check_against_order(product.id, quantity)

            location_id = self._location_for(product.id)
            index = self._cart_index(product.id)
            in_cart = self.cart[index].quantity if index is not None else 0

            available = None
            if self.kind is OrderKind.outbound:
                if self.current_product is not None and self.current_product.id == product.id \
                        and self.current_available_stock is not None:
                    available = self.current_available_stock
                else:
                    available = self.store.available_stock(product.id, location_id)
                if in_cart + quantity > available:
                    raise OrderConstraintViolation(
                        f"Not enough stock (available={available}, requested total={in_cart + quantity})",
                        max_allowed=max(available - in_cart, 0),
                    )
        except FulfillmentError as e:
            return self._fail(e)
        except StoreError as e:
            return self._fail(PersistenceFailure(f"Stock lookup failed: {e}"))

        if index is not None:
            item = self.cart[index]
            item.quantity += quantity
            if available is not None:
                item.available_stock = available
        else:
            self.cart.append(
                CartItem(
                    product=product,
                    quantity=quantity,
                    barcode=barcode or product.barcode or "",
                    location_id=location_id,
                    available_stock=available,
                )
            )

        self.progress.apply(product.id, quantity)
        self.reset_current_scan()
        self.last_error = None
        self.log.info("cart_item_added", product_id=product.id, quantity=quantity, cart_lines=len(self.cart))
        return True

    def update_quantity(self, index: int, quantity: int) -> bool:
        if self._cart_locked():
            return False
        if not 0 <= index < len(self.cart):
            return self._fail(NotFound(f"No cart item at index {index}"))
        item = self.cart[index]

        try:
            self._check_quantity(quantity)
            if item.available_stock is not None and quantity > item.available_stock:
                raise OrderConstraintViolation(
                    f"Quantity cannot exceed available stock: {item.available_stock}",
                    max_allowed=item.available_stock,
                )
            delta = quantity - item.quantity
            if self.order_bound and delta > 0:
                result = self.validate(item.product.id, delta)
                if not result.valid:
                    raise OrderConstraintViolation(result.reason, max_allowed=result.max_allowed or 0)
        except FulfillmentError as e:
            return self._fail(e)

        item.quantity = quantity
        self.progress.apply(item.product.id, delta)
        self.last_error = None
        self.log.info("cart_item_updated", product_id=item.product.id, quantity=quantity, delta=delta)
        return True

    def remove_from_cart(self, index: int) -> bool:
        if self._cart_locked():
            return False
        if not 0 <= index < len(self.cart):
            return self._fail(NotFound(f"No cart item at index {index}"))
        item = self.cart.pop(index)
        self.progress.apply(item.product.id, -item.quantity)
        self.log.info("cart_item_removed", product_id=item.product.id, quantity=item.quantity)
        return True

    # ---------- Reset ----------
    def _reset_scan_state(self) -> None:
        self.cart = []
        self.progress.clear()
        self.reset_current_scan()
        self.selected_product_id = None
        self.scanning = False
        self.commit_state = CommitState.idle

    def reset_session(self) -> None:
        """Abandon : panier et progression perdus ; cache et store intacts."""
        self._reset_scan_state()
        self.order = None
        self.warehouse_id = None
        self.last_error = None
        self.log.info("session_reset")

    # ---------- Finalize ----------
    def _check_finalize_preconditions(self, actor_id: int | None) -> None:
        if not self.cart:
            raise PreconditionMissing("No products to register")
        if self.warehouse_id is None:
            raise PreconditionMissing("A warehouse must be selected")
        if not actor_id:
            raise PreconditionMissing("No authenticated user")
        if self.order_bound:
            if self.order is None:
                raise PreconditionMissing("No order selected")
            if self._order_progress(filtered=False).nothing_pending_at_start:
                raise OrderConstraintViolation("Order is already complete", max_allowed=0)

    def _check_before_insert(self, items: list[CartItem]) -> None:
        seen: set[int] = set()
        for item in items:
            if item.product.id in seen:
                raise PreconditionMissing("Duplicate products in cart, review the quantities")
            seen.add(item.product.id)
            self._check_quantity(item.quantity)
            if item.barcode and len(item.barcode.strip()) > self.max_barcode_length:
                raise PreconditionMissing("Invalid barcode format, scan again")

        if not self.store.is_warehouse_active(self.warehouse_id):
            raise PreconditionMissing("The selected warehouse is not active")

        # produits désactivés depuis le scan
        inactive = self.store.inactive_product_ids(sorted(seen))
        if inactive:
            names = ", ".join(item.product.name for item in items if item.product.id in inactive)
            raise PreconditionMissing(f"Some products are no longer available: {names}. Remove them from the cart")

        if self.order_bound:
            status = self.store.get_order_status(self.order.id)
            if status is None:
                raise NotFound(f"Order {self.order.number} is no longer available")
            if status not in OPEN_ORDER_STATUSES:
                raise PreconditionMissing(f"Order {self.order.number} is {status.value}, no more movements allowed")

            registered = self._registered_entry()
            for item in items:
                line = self.order.line_for(item.product.id)
                if line is None:
                    raise OrderConstraintViolation("Product not in this order", max_allowed=0)
                already = registered.get(item.product.id, 0)
                if already + item.quantity > line.required_quantity:
                    raise OrderConstraintViolation(
                        f"Quantity exceeds pending for product {item.product.id} "
                        f"(required={line.required_quantity}, registered={already}, in_cart={item.quantity})",
                        max_allowed=max(line.required_quantity - already, 0),
                    )

    def _failed(self, exc: FulfillmentError) -> FinalizeResult:
        self._fail(exc)
        return FinalizeResult(status=CommitState.failed, error=exc.message, code=exc.code)

    def finalize(self, actor_id: int | None) -> FinalizeResult:
        """
        Persiste le panier puis réconcilie la progression durable de la commande.

        idle -> committing -> committed | partial | failed

        1. insertion en lot des mouvements (échec ou nombre inattendu = failed,
           le panier est conservé)
        2. par ligne, incrément atomique côté store ; le cache prend la valeur
           renvoyée par le store
        3. commande devenue complète -> rechargement du snapshot
        4. relecture complète des mouvements et reconstruction du cache
        5. panier + progression de session vidés, jamais le cache
        """
        if self.commit_state is CommitState.committing:
            return FinalizeResult(status=CommitState.failed, error="Finalize already in progress", code=PreconditionMissing.code)

        try:
            self._check_finalize_preconditions(actor_id)
        except FulfillmentError as e:
            return self._failed(e)

        self.commit_state = CommitState.committing
        order = self.order if self.order_bound else None
        # copie figée : le panier ne bouge plus jusqu'à la fin du commit
        items = list(self.cart)

        try:
            self._check_before_insert(items)
        except FulfillmentError as e:
            self.commit_state = CommitState.failed
            return self._failed(e)
        except StoreError as e:
            self.commit_state = CommitState.failed
            return self._failed(PersistenceFailure(f"Pre-commit validation failed: {e}"))

        movements = [
            NewMovement(
                order_id=order.id if order else None,
                product_id=item.product.id,
                warehouse_id=item.location_id if self.kind is OrderKind.outbound else self.warehouse_id,
                quantity=item.quantity,
                barcode_scanned=item.barcode or None,
                entry_type=self.entry_type,
                created_by=actor_id,
            )
            for item in items
        ]

        try:
            inserted = self.store.insert_movements(movements)
        except StoreError as e:
            self.log.error("finalize_insert_failed", error=str(e))
            self.commit_state = CommitState.failed
            return self._failed(PersistenceFailure(str(e)))

        if not inserted:
            self.log.error("finalize_insert_failed", error="no rows inserted")
            self.commit_state = CommitState.failed
            return self._failed(PersistenceFailure("no rows inserted"))
        if len(inserted) != len(movements):
            self.log.error("finalize_insert_failed", expected=len(movements), inserted=len(inserted))
            self.commit_state = CommitState.failed
            return self._failed(PersistenceFailure(f"inserted {len(inserted)} of {len(movements)} rows"))

        self.log.info("finalize_movements_inserted", count=len(inserted), order_id=order.id if order else None)

        failed: list[int] = []
        order_complete = False
        if order is not None:
            for item in items:
                product_id = item.product.id
                try:
                    applied = self.store.apply_delivery(order.id, product_id, item.quantity)
                except StoreError as e:
                    self.log.error("apply_delivery_failed", order_id=order.id, product_id=product_id, error=str(e))
                    failed.append(product_id)
                    continue

                if applied.order_id != order.id or applied.product_id != product_id:
                    self.log.error(
                        "apply_delivery_mismatch",
                        order_id=order.id,
                        product_id=product_id,
                        got_order_id=applied.order_id,
                        got_product_id=applied.product_id,
                    )
                    failed.append(product_id)
                    continue

                line = order.line_for(product_id)
                self.cache.set(order.id, product_id, min(applied.new_total, line.required_quantity))
                order_complete = order_complete or applied.order_complete
                self.log.info(
                    "apply_delivery_ok",
                    order_id=order.id,
                    product_id=product_id,
                    new_total=applied.new_total,
                    line_complete=applied.line_complete,
                )

            if order_complete:
                try:
                    reloaded = self.store.load_order(order.id)
                    if reloaded is not None:
                        self.order = order = reloaded
                except StoreError as e:
                    self.log.warning("order_reload_failed", order_id=order.id, error=str(e))

            try:
                movements_now = self.store.list_movements([order.id])
                cancelled = self.store.list_cancelled_movement_ids([order.id])
                self.cache.rebuild(order, movements_now, cancelled)
            except StoreError as e:
                self.log.warning("cache_rebuild_failed", order_id=order.id, error=str(e))

        self.cart = []
        self.progress.clear()
        self.reset_current_scan()

        if failed:
            self.commit_state = CommitState.partial
            exc = PartialRpcFailure(
                "Movements saved but order progress could not be updated for products "
                f"{', '.join(str(pid) for pid in failed)}; reconciliation may be needed",
                failed_product_ids=failed,
            )
            self._fail(exc)
            return FinalizeResult(
                status=CommitState.partial,
                error=exc.message,
                code=exc.code,
                inserted=len(inserted),
                failed_product_ids=failed,
                order_complete=order_complete,
            )

        self.commit_state = CommitState.committed
        self.last_error = None
        self.log.info("finalize_committed", inserted=len(inserted), order_complete=order_complete)
        return FinalizeResult(
            status=CommitState.committed,
            inserted=len(inserted),
            order_complete=order_complete,
        )
