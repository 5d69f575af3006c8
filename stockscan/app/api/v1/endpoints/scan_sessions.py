from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from stockscan.app.api.deps import get_registry, get_scan_session
from stockscan.app.db.models.core_types import CommitState
from stockscan.app.schemas.scan import (
    BarcodeScan,
    CartAdd,
    CartItemRead,
    CartUpdate,
    FinalizeRead,
    FinalizeRequest,
    LineSelect,
    OrderProgressRead,
    OrderSelect,
    OrderSummaryRead,
    QuantityCheck,
    ScanSessionCreate,
    ScanSessionRead,
    ValidationRead,
)
from stockscan.services.errors import (
    FulfillmentError,
    InvalidQuantity,
    NotFound,
    OrderConstraintViolation,
    PartialRpcFailure,
    PersistenceFailure,
    PreconditionMissing,
)
from stockscan.services.scan_registry import ScanSessionRegistry
from stockscan.services.scan_session import FulfillmentSession

router = APIRouter(prefix="/scan-sessions")


HTTP_STATUS_BY_ERROR: dict[type[FulfillmentError], int] = {
    NotFound: 404,
    OrderConstraintViolation: 409,
    PreconditionMissing: 400,
    InvalidQuantity: 422,
    PersistenceFailure: 502,
    PartialRpcFailure: 200,
}


def _raise_for(session: FulfillmentSession) -> None:
    exc = session.last_error
    if exc is None:
        raise HTTPException(status_code=400, detail="Request rejected")
    detail = {"code": exc.code, "message": exc.message}
    if isinstance(exc, OrderConstraintViolation):
        detail["max_allowed"] = exc.max_allowed
    raise HTTPException(status_code=HTTP_STATUS_BY_ERROR.get(type(exc), 400), detail=detail)


def _read(session: FulfillmentSession) -> ScanSessionRead:
    return ScanSessionRead(
        id=session.id,
        kind=session.kind,
        order_bound=session.order_bound,
        entry_type=session.entry_type,
        warehouse_id=session.warehouse_id,
        order_id=session.order.id if session.order else None,
        selected_product_id=session.selected_product_id,
        scanning=session.scanning,
        commit_state=session.commit_state,
        current_product=session.current_product,
        cart=[CartItemRead.model_validate(item) for item in session.cart],
        session_progress=session.progress.as_dict(),
        error=session.error,
    )


@router.post("", response_model=ScanSessionRead)
def open_session(payload: ScanSessionCreate, registry: ScanSessionRegistry = Depends(get_registry)):
    try:
        session = registry.open(
            payload.kind,
            warehouse_id=payload.warehouse_id,
            order_bound=payload.order_bound,
            entry_type=payload.entry_type,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _read(session)


@router.get("/{session_id}", response_model=ScanSessionRead)
def get_session(session: FulfillmentSession = Depends(get_scan_session)):
    return _read(session)


@router.delete("/{session_id}")
def close_session(session_id: str, registry: ScanSessionRegistry = Depends(get_registry)):
    if not registry.close(session_id):
        raise HTTPException(status_code=404, detail="Scan session not found")
    return {"ok": True}


@router.get("/{session_id}/orders", response_model=list[OrderSummaryRead])
def list_open_orders(
    party_id: int | None = None,
    session: FulfillmentSession = Depends(get_scan_session),
):
    previous = session.last_error
    summaries = session.load_open_orders(party_id)
    if session.last_error is not previous:
        _raise_for(session)
    return [OrderSummaryRead.model_validate(s) for s in summaries]


@router.post("/{session_id}/order", response_model=ScanSessionRead)
def select_order(payload: OrderSelect, session: FulfillmentSession = Depends(get_scan_session)):
    if not session.select_order(payload.order_id):
        _raise_for(session)
    return _read(session)


@router.post("/{session_id}/line", response_model=ScanSessionRead)
def select_line(payload: LineSelect, session: FulfillmentSession = Depends(get_scan_session)):
    if not session.select_line(payload.product_id):
        _raise_for(session)
    return _read(session)


@router.post("/{session_id}/start", response_model=ScanSessionRead)
def start_scanning(session: FulfillmentSession = Depends(get_scan_session)):
    if not session.start_scanning():
        _raise_for(session)
    return _read(session)


@router.post("/{session_id}/scan", response_model=ScanSessionRead)
def scan_barcode(payload: BarcodeScan, session: FulfillmentSession = Depends(get_scan_session)):
    if session.scan_barcode(payload.barcode) is None:
        _raise_for(session)
    return _read(session)


@router.post("/{session_id}/validate", response_model=ValidationRead)
def validate_quantity(payload: QuantityCheck, session: FulfillmentSession = Depends(get_scan_session)):
    return ValidationRead.model_validate(session.validate(payload.product_id, payload.quantity))


@router.post("/{session_id}/cart", response_model=ScanSessionRead)
def add_to_cart(payload: CartAdd, session: FulfillmentSession = Depends(get_scan_session)):
    # produit courant (issu du dernier scan) par défaut
    product = session.current_product
    if payload.product_id is not None and (product is None or product.id != payload.product_id):
        raise HTTPException(status_code=400, detail="Scan the product before adding it to the cart")
    if product is None:
        raise HTTPException(status_code=400, detail="No scanned product")

    if not session.add_to_cart(product, payload.quantity, payload.barcode or session.current_barcode):
        _raise_for(session)
    return _read(session)


@router.patch("/{session_id}/cart/{index}", response_model=ScanSessionRead)
def update_cart_item(index: int, payload: CartUpdate, session: FulfillmentSession = Depends(get_scan_session)):
    if not session.update_quantity(index, payload.quantity):
        _raise_for(session)
    return _read(session)


@router.delete("/{session_id}/cart/{index}", response_model=ScanSessionRead)
def remove_cart_item(index: int, session: FulfillmentSession = Depends(get_scan_session)):
    if not session.remove_from_cart(index):
        _raise_for(session)
    return _read(session)


@router.get("/{session_id}/progress", response_model=OrderProgressRead)
def get_progress(session: FulfillmentSession = Depends(get_scan_session)):
    progress = session.get_progress()
    if progress is None:
        raise HTTPException(status_code=400, detail="No order selected")
    return OrderProgressRead.model_validate(progress)


@router.post("/{session_id}/finalize", response_model=FinalizeRead)
def finalize(payload: FinalizeRequest, session: FulfillmentSession = Depends(get_scan_session)):
    result = session.finalize(payload.actor_id)
    if result.status is CommitState.failed:
        status_code = HTTP_STATUS_BY_ERROR.get(type(session.last_error), 400)
        return JSONResponse(status_code=status_code, content=FinalizeRead.model_validate(result).model_dump(mode="json"))
    return FinalizeRead.model_validate(result)


@router.post("/{session_id}/reset", response_model=ScanSessionRead)
def reset_session(session: FulfillmentSession = Depends(get_scan_session)):
    session.reset_session()
    return _read(session)


@router.post("/{session_id}/clear-error", response_model=ScanSessionRead)
def clear_error(session: FulfillmentSession = Depends(get_scan_session)):
    session.clear_error()
    return _read(session)
