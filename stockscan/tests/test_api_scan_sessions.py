import pytest
from fastapi.testclient import TestClient

from stockscan.app.main import create_app


@pytest.fixture
def client(session_factory):
    app = create_app(session_factory)
    with TestClient(app) as c:
        yield c


def _open(client, master_data, kind="INBOUND", **extra) -> str:
    payload = {"kind": kind, "warehouse_id": master_data.warehouse_id, **extra}
    r = client.post("/v1/scan-sessions", json=payload)
    assert r.status_code == 200, r.text
    return r.json()["id"]


def _scan_and_add(client, sid: str, barcode: str, quantity: int):
    r = client.post(f"/v1/scan-sessions/{sid}/scan", json={"barcode": barcode})
    assert r.status_code == 200, r.text
    return client.post(f"/v1/scan-sessions/{sid}/cart", json={"quantity": quantity})


def test_inbound_session_end_to_end(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10})
    sid = _open(client, master_data)

    r = client.get(f"/v1/scan-sessions/{sid}/orders")
    assert r.status_code == 200
    assert [o["order_id"] for o in r.json()] == [po_id]

    r = client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})
    assert r.status_code == 200
    assert r.json()["order_id"] == po_id
    assert r.json()["entry_type"] == "PO_ENTRY"

    r = client.post(f"/v1/scan-sessions/{sid}/start")
    assert r.status_code == 200
    assert r.json()["scanning"] is True

    r = _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 4)
    assert r.status_code == 200
    body = r.json()
    assert body["cart"][0]["quantity"] == 4
    assert body["session_progress"] == {str(master_data.p1): 4}

    r = client.get(f"/v1/scan-sessions/{sid}/progress")
    assert r.status_code == 200
    assert r.json()["total_scanned"] == 4
    assert r.json()["percent"] == 40.0

    r = client.post(f"/v1/scan-sessions/{sid}/finalize", json={"actor_id": master_data.user_id})
    assert r.status_code == 200
    assert r.json()["status"] == "COMMITTED"
    assert r.json()["inserted"] == 1

    r = client.get(f"/v1/purchase-orders/{po_id}")
    assert r.json()["status"] == "PARTIAL"
    assert r.json()["lines"][0]["qty_registered"] == 4

    r = client.get("/v1/stock", params={"product_id": master_data.p1})
    assert r.json() == [{"product_id": master_data.p1, "warehouse_id": master_data.warehouse_id, "quantity": 4}]


def test_exceeding_quantity_returns_409_with_max_allowed(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10})
    sid = _open(client, master_data)
    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})

    assert _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 6).status_code == 200
    r = _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 5)

    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["code"] == "ORDER_CONSTRAINT_VIOLATION"
    assert detail["max_allowed"] == 4

    r = client.post(
        f"/v1/scan-sessions/{sid}/validate",
        json={"product_id": master_data.p1, "quantity": 4},
    )
    assert r.json() == {"valid": True, "reason": None, "max_allowed": None}

    r = client.get(f"/v1/scan-sessions/{sid}")
    assert r.json()["error"] is not None
    r = client.post(f"/v1/scan-sessions/{sid}/clear-error")
    assert r.json()["error"] is None


def test_error_codes_map_to_http_status(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10})
    sid = _open(client, master_data)

    r = client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": 999_999})
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "NOT_FOUND"

    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})

    r = client.post(f"/v1/scan-sessions/{sid}/scan", json={"barcode": "0000"})
    assert r.status_code == 404

    r = _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 0)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "INVALID_QUANTITY"

    r = client.post(f"/v1/scan-sessions/{sid}/finalize", json={"actor_id": master_data.user_id})
    assert r.status_code == 400
    assert r.json()["status"] == "FAILED"
    assert r.json()["code"] == "PRECONDITION_MISSING"

    r = client.patch(f"/v1/scan-sessions/{sid}/cart/5", json={"quantity": 1})
    assert r.status_code == 404


def test_outbound_session_rejects_entry_type(client, master_data):
    r = client.post(
        "/v1/scan-sessions",
        json={"kind": "OUTBOUND", "warehouse_id": master_data.warehouse_id, "entry_type": "ENTRY"},
    )
    assert r.status_code == 400


def test_outbound_session_consumes_stock(client, master_data, make_delivery_order, set_stock):
    do_id = make_delivery_order({master_data.p2: 3})
    set_stock(master_data.p2, 5)
    sid = _open(client, master_data, kind="OUTBOUND")
    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": do_id})

    r = _scan_and_add(client, sid, master_data.barcodes[master_data.p2], 3)
    assert r.status_code == 200
    assert r.json()["cart"][0]["available_stock"] == 5

    r = client.post(f"/v1/scan-sessions/{sid}/finalize", json={"actor_id": master_data.user_id})
    assert r.json()["status"] == "COMMITTED"
    assert r.json()["order_complete"] is True

    r = client.get(f"/v1/delivery-orders/{do_id}")
    assert r.json()["status"] == "COMPLETED"
    r = client.get("/v1/stock", params={"product_id": master_data.p2})
    assert r.json()[0]["quantity"] == 2


def test_cart_edit_remove_and_reset(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10, master_data.p2: 10})
    sid = _open(client, master_data)
    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})
    _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 2)
    _scan_and_add(client, sid, master_data.barcodes[master_data.p2], 3)

    r = client.patch(f"/v1/scan-sessions/{sid}/cart/0", json={"quantity": 5})
    assert r.json()["cart"][0]["quantity"] == 5

    r = client.delete(f"/v1/scan-sessions/{sid}/cart/1")
    assert len(r.json()["cart"]) == 1
    assert r.json()["session_progress"] == {str(master_data.p1): 5}

    r = client.post(f"/v1/scan-sessions/{sid}/reset")
    assert r.json()["cart"] == []
    assert r.json()["order_id"] is None
    assert r.json()["warehouse_id"] is None


def test_closed_session_is_gone(client, master_data):
    sid = _open(client, master_data)

    assert client.delete(f"/v1/scan-sessions/{sid}").status_code == 200
    assert client.get(f"/v1/scan-sessions/{sid}").status_code == 404
    assert client.delete(f"/v1/scan-sessions/{sid}").status_code == 404


def test_reconcile_rebuilds_registered_quantities(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10})
    sid = _open(client, master_data)
    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})
    _scan_and_add(client, sid, master_data.barcodes[master_data.p1], 10)
    client.post(f"/v1/scan-sessions/{sid}/finalize", json={"actor_id": master_data.user_id})

    r = client.post(f"/v1/purchase-orders/{po_id}/reconcile")

    assert r.status_code == 200
    assert r.json()["status"] == "COMPLETED"
    assert r.json()["registered"] == {str(master_data.p1): 10}

    assert client.post("/v1/purchase-orders/999999/reconcile").status_code == 404


def test_master_data_endpoints(client, master_data):
    r = client.post("/v1/products", json={"sku": "SKU-NEW", "name": "Nouveau", "barcode": "999"})
    assert r.status_code == 200
    product_id = r.json()["id"]

    r = client.post("/v1/products", json={"sku": "SKU-NEW", "name": "Doublon"})
    assert r.status_code == 409

    r = client.get("/v1/products/by-barcode/999")
    assert r.json()["id"] == product_id

    r = client.post(
        "/v1/purchase-orders",
        json={
            "po_number": "PO-API-1",
            "supplier_id": master_data.supplier_id,
            "lines": [{"product_id": product_id, "qty_ordered": 2}],
        },
    )
    assert r.status_code == 200
    po_id = r.json()["id"]

    r = client.get(f"/v1/purchase-orders/{po_id}")
    assert r.json()["status"] == "PENDING"
    assert r.json()["lines"] == [{"product_id": product_id, "qty_ordered": 2, "qty_registered": 0}]

    r = client.get("/v1/warehouses")
    assert [w["name"] for w in r.json()] == ["PRINCIPAL"]


def test_validate_rejects_non_positive_quantity(client, master_data, make_purchase_order):
    po_id = make_purchase_order({master_data.p1: 10})
    sid = _open(client, master_data)
    client.post(f"/v1/scan-sessions/{sid}/order", json={"order_id": po_id})

    for quantity in (0, -3):
        r = client.post(
            f"/v1/scan-sessions/{sid}/validate",
            json={"product_id": master_data.p1, "quantity": quantity},
        )
        assert r.status_code == 422
