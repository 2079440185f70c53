"""
HTTP surface of the stock ledger: /stock endpoints and error mapping.
"""
from sqlalchemy.exc import OperationalError

from models.log import Log
from models.product import Product
from models.stock import StockMovement
from services import inventory


def _stock(session_factory, product_id):
    with session_factory() as s:
        return s.get(Product, product_id).stock_quantity


def test_entry_then_listing_shows_it_first(client, seed, admin_headers, session_factory):
    # Seed an older movement so ordering matters
    client.post("/stock/entries", json={
        "product_id": seed.laptop_id, "quantity": 1, "movement_date": "2026-01-01T08:00:00",
    }, headers=admin_headers)

    res = client.post("/stock/entries", json={
        "product_id": seed.laptop_id, "quantity": 20, "unit_price": "18000", "supplier_id": seed.supplier_id,
    }, headers=admin_headers)

    assert res.status_code == 201
    body = res.json()
    assert body["new_stock"] == 71
    assert body["success"] is True

    listing = client.get(f"/stock/?product_id={seed.laptop_id}", headers=admin_headers).json()
    assert listing["total"] == 2
    assert listing["page"] == 1
    assert listing["total_pages"] == 1
    first = listing["items"][0]
    assert first["id"] == body["movement_id"]
    assert first["type"] == "IN"
    assert first["unit_price"] == 18000.0
    assert first["total_value"] == 360000.0
    assert first["supplier_name"] == "Tech Wholesale"
    assert first["user_name"] == "Ada Admin"


def test_exit_with_insufficient_stock(client, seed, employee_headers, session_factory):
    res = client.post("/stock/exits", json={"product_id": seed.cable_id, "quantity": 10}, headers=employee_headers)

    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["detail"] == "Insufficient stock. Available: 2, requested: 10"
    assert body["available"] == 2
    assert _stock(session_factory, seed.cable_id) == 2


def test_exit_uses_sale_price_by_default(client, seed, employee_headers):
    res = client.post("/stock/exits", json={
        "product_id": seed.laptop_id, "quantity": 2, "client_id": seed.client_id, "reference": "SO-12",
    }, headers=employee_headers)
    assert res.status_code == 201
    assert res.json()["new_stock"] == 48

    movement = client.get(f"/stock/{res.json()['movement_id']}", headers=employee_headers).json()
    assert movement["unit_price"] == 22000.0
    assert movement["client_name"] == "Bob's Office"
    assert movement["reference"] == "SO-12"


def test_invalid_quantity_is_rejected_before_the_ledger(client, seed, admin_headers, session_factory):
    for qty in (0, -5):
        res = client.post("/stock/entries", json={"product_id": seed.laptop_id, "quantity": qty}, headers=admin_headers)
        assert res.status_code == 422

    with session_factory() as s:
        assert s.query(StockMovement).count() == 0


def test_unknown_product(client, seed, admin_headers):
    res = client.post("/stock/entries", json={"product_id": 9999, "quantity": 1}, headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["code"] == "PRODUCT_NOT_FOUND"


def test_foreign_product_is_invisible(client, seed, other_admin_headers, session_factory):
    res = client.post("/stock/exits", json={"product_id": seed.laptop_id, "quantity": 1}, headers=other_admin_headers)
    assert res.status_code == 404
    assert _stock(session_factory, seed.laptop_id) == 50


def test_cancel_requires_admin(client, seed, admin_headers, employee_headers, session_factory):
    created = client.post("/stock/entries", json={"product_id": seed.laptop_id, "quantity": 20}, headers=admin_headers).json()

    res = client.delete(f"/stock/{created['movement_id']}", headers=employee_headers)
    assert res.status_code == 403
    assert _stock(session_factory, seed.laptop_id) == 70

    res = client.delete(f"/stock/{created['movement_id']}", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["new_stock"] == 50
    assert _stock(session_factory, seed.laptop_id) == 50

    res = client.get(f"/stock/{created['movement_id']}", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["code"] == "MOVEMENT_NOT_FOUND"


def test_cancel_unknown_movement(client, seed, admin_headers):
    res = client.delete("/stock/123456", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["code"] == "MOVEMENT_NOT_FOUND"


def test_cancel_foreign_movement(client, seed, admin_headers, other_admin_headers, session_factory):
    created = client.post("/stock/entries", json={"product_id": seed.laptop_id, "quantity": 5}, headers=admin_headers).json()

    res = client.delete(f"/stock/{created['movement_id']}", headers=other_admin_headers)
    assert res.status_code == 404
    assert _stock(session_factory, seed.laptop_id) == 55


def test_list_filters_and_pagination(client, seed, admin_headers):
    for qty, day in ((1, "2026-05-01"), (2, "2026-05-02"), (3, "2026-05-03")):
        client.post("/stock/entries", json={
            "product_id": seed.laptop_id, "quantity": qty, "movement_date": f"{day}T10:00:00",
        }, headers=admin_headers)
    client.post("/stock/exits", json={
        "product_id": seed.laptop_id, "quantity": 4, "movement_date": "2026-05-02T12:00:00",
    }, headers=admin_headers)

    res = client.get("/stock/", params={"date_from": "2026-05-02", "date_to": "2026-05-03", "limit": 2}, headers=admin_headers)
    body = res.json()
    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [m["qty"] for m in body["items"]] == [3, 4]

    res = client.get("/stock/", params={"type": "OUT"}, headers=admin_headers)
    assert [m["qty"] for m in res.json()["items"]] == [4]

    res = client.get("/stock/", params={"type": "SIDEWAYS"}, headers=admin_headers)
    assert res.status_code == 422


def test_movement_is_written_to_audit_log(client, seed, admin_headers, session_factory):
    client.post("/stock/entries", json={"product_id": seed.laptop_id, "quantity": 3}, headers=admin_headers)

    with session_factory() as s:
        log = s.query(Log).filter(Log.action == "STOCK_ENTRY").one()
        assert log.ip is not None
        assert log.company_id == seed.company_id


def test_database_error_is_a_generic_500(client, seed, admin_headers, session_factory, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE products", {}, Exception("database is locked"))

    monkeypatch.setattr(inventory, "apply_movement", broken)

    res = client.post("/stock/entries", json={"product_id": seed.laptop_id, "quantity": 3}, headers=admin_headers)
    assert res.status_code == 500
    assert res.json() == {"success": False, "code": "SERVER_ERROR", "detail": "Internal server error"}
    assert _stock(session_factory, seed.laptop_id) == 50


def test_requires_authentication(client, seed):
    res = client.get("/stock/")
    assert res.status_code in (401, 403)
