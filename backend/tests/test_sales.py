"""Sale processing: arithmetic, oversell protection, atomicity, receipts and voids."""

from datetime import timedelta

import pytest

from lsms.models import AuditLog, Product, Sale, SaleItem, StockMovement
from lsms.services import sales_service
from lsms.services.inventory_service import InventoryError
from lsms.time_utils import business_today
from lsms.validation import ConflictError


def _sell(client, headers, items, method="CASH", **extra):
    payload = {"items": items, "payment_method": method}
    payload.update(extra)
    return client.post("/api/sales", json=payload, headers=headers)


def test_sale_arithmetic(client, db_session, seller, seller_headers, whisky, beer):
    resp = _sell(
        client,
        seller_headers,
        [{"product_id": whisky.id, "quantity": 2}, {"product_id": beer.id, "quantity": 3}],
        discount_cents=5000,
    )
    assert resp.status_code == 201

    sale = db_session.query(Sale).one()
    # 2 x 1500.00 + 3 x 250.00
    assert sale.subtotal_cents == 375000
    assert sale.discount_cents == 5000
    assert sale.total_cents == 370000
    # 2 x 1000.00 + 3 x 150.00
    assert sale.total_cost_cents == 245000
    assert sale.gross_profit_cents == 125000
    assert sale.user_id == seller.id

    assert db_session.get(Product, whisky.id).current_stock == 8
    assert db_session.get(Product, beer.id).current_stock == 45

    movements = db_session.query(StockMovement).filter_by(type="SALE", reference_id=sale.id).all()
    assert sorted(m.quantity for m in movements) == [-3, -2]


def test_sale_response_hides_cost_for_seller(client, seller_headers, whisky):
    body = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}]).get_json()["sale"]
    assert "total_cost_cents" not in body
    assert "gross_profit_cents" not in body
    assert "unit_cost_cents" not in body["items"][0]


def test_duplicate_lines_are_merged(client, db_session, seller_headers, whisky):
    resp = _sell(
        client,
        seller_headers,
        [{"product_id": whisky.id, "quantity": 1}, {"product_id": whisky.id, "quantity": 2}],
    )
    assert resp.status_code == 201
    assert db_session.query(SaleItem).one().quantity == 3
    assert db_session.get(Product, whisky.id).current_stock == 7


def test_oversell_is_rejected_without_side_effects(client, db_session, seller_headers, whisky):
    resp = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 11}])
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Insufficient stock for Johnnie Walker Black 750ml. Available: 10"
    assert body["details"]["available"] == 10

    assert db_session.query(Sale).count() == 0
    assert db_session.get(Product, whisky.id).current_stock == 10


def test_selling_last_units_then_nothing_left(client, db_session, seller_headers, whisky):
    assert _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 10}]).status_code == 201
    assert _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}]).status_code == 400
    assert db_session.get(Product, whisky.id).current_stock == 0


@pytest.mark.parametrize("items", [
    [],
    [{"product_id": 1}],
    [{"product_id": 1, "quantity": 0}],
    [{"product_id": 1, "quantity": -2}],
    [{"product_id": 1, "quantity": 1.5}],
    "not-a-list",
])
def test_invalid_carts_rejected(client, db_session, seller_headers, items):
    assert _sell(client, seller_headers, items).status_code == 400
    assert db_session.query(Sale).count() == 0


def test_invalid_payment_method(client, seller_headers, whisky):
    resp = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}], method="CHEQUE")
    assert resp.status_code == 400


def test_unknown_or_archived_product(client, db_session, seller_headers, whisky):
    resp = _sell(client, seller_headers, [{"product_id": 9999, "quantity": 1}])
    assert resp.status_code == 400
    assert resp.get_json()["details"]["missing_product_ids"] == [9999]

    whisky.status = "ARCHIVED"
    db_session.commit()
    resp = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}])
    assert resp.status_code == 400


def test_discount_cannot_exceed_subtotal(client, db_session, seller_headers, beer):
    resp = _sell(client, seller_headers, [{"product_id": beer.id, "quantity": 1}], discount_cents=25001)
    assert resp.status_code == 400
    resp = _sell(client, seller_headers, [{"product_id": beer.id, "quantity": 1}], discount_cents=-1)
    assert resp.status_code == 400
    assert db_session.query(Sale).count() == 0


def test_negative_total_allowed_when_configured(app, client, db_session, owner_headers, beer):
    app.config["ALLOW_NEGATIVE_SALE_TOTAL"] = True
    try:
        resp = _sell(client, owner_headers, [{"product_id": beer.id, "quantity": 1}], discount_cents=30000)
    finally:
        app.config["ALLOW_NEGATIVE_SALE_TOTAL"] = False
    assert resp.status_code == 201
    sale = resp.get_json()["sale"]
    assert sale["subtotal_cents"] == 25000
    assert sale["total_cents"] == -5000
    assert sale["gross_profit_cents"] == -5000 - 15000
    assert db_session.get(Product, beer.id).current_stock == 47


def test_non_object_body_rejected(client, db_session, seller_headers, whisky):
    resp = client.post("/api/sales", json=[{"product_id": whisky.id, "quantity": 1}], headers=seller_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid JSON payload"
    assert db_session.query(Sale).count() == 0


def test_failure_midway_rolls_back_everything(client, db_session, monkeypatch, seller_headers, whisky, beer):
    real_decrement = sales_service.decrement_stock_for_sale
    calls = []

    def flaky_decrement(**kwargs):
        calls.append(kwargs["product_id"])
        if len(calls) == 2:
            raise InventoryError("Insufficient stock")
        return real_decrement(**kwargs)

    monkeypatch.setattr(sales_service, "decrement_stock_for_sale", flaky_decrement)

    resp = _sell(
        client,
        seller_headers,
        [{"product_id": whisky.id, "quantity": 1}, {"product_id": beer.id, "quantity": 1}],
    )
    assert resp.status_code == 400

    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleItem).count() == 0
    assert db_session.query(StockMovement).filter_by(type="SALE").count() == 0
    assert db_session.get(Product, whisky.id).current_stock == 10
    assert db_session.get(Product, beer.id).current_stock == 48


def test_receipt_numbers_are_sequential_per_day(client, db_session, seller_headers, beer):
    prefix = f"RCP-{business_today('UTC').strftime('%Y%m%d')}-"
    numbers = []
    for _ in range(3):
        resp = _sell(client, seller_headers, [{"product_id": beer.id, "quantity": 1}])
        numbers.append(resp.get_json()["sale"]["receipt_number"])

    assert numbers == [f"{prefix}0001", f"{prefix}0002", f"{prefix}0003"]


def test_receipt_counter_restarts_each_day(db_session):
    today = business_today("UTC")
    yesterday = today - timedelta(days=1)

    assert sales_service.next_receipt_number(yesterday).endswith("-0001")
    assert sales_service.next_receipt_number(yesterday).endswith("-0002")
    assert sales_service.next_receipt_number(today).endswith("-0001")
    db_session.rollback()


def test_format_receipt_number():
    from datetime import date
    assert sales_service.format_receipt_number(date(2025, 3, 7), 42) == "RCP-20250307-0042"


def test_list_and_get_sales(client, seller_headers, owner_headers, whisky):
    sale_id = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}]).get_json()["sale"]["id"]

    listed = client.get("/api/sales", headers=seller_headers).get_json()
    assert listed["total"] == 1
    assert "gross_profit_cents" not in listed["sales"][0]

    owner_view = client.get(f"/api/sales/{sale_id}", headers=owner_headers).get_json()["sale"]
    assert owner_view["gross_profit_cents"] == 50000
    assert client.get("/api/sales/9999", headers=owner_headers).status_code == 404


def test_void_restocks_and_audits(client, db_session, owner, owner_headers, seller_headers, whisky):
    sale_id = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 3}]).get_json()["sale"]["id"]

    resp = client.post(f"/api/sales/{sale_id}/void", json={"reason": "Wrong item"}, headers=owner_headers)
    assert resp.status_code == 200
    assert resp.get_json()["sale"]["is_voided"] is True

    assert db_session.get(Product, whisky.id).current_stock == 10
    returns = db_session.query(StockMovement).filter_by(type="RETURN", reference_id=sale_id).all()
    assert [m.quantity for m in returns] == [3]
    assert db_session.query(AuditLog).filter_by(action="SALE_VOID").count() == 1

    # Voided sales drop out of the default listing
    assert client.get("/api/sales", headers=owner_headers).get_json()["total"] == 0

    again = client.post(f"/api/sales/{sale_id}/void", json={"reason": "Again"}, headers=owner_headers)
    assert again.status_code == 409


def test_void_requires_reason_and_owner(client, owner_headers, seller_headers, whisky):
    sale_id = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}]).get_json()["sale"]["id"]
    assert client.post(f"/api/sales/{sale_id}/void", json={"reason": "x"}, headers=seller_headers).status_code == 403
    assert client.post(f"/api/sales/{sale_id}/void", json={}, headers=owner_headers).status_code == 400


def test_void_service_conflict_on_repeat(db_session, owner, seller, whisky):
    sale = sales_service.create_sale(
        items=[{"product_id": whisky.id, "quantity": 2}],
        payment_method="CASH",
        actor_id=seller.id,
    )
    sales_service.void_sale(sale_id=sale.id, actor_id=owner.id, reason="Wrong item")

    with pytest.raises(ConflictError):
        sales_service.void_sale(sale_id=sale.id, actor_id=owner.id, reason="Again")
    assert db_session.get(Product, whisky.id).current_stock == 10
    assert db_session.query(StockMovement).filter_by(type="RETURN", reference_id=sale.id).count() == 1


def test_void_rejects_non_object_body(client, owner_headers, seller_headers, whisky):
    sale_id = _sell(client, seller_headers, [{"product_id": whisky.id, "quantity": 1}]).get_json()["sale"]["id"]
    resp = client.post(f"/api/sales/{sale_id}/void", json=["Wrong item"], headers=owner_headers)
    assert resp.status_code == 400
    assert client.get(f"/api/sales/{sale_id}", headers=owner_headers).get_json()["sale"]["is_voided"] is False
