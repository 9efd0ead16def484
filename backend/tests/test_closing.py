"""Daily closing: expected takings, variance classification and one closing per day."""

from datetime import timedelta

import pytest

from lsms.models import AuditLog, DailyClosing
from lsms.services import closing_service
from lsms.time_utils import business_today


def _today():
    return business_today("UTC")


def _close(client, headers, day, cash, **extra):
    payload = {"date": day.isoformat(), "declared_cash_cents": cash}
    payload.update(extra)
    return client.post("/api/closing", json=payload, headers=headers)


def _ring_up(client, headers, product_id, quantity, method):
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": product_id, "quantity": quantity}], "payment_method": method},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.get_json()["sale"]["id"]


def test_overview_groups_by_payment_method(client, seller_headers, owner_headers, whisky, beer):
    _ring_up(client, seller_headers, whisky.id, 1, "CASH")
    _ring_up(client, seller_headers, beer.id, 2, "MPESA")
    voided = _ring_up(client, seller_headers, beer.id, 1, "CASH")
    client.post(f"/api/sales/{voided}/void", json={"reason": "Mistake"}, headers=owner_headers)

    data = client.get(f"/api/closing?date={_today().isoformat()}", headers=seller_headers).get_json()
    assert data["expected"] == {
        "cash_cents": 150000,
        "mpesa_cents": 50000,
        "card_cents": 0,
        "total_cents": 200000,
    }
    assert data["sales_count"] == 2
    assert data["existing_closing"] is None
    assert data["variance_threshold_cents"] == 10000


def test_submit_closing_with_small_variance(client, db_session, seller, seller_headers, whisky):
    _ring_up(client, seller_headers, whisky.id, 1, "CASH")

    resp = _close(client, seller_headers, _today(), 149000, declared_mpesa_cents=0, notes="Short by 10")
    assert resp.status_code == 201
    closing = resp.get_json()["closing"]
    assert closing["expected_cash_cents"] == 150000
    assert closing["cash_variance_cents"] == -1000
    assert closing["total_variance_cents"] == -1000
    assert closing["status"] == "APPROVED"
    assert closing["user_id"] == seller.id

    assert db_session.query(AuditLog).filter_by(action="DAILY_CLOSING").count() == 1


def test_threshold_boundary(client, db_session, seller_headers):
    # No sales on either day: expected cash is 0
    day_one = _today() - timedelta(days=2)
    day_two = _today() - timedelta(days=1)

    assert _close(client, seller_headers, day_one, 9999).get_json()["closing"]["status"] == "APPROVED"
    assert _close(client, seller_headers, day_two, 10000).get_json()["closing"]["status"] == "DISCREPANCY"


def test_threshold_setting_overrides_config(client, owner_headers, seller_headers):
    client.put("/api/settings/closing_variance_threshold_cents", json={"value": 500}, headers=owner_headers)
    resp = _close(client, seller_headers, _today(), 600)
    assert resp.get_json()["closing"]["status"] == "DISCREPANCY"


@pytest.mark.parametrize("variance,expected", [
    (0, "APPROVED"),
    (9999, "APPROVED"),
    (-9999, "APPROVED"),
    (10000, "DISCREPANCY"),
    (-10000, "DISCREPANCY"),
])
def test_classify_variance(variance, expected):
    assert closing_service.classify_variance(variance, 10000) == expected


def test_second_closing_same_day_is_conflict(client, db_session, seller_headers, owner_headers):
    assert _close(client, seller_headers, _today(), 0).status_code == 201
    again = _close(client, owner_headers, _today(), 5000)
    assert again.status_code == 409
    assert db_session.query(DailyClosing).count() == 1

    data = client.get("/api/closing", headers=seller_headers).get_json()
    assert data["existing_closing"]["declared_cash_cents"] == 0
    assert len(data["recent_closings"]) == 1


@pytest.mark.parametrize("payload", [
    {"date": "2025-01-01"},
    {"date": "2025-01-01", "declared_cash_cents": -1},
    {"date": "2025-01-01", "declared_cash_cents": "12.50"},
    {"date": "not-a-date", "declared_cash_cents": 100},
    {"declared_cash_cents": 100},
])
def test_invalid_submissions(client, db_session, seller_headers, payload):
    assert client.post("/api/closing", json=payload, headers=seller_headers).status_code == 400
    assert db_session.query(DailyClosing).count() == 0


def test_future_date_rejected(client, seller_headers, db_session):
    resp = _close(client, seller_headers, _today() + timedelta(days=1), 0)
    assert resp.status_code == 400


def test_closing_requires_auth(client, db_session):
    assert client.get("/api/closing").status_code == 401
