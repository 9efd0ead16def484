"""Expense submission and the single-decision approval workflow."""

import pytest

from lsms.models import AuditLog, Expense
from lsms.services import expense_service
from lsms.validation import ConflictError

from conftest import auth_headers


def _submit(client, headers, category_id, amount=250000, **extra):
    payload = {"category_id": category_id, "amount_cents": amount, "description": "Electricity bill"}
    payload.update(extra)
    return client.post("/api/expenses", json=payload, headers=headers)


def test_seller_submits_pending_expense(client, db_session, seller, seller_headers, expense_category):
    resp = _submit(client, seller_headers, expense_category.id, payment_method="mpesa")
    assert resp.status_code == 201
    body = resp.get_json()["expense"]
    assert body["status"] == "PENDING"
    assert body["payment_method"] == "MPESA"
    assert body["submitted_by"] == seller.id
    assert body["category_name"] == "Utilities"


@pytest.mark.parametrize("overrides", [
    {"amount_cents": 0},
    {"amount_cents": -100},
    {"amount_cents": 10.5},
    {"description": ""},
    {"payment_method": "CHEQUE"},
    {"status": "APPROVED"},
])
def test_invalid_expenses_rejected(client, db_session, seller_headers, expense_category, overrides):
    resp = _submit(client, seller_headers, expense_category.id, **overrides)
    assert resp.status_code == 400
    assert db_session.query(Expense).count() == 0


def test_unknown_category_rejected(client, db_session, seller_headers, expense_category):
    resp = _submit(client, seller_headers, expense_category.id + 999)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Expense category not found"
    assert db_session.query(Expense).count() == 0


def test_non_object_bodies_rejected(client, db_session, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]

    resp = client.post("/api/expenses", json=[{"amount_cents": 100}], headers=seller_headers)
    assert resp.status_code == 400
    resp = client.post(f"/api/expenses/{expense_id}/decision", json=["approve"], headers=owner_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid JSON payload"
    assert db_session.get(Expense, expense_id).status == "PENDING"


def test_sellers_only_see_their_own(client, seller_headers, owner_headers, second_seller, expense_category):
    _submit(client, seller_headers, expense_category.id)
    _submit(client, auth_headers(second_seller), expense_category.id)

    assert client.get("/api/expenses", headers=seller_headers).get_json()["total"] == 1
    assert client.get("/api/expenses", headers=owner_headers).get_json()["total"] == 2


def test_approve(client, db_session, owner, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]

    resp = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "approve"}, headers=owner_headers)
    assert resp.status_code == 200
    body = resp.get_json()["expense"]
    assert body["status"] == "APPROVED"
    assert body["approved_by"] == owner.id
    assert body["approved_at"] is not None
    assert body["rejection_reason"] is None

    entry = db_session.query(AuditLog).filter_by(action="EXPENSE_APPROVE").one()
    assert entry.to_dict()["old_value"] == {"status": "PENDING"}
    assert entry.to_dict()["new_value"] == {"status": "APPROVED"}


def test_reject_requires_reason(client, db_session, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]

    resp = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "reject"}, headers=owner_headers)
    assert resp.status_code == 400
    assert db_session.get(Expense, expense_id).status == "PENDING"

    resp = client.post(
        f"/api/expenses/{expense_id}/decision",
        json={"action": "reject", "rejection_reason": "No receipt"},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["expense"]["rejection_reason"] == "No receipt"


def test_reject_without_reason_allowed_when_configured(app, client, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]
    app.config["REQUIRE_REJECTION_REASON"] = False
    try:
        resp = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "reject"}, headers=owner_headers)
    finally:
        app.config["REQUIRE_REJECTION_REASON"] = True
    assert resp.status_code == 200


def test_second_decision_is_conflict(client, db_session, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]

    first = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "approve"}, headers=owner_headers)
    assert first.status_code == 200

    second = client.post(
        f"/api/expenses/{expense_id}/decision",
        json={"action": "reject", "rejection_reason": "Too late"},
        headers=owner_headers,
    )
    assert second.status_code == 409
    assert second.get_json()["error"] == "Expense already processed"

    expense = db_session.get(Expense, expense_id)
    assert expense.status == "APPROVED"
    assert expense.rejection_reason is None
    assert db_session.query(AuditLog).filter(AuditLog.entity_type == "Expense").count() == 1


def test_decide_service_conflict(db_session, owner, seller, expense_category):
    expense = expense_service.submit_expense(
        patch={"category_id": expense_category.id, "amount_cents": 500, "description": "Tape"},
        actor_id=seller.id,
    )
    expense_service.decide_expense(expense_id=expense.id, action="approve", actor_id=owner.id)
    with pytest.raises(ConflictError):
        expense_service.decide_expense(expense_id=expense.id, action="approve", actor_id=owner.id)


def test_invalid_action_and_unknown_expense(client, owner_headers, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]
    resp = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "maybe"}, headers=owner_headers)
    assert resp.status_code == 400
    resp = client.post("/api/expenses/9999/decision", json={"action": "approve"}, headers=owner_headers)
    assert resp.status_code == 404


def test_seller_cannot_decide(client, seller_headers, expense_category):
    expense_id = _submit(client, seller_headers, expense_category.id).get_json()["expense"]["id"]
    resp = client.post(f"/api/expenses/{expense_id}/decision", json={"action": "approve"}, headers=seller_headers)
    assert resp.status_code == 403


def test_expense_categories(client, owner_headers, seller_headers, expense_category):
    _submit(client, seller_headers, expense_category.id)

    cats = client.get("/api/expenses/categories", headers=seller_headers).get_json()["categories"]
    assert cats[0]["expense_count"] == 1

    assert client.post("/api/expenses/categories", json={"name": "Rent"}, headers=seller_headers).status_code == 403
    assert client.post("/api/expenses/categories", json={"name": "Rent"}, headers=owner_headers).status_code == 201
    assert client.post("/api/expenses/categories", json={"name": "rent"}, headers=owner_headers).status_code == 409
