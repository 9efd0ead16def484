"""Owner user management."""

from lsms.models import AuditLog, SessionToken, User

from conftest import auth_headers


def test_owner_creates_seller(client, owner, owner_headers):
    resp = client.post(
        "/api/users",
        json={"name": "New Seller", "email": "new@test.local", "password": "Seller123!", "role": "SELLER"},
        headers=owner_headers,
    )
    assert resp.status_code == 201
    assert resp.get_json()["user"]["role"] == "SELLER"

    entry = AuditLog.query.filter_by(action="USER_CREATE").one()
    assert entry.user_id == owner.id


def test_duplicate_email_is_conflict(client, owner, seller, owner_headers):
    resp = client.post(
        "/api/users",
        json={"name": "Dup", "email": "seller@test.local", "password": "Seller123!", "role": "SELLER"},
        headers=owner_headers,
    )
    assert resp.status_code == 409


def test_weak_password_rejected(client, owner, owner_headers):
    resp = client.post(
        "/api/users",
        json={"name": "Weak", "email": "weak@test.local", "password": "password", "role": "SELLER"},
        headers=owner_headers,
    )
    assert resp.status_code == 400


def test_invalid_role_rejected(client, owner, owner_headers):
    resp = client.post(
        "/api/users",
        json={"name": "Boss", "email": "boss@test.local", "password": "Seller123!", "role": "MANAGER"},
        headers=owner_headers,
    )
    assert resp.status_code == 400


def test_seller_cannot_manage_users(client, seller, seller_headers):
    assert client.get("/api/users", headers=seller_headers).status_code == 403


def test_list_users_includes_activity_counts(client, owner, seller, owner_headers):
    resp = client.get("/api/users", headers=owner_headers)
    assert resp.status_code == 200
    users = {u["email"]: u for u in resp.get_json()["users"]}
    assert users["seller@test.local"]["sales_count"] == 0
    assert "password_hash" not in users["seller@test.local"]


def test_deactivate_revokes_sessions(client, db_session, owner, seller, owner_headers):
    seller_headers = auth_headers(seller)

    resp = client.patch(f"/api/users/{seller.id}", json={"is_active": False}, headers=owner_headers)
    assert resp.status_code == 200
    assert db_session.get(User, seller.id).is_active is False
    assert db_session.query(SessionToken).filter_by(user_id=seller.id, is_revoked=False).count() == 0
    assert client.get("/api/auth/me", headers=seller_headers).status_code == 401
    assert AuditLog.query.filter_by(action="USER_DEACTIVATE").count() == 1


def test_owner_cannot_deactivate_self(client, owner, owner_headers):
    resp = client.patch(f"/api/users/{owner.id}", json={"is_active": False}, headers=owner_headers)
    assert resp.status_code == 400


def test_is_active_must_be_boolean(client, owner, seller, owner_headers):
    resp = client.patch(f"/api/users/{seller.id}", json={"is_active": "no"}, headers=owner_headers)
    assert resp.status_code == 400


def test_unknown_user_is_404(client, owner, owner_headers):
    resp = client.patch("/api/users/9999", json={"is_active": False}, headers=owner_headers)
    assert resp.status_code == 404


def test_non_object_bodies_rejected(client, db_session, owner, seller, owner_headers):
    resp = client.post("/api/users", json=["Jane", "jane@example.com"], headers=owner_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid JSON payload"
    assert db_session.query(User).count() == 2

    resp = client.patch(f"/api/users/{seller.id}", json=[False], headers=owner_headers)
    assert resp.status_code == 400
    assert db_session.get(User, seller.id).is_active is True
